"""
Covert submission mechanism

- Open numerous connections at random times, ahead of when they are needed.
- Send each piece of data (a component, or a signature) at an independent
  random time, each on its own connection, then close that connection.
- If a connection fails, retry the data on another connection.
- Close leftover connections at random times.

This is accomplished using a Scheduler with a thread pool.
"""

import math
import random
import secrets
import socket
import threading
import time
from collections import deque
from functools import partial

import socks

from . import fusion_pb2 as pb
from .comms import send_pb, recv_pb
from .connection import open_connection
from .util import CovertError, FusionError, PrintError

TOR_COOLDOWN_TIME = 660 #seconds

def is_tor_port(host, port):
    if not 0 <= port < 65536:
        return False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(0.1)
            s.connect((host, port))
            # Tor responds uniquely to HTTP-like requests
            s.send(b"GET\n")
            if b"Tor is not an HTTP Proxy" in s.recv(1024):
                return True
    except OSError:
        pass
    return False

class TorLimiter:
    # Holds a log of the times of connections during the last `lifetime`
    # seconds. At any time you can query `.count` to see how many.
    def __init__(self, lifetime, clock=time.monotonic):
        self.deque = deque()
        self.lifetime = lifetime
        self.clock = clock
        self.lock = threading.Lock()
        self._count = 0

    def cleanup(self,):
        with self.lock:
            tnow = self.clock()
            while self.deque and self.deque[0] <= tnow:
                self.deque.popleft()
                self._count -= 1

    @property
    def count(self,):
        self.cleanup()
        return self._count

    def bump(self,):
        t = self.clock() + self.lifetime
        with self.lock:
            self.deque.append(t)
            self._count += 1

limiter = TorLimiter(TOR_COOLDOWN_TIME)


class CovertSubmitter(PrintError):
    stopping = False

    def __init__(self, dest_addr, dest_port, ssl, tor_host, tor_port, scheduler, connect_timeout, submit_timeout):
        self.dest_addr = dest_addr
        self.dest_port = dest_port
        self.ssl = ssl

        if tor_host is None or tor_port is None:
            self.proxy_opts = None
        else:
            self.proxy_opts = dict(proxy_type = socks.SOCKS5, proxy_addr=tor_host, proxy_port = tor_port, proxy_rdns = True)

        self.scheduler = scheduler

        self.connect_timeout = connect_timeout
        self.submit_timeout = submit_timeout

        # If .stop() is called, it will use these times (settable with .set_stop_times)
        # to randomize the disconnection times.
        self.stop_tstart = self.stop_tstop = scheduler.clock()

        self.lock = threading.Lock()

        # Our internal logic is as follows:
        #  - Connections are made ahead of time and wait, idle, in `idle_connections`.
        #  - Each submission takes one idle connection, sends, awaits the reply and closes it.
        #  - A submission whose connection fails goes back to the front of `waiting_work`
        #    and is retried on the next idle connection.
        #  - If work is waiting and no connection is idle or pending, the submitter has failed.
        #  - Submissions belong to a batch; cancel_submissions() moves to a new batch
        #    so that anything from the old one is dropped.
        self.idle_connections = deque()
        self.num_pending_connections = 0
        self.num_busy_connections = 0
        self.conn_counter = 0

        self.batch = 0
        self.submit_jobs = set()
        self.waiting_work = deque()
        self.num_submitted = 0

        # If too many failures occur, this will be set to the first exception.
        self.failure_exception = None

        self.randtag = secrets.token_urlsafe(12) # for proxy login
        self.rng = random.Random(secrets.token_bytes(32)) # for timings

    def randtime(self, tstart, tend):
        """ Random time between tstart and tend according to raised cosine
        distribution. We use a raised cosine due to its highly smooth edges,
        which do not give away our exact start/end times.
        """
        x = math.acos(1 - 2 * self.rng.random()) / math.pi
        return tstart + (tend - tstart) * x

    def set_stop_times(self, tstart, tend):
        with self.lock:
            self.stop_tstart = tstart
            self.stop_tstop = tend

    def stop(self):
        """ Schedule any idle connections to close at random times, and
        drop any pending connections and pending work. """
        with self.lock:
            if self.stopping:
                # already requested!
                return
            self.stopping = True
            self._cancel_jobs()
            while self.idle_connections:
                self._schedule_stop_connection(self.idle_connections.popleft())

    def _schedule_stop_connection(self, connection):
        t = self.randtime(self.stop_tstart, self.stop_tstop)
        self.scheduler.schedule_job(t, lambda jn, lag, c=connection: c.close())

    def _cancel_jobs(self):
        for job_num in self.submit_jobs:
            self.scheduler.cancel_job(job_num)
        self.submit_jobs.clear()
        self.waiting_work.clear()

    def _fail(self, exception):
        # call with lock held
        if self.failure_exception is None:
            self.failure_exception = exception
        self.waiting_work.clear()

    def schedule_connections(self, tstart, tend, count):
        """ Make sure that `count` connections are either established or on
        their way, opening the missing ones at random times in [tstart, tend]. """
        with self.lock:
            if self.stopping:
                return
            have = len(self.idle_connections) + self.num_pending_connections + self.num_busy_connections
            for _ in range(max(0, count - have)):
                self.num_pending_connections += 1
                conn_number = self.conn_counter
                self.conn_counter += 1
                self.scheduler.schedule_job(self.randtime(tstart, tend), partial(self.run_connect, conn_number))

    def schedule_submissions(self, tstart, tend, messages):
        """ Send each message at its own random time in [tstart, tend]. """
        with self.lock:
            if self.stopping:
                return
            batch = self.batch
            for submsg in messages:
                t = self.randtime(tstart, tend)
                job_num = self.scheduler.schedule_job(t, partial(self.run_submit, batch, submsg))
                self.submit_jobs.add(job_num)

    def cancel_submissions(self):
        """ Drop any not-yet-sent messages and forget about past failures,
        keeping the established connections. """
        with self.lock:
            self.batch += 1
            self._cancel_jobs()
            self.failure_exception = None

    def num_connected(self):
        with self.lock:
            return len(self.idle_connections)

    def check_ok(self):
        """ Make sure that no failure has occurred. """
        e = self.failure_exception
        if e is not None:
            raise CovertError('Covert connections failed: {} {}'.format(type(e).__name__, e)) from e

    def check_connected(self, count):
        """ Make sure at least `count` connections are ready to use. """
        self.check_ok()
        num_connected = self.num_connected()
        if num_connected < count:
            raise CovertError(f'Covert connections were too slow ({num_connected} < {count}).')

    def check_done(self):
        """ Make sure all scheduled submissions have been sent. """
        self.check_ok()
        with self.lock:
            num_todo = len(self.submit_jobs) + len(self.waiting_work)
        if num_todo:
            raise CovertError(f'Covert submissions were too slow ({num_todo} left).')

    # Run in worker threads
    def run_connect(self, conn_number, job_num, lag):
        if self.stopping:
            with self.lock:
                self.num_pending_connections -= 1
            return
        tbegin = self.scheduler.clock()
        limiter.bump()
        try:
            if self.proxy_opts is None:
                proxy_opts = None
            else:
                # unique login so that Tor isolates the circuit
                unique = f'{self.randtag}_{conn_number}'
                proxy_opts = dict(proxy_username = unique, proxy_password = unique)
                proxy_opts.update(self.proxy_opts)
            connection = open_connection(self.dest_addr, self.dest_port, conn_timeout=self.connect_timeout,
                                         default_timeout=self.submit_timeout, ssl=self.ssl, socks_opts = proxy_opts)
            tend = self.scheduler.clock()
            self.print_error(f"connection established. conn time: {lag:.3f}s+{(tend-tbegin):.3f}s")
        except (OSError, socks.ProxyError) as e:
            exception = e
            connection = None
            tend = self.scheduler.clock()
            self.print_error(f"covert connection failed (after {lag:.3f}s+{(tend-tbegin):.3f}s): {e}")

        with self.lock:
            self.num_pending_connections -= 1
            if connection is not None:
                if self.stopping:
                    # Oh, stop was signalled while we were connecting ...
                    self._schedule_stop_connection(connection)
                    return
                self.idle_connections.append(connection)
            elif self.waiting_work and not self.idle_connections and not self.num_pending_connections:
                self._fail(FusionError('covert connection failed and no spares left: {}'.format(exception)))
                return

        self.work_on_queue()

    def run_submit(self, batch, submsg, job_num, lag):
        with self.lock:
            self.submit_jobs.discard(job_num)
            if self.stopping or batch != self.batch:
                return
            self.waiting_work.append((batch, submsg, lag))

        self.work_on_queue()

    def work_on_queue(self):
        while True:
            with self.lock:
                if self.stopping or not self.waiting_work:
                    return
                try:
                    connection = self.idle_connections.popleft()
                except IndexError:
                    if not self.num_pending_connections and not self.num_busy_connections:
                        self._fail(FusionError('no covert connections left'))
                    # otherwise, wait for a pending connection to complete.
                    return
                work = self.waiting_work.popleft()
                self.num_busy_connections += 1

            batch, submsg, lag = work
            try:
                send_pb(connection, pb.CovertMessage, submsg, timeout=self.submit_timeout)
                resmsg, mtype = recv_pb(connection, pb.CovertResponse, 'ok', 'error', timeout=self.submit_timeout)
                if mtype is None:
                    raise FusionError('timed out waiting for covert response')
            except FusionError as exception:
                self.print_error(f"covert work failed: {exception}")
                # Make sure connection is fully closed, then retry on another connection.
                connection.close()
                with self.lock:
                    self.num_busy_connections -= 1
                    if batch == self.batch and not self.stopping:
                        self.waiting_work.appendleft(work)
                continue
            connection.close()
            with self.lock:
                self.num_busy_connections -= 1
                if mtype == 'error':
                    self._fail(FusionError('error from server: ' + repr(resmsg.message)))
                    return
                self.num_submitted += 1
            self.print_error(f"covert work successful (lag={lag:.3f})")
