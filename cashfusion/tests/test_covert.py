import socket
import threading
import time
import unittest

from .. import fusion_pb2 as pb
from ..comms import recv_pb, send_pb
from ..connection import Connection
from ..covert import CovertSubmitter, TorLimiter
from ..scheduler import Scheduler
from ..util import CovertError, FusionError


class CovertServer:
    """ Accepts covert connections on localhost and answers every message with OK. """
    def __init__(self):
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(('127.0.0.1', 0))
        self.listener.listen(20)
        self.port = self.listener.getsockname()[1]
        self.received = []
        self.lock = threading.Lock()
        self.thread = threading.Thread(target=self.serve, daemon=True)
        self.thread.start()

    def serve(self):
        while True:
            try:
                sock, _ = self.listener.accept()
            except OSError:
                return
            threading.Thread(target=self.handle, args=(sock,), daemon=True).start()

    def handle(self, sock):
        with Connection(sock, 5.0) as conn:
            try:
                msg, mtype = recv_pb(conn, pb.CovertMessage, 'component', 'signature', 'ping')
                if mtype is None:
                    return
                with self.lock:
                    self.received.append((mtype, msg))
                send_pb(conn, pb.CovertResponse, pb.OK())
            except FusionError:
                # client went away without sending anything
                return

    def close(self):
        self.listener.close()


def wait_for(predicate, timeout=10.):
    tend = time.monotonic() + timeout
    while time.monotonic() < tend:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestTorLimiter(unittest.TestCase):

    def test_count(self):
        now = [100.]
        limiter = TorLimiter(10, clock=lambda: now[0])
        limiter.bump()
        now[0] += 5
        limiter.bump()
        self.assertEqual(limiter.count, 2)
        now[0] += 5
        self.assertEqual(limiter.count, 1)
        now[0] += 5
        self.assertEqual(limiter.count, 0)


class CovertTestCase(unittest.TestCase):

    def setUp(self):
        self.scheduler = Scheduler(time.monotonic, name='covert', num_threads=8, inactive_timeout=60)

    def tearDown(self):
        self.scheduler.stop()

    def make_submitter(self, port):
        return CovertSubmitter('127.0.0.1', port, False, None, None, self.scheduler, 2., 2.)


class TestCovertOffline(CovertTestCase):

    def test_randtime(self):
        covert = self.make_submitter(1)
        times = [covert.randtime(10., 15.) for _ in range(1000)]
        self.assertTrue(all(10. <= t <= 15. for t in times))
        # raised cosine is symmetric around the middle
        self.assertTrue(12. < sum(times) / len(times) < 13.)

    def test_checks(self):
        covert = self.make_submitter(1)
        covert.check_ok()
        covert.check_done()
        covert.check_connected(0)
        with self.assertRaises(CovertError):
            covert.check_connected(1)

        covert.failure_exception = FusionError('boom')
        with self.assertRaises(CovertError):
            covert.check_ok()
        with self.assertRaises(CovertError):
            covert.check_done()
        covert.cancel_submissions()
        covert.check_ok()

    def test_cancel_submissions(self):
        covert = self.make_submitter(1)
        tnow = time.monotonic()
        covert.schedule_submissions(tnow + 30, tnow + 40, [pb.Ping(), pb.Ping()])
        with self.assertRaises(CovertError):
            covert.check_done()
        self.assertEqual(self.scheduler.pending_jobs, 2)
        covert.cancel_submissions()
        covert.check_done()
        self.assertEqual(self.scheduler.pending_jobs, 0)

    def test_stop(self):
        covert = self.make_submitter(1)
        covert.stop()
        tnow = time.monotonic()
        covert.schedule_connections(tnow, tnow + 1, 3)
        covert.schedule_submissions(tnow, tnow + 1, [pb.Ping()])
        self.assertEqual(self.scheduler.pending_jobs, 0)


class TestCovertLive(CovertTestCase):

    def test_submit(self):
        server = CovertServer()
        try:
            covert = self.make_submitter(server.port)
            tnow = time.monotonic()
            covert.schedule_connections(tnow, tnow + 0.2, 3)
            self.assertTrue(wait_for(lambda: covert.num_connected() == 3))
            covert.check_connected(3)

            messages = [pb.CovertComponent(signature=b'\0' * 64, component=b'c%d' % i) for i in range(2)]
            tnow = time.monotonic()
            covert.schedule_submissions(tnow, tnow + 0.2, messages)
            self.assertTrue(wait_for(lambda: covert.num_submitted == 2))
            covert.check_done()
            self.assertEqual(sorted(msg.component for _, msg in server.received), [b'c0', b'c1'])
            self.assertEqual(covert.num_connected(), 1)
            covert.stop()
        finally:
            server.close()

    def test_no_connections(self):
        # grab a free port and release it, so connecting gets refused
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('127.0.0.1', 0))
            port = s.getsockname()[1]
        covert = self.make_submitter(port)
        tnow = time.monotonic()
        covert.schedule_connections(tnow, tnow + 0.1, 2)
        self.assertTrue(wait_for(lambda: covert.num_pending_connections == 0))
        with self.assertRaises(CovertError):
            covert.check_connected(1)

        covert.schedule_submissions(tnow, tnow + 0.1, [pb.Ping()])
        self.assertTrue(wait_for(lambda: covert.failure_exception is not None))
        with self.assertRaises(CovertError):
            covert.check_ok()


if __name__ == '__main__':
    unittest.main()
