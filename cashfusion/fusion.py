"""
Main fusion logic. See `class Fusion` for the main exposed API.

This module has no GUI dependency.
"""

import itertools
import secrets
import threading
from collections import namedtuple
from enum import Enum
from math import ceil

# not cryptographically secure!
# we only use it to generate a few floating point numbers, with cryptographically secure seed.
from random import Random

import socks

from . import fusion_pb2 as pb
from . import schnorr
from .comms import send_pb, recv_pb
from .conf import Conf, DictStorage
from .connection import open_connection
from .covert import CovertSubmitter, is_tor_port, limiter
from .pedersen import order
from .protocol import (Protocol, MAX_COMPONENT_FEERATE, MAX_MIN_EXCESS_FEE, MAX_EXCESS_FEE,
                       MAX_COMPONENTS, MAX_FEE, MIN_TX_COMPONENTS)
from .scheduler import Scheduler
from .timing import default_clock
from .transaction import SIGHASH_ALL, SIGHASH_FORKID, tx_from_components
from .util import (FusionError, TransportError, ProtocolViolation, TimingViolation, CryptoError,
                   CovertError, PrintError, sha256, size_of_input, size_of_output, component_fee,
                   gen_keypair, calc_initial_hash, calc_round_hash)


class FusionStatus(Enum):
    NOT_FUSING = 0
    GENERATING_COMPONENTS = 1
    MAKING_COMMITMENTS = 2
    SUBMITTING_COMMITMENTS = 3
    PRODUCING_BLIND_SIGNATURES = 4
    COVERTLY_SENDING_COMPONENTS = 5
    RECEIVING_ALL_COMMITMENTS = 6
    RECEIVING_ALL_COMPONENTS = 7
    SIGNING = 8
    COVERTLY_SENDING_SIGNATURES = 9
    FUSED = 10

class RoundResult(Enum):
    FUSED = 'fused'
    ABORT_ROUND = 'abort_round'
    QUIT = 'quit'

class Step(Enum):
    """ Outcome of one step of a round. """
    CONTINUE = 'continue'
    ABORT_ROUND = 'abort_round'
    QUIT = 'quit'

# What the server told us in its ServerHello.
ServerParams = namedtuple('ServerParams', 'num_components component_feerate min_excess_fee max_excess_fee tiers')

PoolStatus = namedtuple('PoolStatus', 'tier players min_players time_remaining')

# Published by the fusion thread as a whole, so readers always see a consistent view.
#  status: FusionStatus
#  phase: 'setup', 'connecting', 'waiting', 'running', 'complete' or 'failed'
#  detail: human readable text
#  pools: tuple of PoolStatus, one per tier the server reported on
Snapshot = namedtuple('Snapshot', 'status phase detail pools')

GeneratedComponents = namedtuple('GeneratedComponents',
                                 'commitments component_types components privkeys amounts_sum pedersen_total_nonce')


def random_outputs_for_tier(rng, input_amount, scale, offset, max_count):
    """ Make up to `max_number` random output values, chosen using exponential
    distribution function. All parameters should be positive `int`s.

    None can be returned for expected types of failures, which will often occur
    when the input_amount is too small or too large, since it becomes uncommon
    to find a random assortment of values that satisfy the desired constraints.

    On success, this returns a list of length 1 to max_count, of nonnegative
    integer values that sum up to exactly input_amount.

    The returned values will always exactly sum up to input_amount. This is done
    by renormalizing them, which means the actual effective `scale` will vary
    depending on random conditions.
    """
    if input_amount < offset:
        return None

    lambd = 1./scale

    remaining = input_amount
    values = [] # list of fractional random values without offset
    for _ in range(max_count+1):
        val = rng.expovariate(lambd)
        # A ceil here makes sure rounding errors won't sometimes put us over the top.
        # Provided that scale is much larger than 1, the impact is negligible.
        remaining -= ceil(val) + offset
        if remaining < 0:
            break
        values.append(val)
    else:
        # Fail because we would need too many outputs
        # (most likely, scale was too small)
        return None
    assert len(values) <= max_count

    if not values:
        # Our first try put us over the limit, so we have nothing to work with.
        # (most likely, scale was too large)
        return None

    desired_random_sum = input_amount - len(values) * offset
    assert desired_random_sum >= 0

    # Now we need to rescale and round the values so they fill up the desired.
    # input amount exactly. We perform rounding in cumulative space so that the
    # sum is exact, and the rounding is distributed fairly.
    cumsum = list(itertools.accumulate(values))
    rescale = desired_random_sum / cumsum[-1]
    normed_cumsum = [round(rescale * v) for v in cumsum]
    if normed_cumsum[-1] != desired_random_sum:
        # float rounding drifted off the exact total
        return None

    differences = ((a - b) for a,b in zip(normed_cumsum, itertools.chain((0,),normed_cumsum)))
    result = [(offset + d) for d in differences]
    if sum(result) != input_amount:
        return None

    return result

def allocate_outputs(inputs, params, rng=None):
    """ Work out, for each tier offered by the server, a random set of output
    amounts that we could fuse into.

    inputs: list of Coin
    params: ServerParams
    rng: random.Random used for fuzzing and for output sizes (a securely seeded one by default)

    Returns (tier_outputs, excess_fees): dicts keyed by tier, of the tuple of
    output amounts and of the excess fee we would pay in that tier. Tiers that
    do not work out are left out; both dicts are empty if we can't join any.
    """
    num_inputs = len(inputs)
    num_distinct = len(set(c.pubkey for c in inputs))

    max_outputs = min(MAX_COMPONENTS, params.num_components) - num_inputs
    # For obfuscation, when there are few distinct inputs we want to have many
    # outputs, and vice versa. Many of both is even better, of course.
    min_outputs = max(MIN_TX_COMPONENTS - num_distinct, 1)
    if max_outputs < min_outputs:
        return {}, {}

    # how much input value do we bring to the table (after input & player fees)
    sum_inputs_value = sum(c.value for c in inputs)
    input_fees = sum(component_fee(size_of_input(c.pubkey), params.component_feerate) for c in inputs)
    avail_for_outputs = (sum_inputs_value
                         - input_fees
                         - params.min_excess_fee)

    # each P2PKH output will need at least this much allocated to it
    fee_per_output = component_fee(34, params.component_feerate)
    offset_per_output = Protocol.MIN_OUTPUT + fee_per_output

    if avail_for_outputs < offset_per_output:
        # our input amounts are so small that we can't even manage a single output.
        return {}, {}

    if rng is None:
        rng = Random()
        rng.seed(secrets.token_bytes(32))

    tier_outputs = {}
    excess_fees = {}
    for scale in params.tiers:
        # The excess fee is fuzzed a little, so that the exact amounts don't
        # give away which inputs and outputs belong together.
        fuzz_fee_max = scale // 1000000
        fuzz_fee_max_reduced = min(fuzz_fee_max,
                                   MAX_EXCESS_FEE - params.min_excess_fee,
                                   params.max_excess_fee - params.min_excess_fee)
        if fuzz_fee_max_reduced < 0:
            continue
        fuzz_fee = rng.randint(0, fuzz_fee_max_reduced)
        if fuzz_fee > fuzz_fee_max_reduced and fuzz_fee_max_reduced > fuzz_fee_max:
            # skipped, not clamped
            continue

        reduced_avail_for_outputs = avail_for_outputs - fuzz_fee
        if reduced_avail_for_outputs < offset_per_output:
            continue

        outputs = random_outputs_for_tier(rng, reduced_avail_for_outputs, scale, offset_per_output, max_outputs)
        if not outputs or len(outputs) < min_outputs:
            # this tier is no good for us.
            continue
        if num_inputs + len(outputs) > MAX_COMPONENTS:
            continue

        # subtract off the per-output fees that we provided for, above.
        outputs = tuple(o - fee_per_output for o in outputs)
        assert sum(outputs) + fee_per_output * len(outputs) == reduced_avail_for_outputs

        tier_outputs[scale] = outputs
        excess_fees[scale] = sum_inputs_value - input_fees - reduced_avail_for_outputs

    return tier_outputs, excess_fees

def gen_components(num_blanks, inputs, outputs, feerate):
    """
    Generate a full set of fusion components, commitments, keys, and proofs.

    num_blanks: int
    inputs: list of Coin
    outputs: list of [(value, scriptpubkey), (value, scriptpubkey) ...]
    feerate: int (sat/kB)

    Returns a GeneratedComponents, whose lists are all in the same order
    (sorted by serialized commitment):
        commitments: serialized InitialCommitment
        component_types: 'i', 'o', or 'b'
        components: serialized Component
        privkeys: communication privkey
        amounts_sum: Pedersen amount for total, (== excess fee)
        pedersen_total_nonce: Pedersen nonce for total, 32 bytes
    """
    assert num_blanks >= 0

    components = []
    for coin in inputs:
        fee = component_fee(size_of_input(coin.pubkey), feerate)
        comp = pb.Component()
        comp.input.prev_txid = bytes.fromhex(coin.prevout_hash)[::-1]
        comp.input.prev_index = coin.prevout_n
        comp.input.pubkey = coin.pubkey
        comp.input.amount = coin.value
        components.append((comp, +coin.value-fee, 'i'))
    for value, script in outputs:
        fee = component_fee(size_of_output(script), feerate)
        comp = pb.Component()
        comp.output.scriptpubkey = script
        comp.output.amount = value
        components.append((comp, -value-fee, 'o'))
    for _ in range(num_blanks):
        comp = pb.Component()
        comp.blank.SetInParent()
        components.append((comp, 0, 'b'))

    # Generate commitments
    resultlist = []
    sum_nonce = 0
    sum_amounts = 0
    for comp, commitamount, ctype in components:
        salt = secrets.token_bytes(32)
        comp.salt_commitment = sha256(salt)
        compser = comp.SerializeToString()

        pedersencommitment = Protocol.PEDERSEN.commit(commitamount)
        sum_nonce += pedersencommitment.nonce
        sum_amounts += commitamount

        privkey, pubkeyU, pubkeyC = gen_keypair()

        commitment = pb.InitialCommitment()
        commitment.salted_component_hash = sha256(salt+compser)
        commitment.amount_commitment = pedersencommitment.P_uncompressed
        commitment.communication_key = pubkeyC

        commitser = commitment.SerializeToString()

        resultlist.append((commitser, ctype, compser, privkey))

    # Sort by the commitment bytestring, in order to forget the original order.
    resultlist.sort(key=lambda x:x[0])

    sum_nonce = sum_nonce % order
    pedersen_total_nonce = sum_nonce.to_bytes(32, 'big')

    columns = tuple(zip(*resultlist)) or ((), (), (), ())
    commitments, component_types, compsers, privkeys = columns
    return GeneratedComponents(commitments, component_types, compsers, privkeys, sum_amounts, pedersen_total_nonce)


class RoundState:
    """ Everything we know about the round in progress. A fresh one is made
    for every round and it is dropped when the round ends. """
    def __init__(self, number):
        self.number = number
        self.t0 = None              # monotonic time at which StartRound arrived
        self.server_time = None
        self.round_pubkey = None
        self.blind_nonce_points = ()
        self.excess_fee = None
        self.generated = None       # GeneratedComponents
        self.blindsigrequests = []
        self.blindsigs = []
        self.random_number = None
        self.all_commitments = ()
        self.all_components = ()
        self.my_commitment_idxes = []
        self.my_component_idxes = []
        self.server_session_hash = None
        self.session_hash = None
        self.skip_signatures = False
        self.tx = None
        self.input_indices = []


class Fusion(threading.Thread, PrintError):
    """ Represents a single connection to the fusion server and a fusion attempt.
    The handshake happens on the caller's thread, the rest in the background.

    Usage:

    1. Create Fusion object with a wallet (and optionally, the coins to fuse).
    2. Call .start() -- this will connect, greet, allocate and register for
       tiers. It returns False if no tier is possible with our coins, otherwise
       the waiting and fusing continue in the fusion thread.
    3. Watch .snapshot for progress, and .result / .tx once the thread is done.
    4. To request stopping the fusion before completion, call .stop(). then wait
       for the thread to stop (call .join() to wait). This may take some time.
    """
    stopping=False
    stopping_if_not_running=False
    stop_reason=None
    connection=None
    scheduler=None
    result=None     # RoundResult, once the fusion thread is done
    tx=None         # the completed Transaction, if fused
    txid=None
    allocation_rng=None  # random.Random for output allocation; securely seeded if None

    def __init__(self, wallet, server_host, server_port, server_ssl, tor_host, tor_port,
                 coins=None, conf=None, clock=None):
        super().__init__()
        self.daemon = True

        self.wallet = wallet
        self.network = wallet.network_parameters()

        self.server_host = server_host
        self.server_port = server_port
        self.server_ssl = server_ssl
        self.tor_host = tor_host
        self.tor_port = tor_port

        self.conf = conf if conf is not None else Conf(DictStorage())
        self.clock = clock if clock is not None else default_clock

        if coins is None:
            coins = wallet.list_spendable_coins()
        seen = set()
        for c in coins:
            assert c.pubkey[0] in (2,3,4), "expecting a realized pubkey"
            assert (c.prevout_hash, c.prevout_n) not in seen, "already added"
            seen.add((c.prevout_hash, c.prevout_n))
        self.inputs = tuple(coins)

        self.outputs = []
        self.tier_outputs = {}
        self.excess_fees = {}
        self.last_hash = None
        self.round_count = 0
        self.rounds_aborted = 0
        self.crypto_failures = 0

        self._snapshot_lock = threading.Lock()
        self._snapshot = Snapshot(FusionStatus.NOT_FUSING, 'setup', None, ())

    @classmethod
    def from_conf(cls, wallet, conf, coins=None, clock=None):
        """ Make a Fusion for the server and Tor proxy configured in `conf`. """
        host, port, ssl = conf.server
        return cls(wallet, host, port, ssl, conf.tor_host, conf.tor_port,
                   coins=coins, conf=conf, clock=clock)

    def diagnostic_name(self):
        return 'Fusion({}:{})'.format(self.server_host, self.server_port)

    ## Published state

    @property
    def snapshot(self):
        with self._snapshot_lock:
            return self._snapshot

    @property
    def status(self):
        return self.snapshot.status

    def _publish(self, **changes):
        with self._snapshot_lock:
            self._snapshot = self._snapshot._replace(**changes)

    def _set_status(self, status):
        """ Move the round forward. Going backwards is a bug. """
        current = self.snapshot.status
        if (current is not FusionStatus.NOT_FUSING
                and status.value <= current.value):
            raise RuntimeError('fusion status went from {} to {}'.format(current.name, status.name))
        self._publish(status=status)

    def _reset_status(self):
        self._publish(status=FusionStatus.NOT_FUSING)

    ## Setup

    def make_connection(self):
        """ Open the main connection to the server. """
        if self.tor_host is None or self.tor_port is None:
            socks_opts = None
        else:
            socks_opts = dict(proxy_type = socks.SOCKS5, proxy_addr = self.tor_host, proxy_port = self.tor_port, proxy_rdns = True)
        try:
            return open_connection(self.server_host, self.server_port, conn_timeout=5.0, default_timeout=5.0,
                                   ssl=self.server_ssl, socks_opts=socks_opts)
        except OSError as e:
            raise TransportError(f'Could not connect to {self.server_host}:{self.server_port}') from e

    def make_covert_submitter(self, covert_domain, covert_port, covert_ssl):
        self.scheduler = Scheduler(self.clock.monotonic, name=f"Fusion Covert ({self.diagnostic_name()})",
                                   num_threads = 20, inactive_timeout = 120)
        return CovertSubmitter(covert_domain, covert_port, covert_ssl, self.tor_host, self.tor_port, self.scheduler,
                               Protocol.COVERT_CONNECT_TIMEOUT, Protocol.COVERT_SUBMIT_TIMEOUT)

    def start(self):
        """ Connect, greet, allocate and register for tiers. Returns False
        (and closes the connection) if none of the server's tiers work for
        our coins; otherwise launches the fusion thread and returns True.

        Raises FusionError if the server can't be reached or misbehaves. """
        if not self.inputs:
            raise FusionError('Started with no coins')
        try:
            if not self.prepare():
                self.close()
                return False
        except BaseException:
            self.close()
            raise
        super().start()
        return True

    def prepare(self):
        """ The synchronous part of start(). """
        if not (self.tor_host is None or
                self.tor_port is None or
                is_tor_port(self.tor_host, self.tor_port)):
            raise FusionError(f"Can't connect to Tor proxy at {self.tor_host}:{self.tor_port}")

        self._publish(phase='connecting', detail='')
        self.connection = self.make_connection()

        # Version check and download server params.
        self.greet()

        self.allocate_outputs()
        if not self.tier_outputs:
            self.print_error('no tiers available for our coins')
            self._publish(phase='failed', detail='No outputs available at any tier.')
            return False

        # Register for tiers; waiting happens in the fusion thread.
        self.register()
        return True

    def close(self):
        if self.connection is not None:
            self.connection.close()

    def stop(self, reason = 'stopped', not_if_running = False):
        self.stop_reason = reason
        if not_if_running:
            self.stopping_if_not_running = True
        else:
            self.stopping = True

    def check_stop(self, running=True):
        """ Gets called occasionally from fusion thread to allow a stop point. """
        if self.stopping or (not running and self.stopping_if_not_running):
            raise FusionError(self.stop_reason)

    def recv(self, *expected_msg_names, timeout=None):
        """ Returns the submessage, or None if it timed out or the server asked
        for the round to be restarted. """
        submsg, mtype = recv_pb(self.connection, pb.ServerMessage, 'restartround', 'error', *expected_msg_names, timeout=timeout)

        if mtype == 'restartround':
            self.print_error("server asked to restart the round")
            return None
        if mtype == 'error':
            raise FusionError('server error: {!r}'.format(submsg.message))

        return submsg

    def send(self, submsg, timeout=None):
        send_pb(self.connection, pb.ClientMessage, submsg, timeout=timeout)

    ## Rough phases of protocol

    def greet(self,):
        self.print_error('greeting server')
        self.send(pb.ClientHello(version=Protocol.VERSION, genesis_hash=self.network.genesis_hash_bytes()))
        reply = self.recv('serverhello', timeout=Protocol.STANDARD_TIMEOUT)
        if reply is None:
            raise FusionError('no reply to our hello')
        self.num_components = reply.num_components
        self.component_feerate = reply.component_feerate
        self.min_excess_fee = reply.min_excess_fee
        self.max_excess_fee = reply.max_excess_fee
        self.available_tiers = tuple(reply.tiers)

        # Enforce some sensible limits, in case server is crazy
        if self.component_feerate > MAX_COMPONENT_FEERATE:
            raise FusionError('excessive component feerate from server')
        if self.min_excess_fee > MAX_MIN_EXCESS_FEE:
            raise FusionError('excessive min excess fee from server')
        if self.min_excess_fee > self.max_excess_fee:
            raise FusionError('bad config on server: fees')
        if self.num_components < MIN_TX_COMPONENTS * 1.5:
            raise FusionError('bad config on server: num_components')

        self.params = ServerParams(self.num_components, self.component_feerate,
                                   self.min_excess_fee, self.max_excess_fee, self.available_tiers)

    def allocate_outputs(self,):
        self.tier_outputs, self.excess_fees = allocate_outputs(self.inputs, self.params, rng=self.allocation_rng)
        self.print_error(f"Possible tiers: {self.tier_outputs}")

    def register(self,):
        self.check_stop(running=False)
        self.print_error('registering for tiers: {}'.format(', '.join(str(t) for t in self.tier_outputs)))
        self.send(pb.JoinPools(tiers = sorted(self.tier_outputs)))
        self._publish(phase='waiting', detail='Registered for tiers')

    def run(self):
        try:
            self.wait_for_begin()
            self._publish(phase='running', detail='Starting')

            covert = self.start_covert()
            try:
                # Pool started. Keep running rounds until fail or complete.
                result = RoundResult.QUIT
                for _ in range(self.conf.max_rounds):
                    self.check_stop()
                    self.round_count += 1
                    self._publish(detail='Starting round {}'.format(self.round_count))
                    result = self.run_round(covert)
                    if result is not RoundResult.ABORT_ROUND:
                        break
                    self.rounds_aborted += 1
                else:
                    self.print_error('giving up after {} rounds'.format(self.round_count))
                    self._publish(detail='Gave up after {} rounds'.format(self.round_count))
                    result = RoundResult.QUIT
            finally:
                covert.stop()

            self.result = result
            if result is RoundResult.FUSED:
                self._publish(phase='complete', detail='txid: ' + self.txid)
            else:
                # detail keeps the reason the last round gave
                self._publish(phase='failed')
        except FusionError as err:
            self.print_error('Failed: {}'.format(err))
            self.result = RoundResult.QUIT
            self._reset_status()
            self._publish(phase='failed', detail=err.args[0] if err.args else 'Unknown error')
        except Exception as exc:
            self.print_exception('Fusion thread crashed')
            self.result = RoundResult.QUIT
            self._publish(phase='failed', detail='Exception {}: {}'.format(type(exc).__name__, exc))
        finally:
            if self.scheduler is not None:
                self.scheduler.no_more_jobs()
            self.close()

    def wait_for_begin(self,):
        """ Sit in the pools until the server starts a fusion. """
        tiers_sorted = sorted(self.tier_outputs)
        tiers_strings = {t: '{:.8f}'.format(t * 1e-8).rstrip('0') for t in tiers_sorted}
        t_registered = self.clock.monotonic()

        while True:
            # We should get a status update every 5 seconds.
            msg = self.recv('tierstatusupdate', 'fusionbegin', timeout=10)

            self.check_stop(running=False)

            if self.clock.monotonic() - t_registered > self.conf.inactive_timeout:
                raise FusionError('waited too long in the pools')

            if msg is None:
                continue
            if isinstance(msg, pb.FusionBegin):
                break
            assert isinstance(msg, pb.TierStatusUpdate)

            statuses = msg.statuses
            pools = []
            maxfraction = 0.
            besttime = None
            for t,s in statuses.items():
                if t not in tiers_strings:
                    raise ProtocolViolation('server reported status on tier we are not registered for')
                time_remaining = s.time_remaining if s.HasField('time_remaining') else None
                pools.append(PoolStatus(t, s.players, s.min_players, time_remaining))
                try:
                    maxfraction = max(maxfraction, s.players / s.min_players)
                except ZeroDivisionError:
                    pass
                if time_remaining is not None and (besttime is None or time_remaining < besttime):
                    besttime = time_remaining
            pools.sort()

            tiers_string = ', '.join(tiers_strings[p.tier] for p in pools)
            if besttime is not None:
                detail = 'Starting in {}s. Tiers: {}'.format(besttime, tiers_string)
            elif maxfraction >= 1:
                detail = 'Starting soon. Tiers: {}'.format(tiers_string)
            elif pools:
                detail = '{:d}% full. Tiers: {}'.format(round(maxfraction*100), tiers_string)
            else:
                detail = 'Queued'
            self._publish(detail=detail, pools=tuple(pools))

        self.t_fusionbegin = self.clock.monotonic()

        clock_mismatch = msg.server_time - self.clock.time()
        if abs(clock_mismatch) > Protocol.MAX_CLOCK_DISCREPANCY:
            raise TimingViolation(f"Clock mismatch too large: {clock_mismatch:+.3f}.")

        self.tier = msg.tier
        if self.tier not in self.tier_outputs:
            raise ProtocolViolation('server started a fusion on a tier we did not join')
        try:
            self.covert_domain = msg.covert_domain.decode('ascii')
        except UnicodeDecodeError as e:
            raise ProtocolViolation('badly encoded covert domain') from e
        self.covert_domain_b = msg.covert_domain
        self.covert_port = msg.covert_port
        self.covert_ssl = msg.covert_ssl
        self.begin_time = msg.server_time

        self.last_hash = calc_initial_hash(self.tier, self.covert_domain_b, self.covert_port, self.covert_ssl, self.begin_time)

        out_amounts = self.tier_outputs[self.tier]
        if min(out_amounts) < self.network.dust_threshold:
            raise FusionError("output below the network's dust threshold")
        out_scripts = [self.wallet.fresh_change_address() for _ in out_amounts]
        self.outputs = list(zip(out_amounts, out_scripts))

        # Remember what we agreed to pay, to recheck before every round.
        self.safety_sum_in, self.safety_excess_fee = self._fee_figures()

        self.print_error(f"starting fusion rounds at tier {self.tier}: {len(self.inputs)} inputs and {len(self.outputs)} outputs")

    def _fee_figures(self):
        """ (sum of inputs, excess fee) for our current inputs and outputs. """
        sum_in = sum(c.value for c in self.inputs)
        input_fees = sum(component_fee(size_of_input(c.pubkey), self.component_feerate) for c in self.inputs)
        sum_out = sum(v for v, _ in self.outputs)
        output_fees = sum(component_fee(size_of_output(s), self.component_feerate) for _, s in self.outputs)
        return sum_in, sum_in - sum_out - input_fees - output_fees

    def start_covert(self,):
        """ Launch the covert submitter and have it make connections during
        the warmup period. Returns it. """
        self._publish(detail='Setting up Tor connections')
        covert = self.make_covert_submitter(self.covert_domain, self.covert_port, self.covert_ssl)
        self.print_error(f"{limiter.count} recent Tor connections")

        tbegin = self.t_fusionbegin
        tend = tbegin + Protocol.COVERT_CONNECT_WINDOW
        covert.schedule_connections(tbegin, tend, self.num_components + Protocol.COVERT_CONNECT_SPARES)
        covert.set_stop_times(tend, tend + Protocol.COVERT_CONNECT_WINDOW)

        # Sleep until the warmup is nearly over, keeping an eye out for failures.
        tend = tbegin + (Protocol.WARMUP_TIME - Protocol.WARMUP_SLOP - 1)
        while self.clock.monotonic() < tend:
            covert.check_ok()
            self.check_stop()
            self.clock.sleep(min(1., tend - self.clock.monotonic()))

        return covert

    ## The round state machine

    def _abort(self, reason):
        self.print_error('aborting round: ' + reason)
        self._publish(detail=reason)
        return Step.ABORT_ROUND

    def _quit(self, reason):
        self.print_stderr('quitting fusion: ' + reason)
        self._publish(detail=reason)
        return Step.QUIT

    def _crypto_failure(self, reason):
        self.crypto_failures += 1
        if self.crypto_failures >= self.conf.max_crypto_failures:
            return self._quit(f'{reason} ({self.crypto_failures} cryptographic failures)')
        return self._abort(reason)

    def covert_clock(self, rs):
        return self.clock.monotonic() - rs.t0

    def run_round(self, covert):
        """ Run one round. Returns a RoundResult: FUSED on success,
        ABORT_ROUND if another round may be tried, QUIT otherwise. """
        rs = RoundState(self.round_count)
        steps = (self.round_start,
                 self.round_check_fees,
                 self.round_check_nonces,
                 self.round_generate,
                 self.round_commit,
                 self.round_blind_signatures,
                 self.round_send_components,
                 self.round_collect,
                 self.round_session_hash,
                 self.round_sign)
        try:
            for step in steps:
                outcome = step(rs, covert)
                if outcome is not Step.CONTINUE:
                    break
            else:
                return RoundResult.FUSED
        except CryptoError as e:
            outcome = self._crypto_failure(str(e))
        except (ProtocolViolation, TimingViolation, CovertError) as e:
            outcome = self._abort('{}: {}'.format(type(e).__name__, e))

        # Nothing more of ours should go out in this round.
        covert.cancel_submissions()
        self._reset_status()
        if outcome is Step.QUIT:
            return RoundResult.QUIT
        return RoundResult.ABORT_ROUND

    def round_start(self, rs, covert):
        if rs.number <= 1:
            timeout = 2 * Protocol.WARMUP_SLOP + Protocol.STANDARD_TIMEOUT
        else:
            # the previous round may still be finishing on the server
            timeout = Protocol.T_STOP_CLOSE + Protocol.STANDARD_TIMEOUT
        # after an aborted round, anything still coming for it is stale.
        stale = ('blindsigresponses', 'allcommitments', 'sharecovertcomponents', 'fusionresult') if self.rounds_aborted else ()
        while True:
            msg = self.recv('startround', *stale, timeout=timeout)
            if msg is None:
                return self._abort('did not get a round start')
            if isinstance(msg, pb.StartRound):
                break
            self.print_error('dropping stale {}'.format(type(msg).__name__))

        # record the time we got this message; it forms the basis time for all
        # covert activities.
        rs.t0 = self.clock.monotonic()
        rs.server_time = msg.server_time
        rs.round_pubkey = msg.round_pubkey
        rs.blind_nonce_points = tuple(msg.blind_nonce_points)

        # Make sure enough covert connections are up or on their way for this round.
        covert.set_stop_times(rs.t0 + Protocol.T_START_CLOSE, rs.t0 + Protocol.T_STOP_CLOSE)
        covert.schedule_connections(rs.t0 + Protocol.T_FIRST_CONNECT, rs.t0 + Protocol.T_LAST_CONNECT,
                                    self.num_components + len(self.inputs) + Protocol.COVERT_CONNECT_SPARES)

        # our final chance to leave nicely...
        self.check_stop()

        clock_mismatch = rs.server_time - self.clock.time()
        if abs(clock_mismatch) > Protocol.MAX_CLOCK_DISCREPANCY:
            return self._abort(f"clock mismatch too large: {clock_mismatch:+.3f}")

        if rs.number <= 1:
            lag = rs.t0 - self.t_fusionbegin - Protocol.WARMUP_TIME
            if abs(lag) > Protocol.WARMUP_SLOP:
                return self._abort(f"warmup period too different from expectation (|{lag:.3f}s| > {Protocol.WARMUP_SLOP:.3f}s)")

        self.print_error(f"round starting at {self.clock.time()}")
        return Step.CONTINUE

    def round_check_fees(self, rs, covert):
        sum_in, excess_fee = self._fee_figures()
        sum_out = sum(v for v, _ in self.outputs)
        if excess_fee > MAX_EXCESS_FEE:
            return self._quit(f'excess fee {excess_fee} is over the limit of {MAX_EXCESS_FEE}')
        if sum_in - sum_out > MAX_FEE:
            return self._quit(f'total fee {sum_in - sum_out} is over the limit of {MAX_FEE}')
        if (sum_in, excess_fee) != (self.safety_sum_in, self.safety_excess_fee):
            return self._quit('internal error in fee safety check')
        rs.excess_fee = excess_fee
        return Step.CONTINUE

    def round_check_nonces(self, rs, covert):
        if len(rs.blind_nonce_points) != self.num_components:
            return self._abort('blind nonce miscount')
        return Step.CONTINUE

    def round_generate(self, rs, covert):
        self._set_status(FusionStatus.GENERATING_COMPONENTS)
        num_blanks = self.num_components - len(self.inputs) - len(self.outputs)
        if num_blanks < 0:
            return self._quit('server has room for fewer components than we need')
        gen = gen_components(num_blanks, self.inputs, self.outputs, self.component_feerate)
        if gen.amounts_sum != rs.excess_fee:
            return self._abort('component amounts do not add up to the excess fee')
        if len(gen.components) != len(rs.blind_nonce_points):
            return self._abort('generated the wrong number of components')
        if len(set(gen.components)) != len(gen.components):
            return self._abort('generated duplicate components')
        rs.generated = gen
        return Step.CONTINUE

    def round_commit(self, rs, covert):
        self._set_status(FusionStatus.MAKING_COMMITMENTS)
        gen = rs.generated
        try:
            rs.blindsigrequests = [schnorr.BlindSignatureRequest(rs.round_pubkey, R, sha256(m))
                                   for R,m in zip(rs.blind_nonce_points, gen.components)]
        except ValueError as e:
            raise ProtocolViolation('bad round pubkey or nonce point: {}'.format(e)) from e

        rs.random_number = secrets.token_bytes(32)

        self._set_status(FusionStatus.SUBMITTING_COMMITMENTS)
        self.send(pb.PlayerCommit(initial_commitments = gen.commitments,
                                  excess_fee = rs.excess_fee,
                                  pedersen_total_nonce = gen.pedersen_total_nonce,
                                  random_number_commitment = sha256(rs.random_number),
                                  blind_sig_requests = [r.get_request() for r in rs.blindsigrequests],
                                  ))
        return Step.CONTINUE

    def round_blind_signatures(self, rs, covert):
        self._set_status(FusionStatus.PRODUCING_BLIND_SIGNATURES)
        remtime = Protocol.T_START_COMPS - self.covert_clock(rs)
        if remtime <= 0:
            return self._abort('no time left to get blind signatures')
        msg = self.recv('blindsigresponses', timeout=remtime)
        if msg is None:
            return self._abort('did not get blind signatures in time')
        if len(msg.scalars) != len(rs.blindsigrequests):
            return self._abort('blind signature miscount')
        rs.blindsigs = [r.finalize(sbytes, check=True)
                        for r,sbytes in zip(rs.blindsigrequests, msg.scalars)]
        return Step.CONTINUE

    def round_send_components(self, rs, covert):
        remtime = Protocol.T_START_COMPS - self.covert_clock(rs)
        if remtime < 0:
            return self._abort('Arrived at covert-component phase too slowly.')
        # sleep until the covert component phase really starts, to catch covert connection failures.
        self.clock.sleep_until(rs.t0 + Protocol.T_START_COMPS)

        # Our final check to leave the fusion pool, before we start telling our
        # components.
        covert.check_connected(len(rs.generated.components))
        self.check_stop()

        self._set_status(FusionStatus.COVERTLY_SENDING_COMPONENTS)
        self.print_error("starting covert component submission")
        messages = [pb.CovertComponent(round_pubkey = rs.round_pubkey, signature = sig, component = comp)
                    for comp, sig in zip(rs.generated.components, rs.blindsigs)]
        tstart = rs.t0 + Protocol.T_START_COMPS
        covert.schedule_submissions(tstart, tstart + Protocol.COVERT_SUBMIT_WINDOW, messages)
        return Step.CONTINUE

    def round_collect(self, rs, covert):
        gen = rs.generated

        self._set_status(FusionStatus.RECEIVING_ALL_COMMITMENTS)
        remtime = Protocol.T_START_SIGS - self.covert_clock(rs)
        # While submitting, we download the (large) full commitment list.
        msg = self.recv('allcommitments', timeout=remtime)
        if msg is None:
            return self._abort('did not get the commitment list in time')
        all_commitments = tuple(msg.initial_commitments)

        # Quick check on the commitment list.
        if len(set(all_commitments)) != len(all_commitments):
            return self._abort('Commitments list includes duplicates.')
        try:
            rs.my_commitment_idxes = [all_commitments.index(c) for c in gen.commitments]
        except ValueError:
            return self._abort('One or more of my commitments missing.')
        rs.all_commitments = all_commitments

        # Once all components are received, the server shares them with us:
        self._set_status(FusionStatus.RECEIVING_ALL_COMPONENTS)
        remtime = Protocol.T_START_SIGS - self.covert_clock(rs)
        if remtime <= 0:
            return self._abort('no time left to get the component list')
        msg = self.recv('sharecovertcomponents', timeout=remtime)
        if msg is None:
            return self._abort('did not get the component list in time')
        if self.covert_clock(rs) > Protocol.T_START_SIGS:
            return self._abort('Shared components message arrived too slowly.')

        covert.check_done()

        all_components = tuple(msg.components)
        if len(set(all_components)) != len(all_components):
            return self._abort('Server component list includes duplicates.')
        try:
            rs.my_component_idxes = [all_components.index(c) for c in gen.components]
        except ValueError:
            return self._abort('One or more of my components missing.')
        rs.all_components = all_components
        rs.skip_signatures = bool(msg.skip_signatures)
        rs.server_session_hash = msg.session_hash if msg.HasField('session_hash') else None
        return Step.CONTINUE

    def round_session_hash(self, rs, covert):
        # The session hash includes all relevant information that the server
        # should have told equally to all the players. If the server tries to
        # sneakily spy on players by saying different things to them, then the
        # users will sign different transactions and the fusion will fail.
        session_hash = calc_round_hash(self.last_hash, rs.round_pubkey, rs.server_time,
                                       rs.all_commitments, rs.all_components)
        if rs.server_session_hash is not None and rs.server_session_hash != session_hash:
            return self._crypto_failure('Session hash mismatch (bug!)')
        self.last_hash = rs.session_hash = session_hash
        return Step.CONTINUE

    def round_sign(self, rs, covert):
        if rs.skip_signatures:
            if self.conf.skip_signatures_policy == 'retry':
                return self._abort('server skipped the signature phase')
            return self._quit('server skipped the signature phase')

        self._set_status(FusionStatus.SIGNING)
        tx, input_indices = tx_from_components(rs.all_components, rs.session_hash)
        rs.tx, rs.input_indices = tx, input_indices

        coins = {(bytes.fromhex(c.prevout_hash)[::-1], c.prevout_n): c for c in self.inputs}
        messages = []
        # iterate over my inputs and sign them
        for i, (cidx, inp) in enumerate(zip(input_indices, tx.inputs())):
            if cidx not in rs.my_component_idxes:
                continue # not my input
            coin = coins[(inp.prev_txid, inp.prev_index)]
            sig = self.wallet.sign_schnorr(tx, i, coin.key, coin.script_pubkey, coin.value,
                                           SIGHASH_ALL | SIGHASH_FORKID)
            messages.append(pb.CovertTransactionSignature(round_pubkey = rs.round_pubkey, txsignature = sig, which_input = i))
        if len(messages) != len(self.inputs):
            return self._abort('could not find all of my inputs in the transaction')

        remtime = Protocol.T_START_SIGS - self.covert_clock(rs)
        if remtime < 0:
            return self._abort('Arrived at covert-signature phase too slowly.')
        self._set_status(FusionStatus.COVERTLY_SENDING_SIGNATURES)
        self.print_error("starting covert signature submission")
        tstart = rs.t0 + Protocol.T_START_SIGS
        covert.schedule_submissions(tstart, tstart + Protocol.COVERT_SUBMIT_WINDOW, messages)

        # From here on, not hearing back is a definite failure.
        remtime = Protocol.T_EXPECTING_CONCLUSION - self.covert_clock(rs)
        msg = self.recv('fusionresult', timeout=remtime)
        if msg is None:
            return self._quit('did not hear the fusion result')
        if self.covert_clock(rs) > Protocol.T_EXPECTING_CONCLUSION:
            return self._quit('Fusion result message arrived too slowly.')

        covert.check_done()

        if not msg.ok:
            bad_components = set(msg.bad_components)
            if not bad_components.isdisjoint(rs.my_component_idxes):
                self.print_error(f"bad components: {sorted(bad_components)} mine: {sorted(rs.my_component_idxes)}")
                return self._quit("server thinks one of my components is bad!")
            return self._abort('fusion failed, blamed on other players')

        allsigs = msg.txsignatures
        # assemble the transaction.
        if len(allsigs) != len(tx.inputs()):
            return self._quit('Server gave wrong number of signatures.')
        for i, (sig, inp) in enumerate(zip(allsigs, tx.inputs())):
            if len(sig) != 64:
                return self._quit('server relayed bad signature')
            try:
                good = schnorr.verify(inp.pubkey, sig, tx.digest(i, inp.script_code(), inp.amount))
            except ValueError as e:
                return self._quit(f"server relayed an unusable input pubkey: {e}")
            if not good:
                return self._quit('server relayed bad signature')
            inp.signature = sig

        assert tx.is_complete()
        self.tx = tx
        self.txid = tx.txid()
        self._set_status(FusionStatus.FUSED)
        self.print_error(f"fusion complete: {self.txid}")
        return Step.CONTINUE
