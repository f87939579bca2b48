"""
Some pieces of fusion that are shared between the client modules: errors,
the logging mixin, hashing and fee arithmetic.
"""

import hashlib
import logging
import sys
import traceback

import ecdsa

from .protocol import Protocol

logger = logging.getLogger('cashfusion')


class FusionError(Exception):
    '''This represents an "expected" type of error, having to do with protocol
    errors and degraded conditions that cause a fusion round to fail. It should
    not be used to mask programming errors.'''

class TransportError(FusionError):
    ''' The connection to the server failed. Fatal for the session. '''

class ProtocolViolation(FusionError):
    ''' The server sent something malformed, inconsistent or unexpected.
    Aborts the round. '''

class TimingViolation(FusionError):
    ''' A message arrived outside its window, or the server clock is off. '''

class CryptoError(FusionError):
    ''' A commitment or signature did not check out. '''

class CovertError(FusionError):
    ''' Covert connections or submissions failed or fell behind. Aborts the round. '''


class PrintError:
    '''A handy base class for printing formatted log messages'''
    def diagnostic_name(self):
        return self.__class__.__name__

    def print_error(self, *msg):
        # goes to the debug level; enable it with logging.basicConfig or similar
        logger.debug(' '.join(str(m) for m in ("[%s]" % self.diagnostic_name(), *msg)))

    def print_stderr(self, *msg):
        logger.warning(' '.join(str(m) for m in ("[%s]" % self.diagnostic_name(), *msg)))

    def print_exception(self, *msg):
        text = ' '.join(str(item) for item in msg)
        text += ': '
        text += ''.join(traceback.format_exception(*sys.exc_info()))
        self.print_error(text)


def sha256(x):
    return hashlib.sha256(x).digest()

def double_sha256(x):
    return sha256(sha256(x))

def size_of_input(pubkey):
    # Sizes of inputs after signing:
    #   32+8+1+1+[length of sig]+1+[length of pubkey]
    #   == 141 for compressed pubkeys, 173 for uncompressed.
    # (we use schnorr signatures, always)
    assert 1 < len(pubkey) < 76  # need to assume regular push opcode
    return 108 + len(pubkey)

def size_of_output(scriptpubkey):
    # == 34 for P2PKH, 32 for P2SH
    assert len(scriptpubkey) < 253  # need to assume 1-byte varint
    return 9 + len(scriptpubkey)

def component_fee(size, feerate):
    # feerate in sat/kB
    # size and feerate should both be integer
    # fee is always rounded up
    return (size * feerate + 999) // 1000

def gen_keypair():
    # Returns privkey (32 bytes), pubkey (65 bytes, uncompressed), pubkey (33 bytes, compressed)
    privkey = ecdsa.util.randrange(ecdsa.SECP256k1.order)
    P = privkey * ecdsa.SECP256k1.generator
    return (privkey.to_bytes(32,'big'),
            P.to_bytes('uncompressed'),
            P.to_bytes('compressed'),
            )

def listhash(iterable):
    """Hash a list of bytes arguments with well-defined boundaries."""
    h = hashlib.sha256()
    for x in iterable:
        h.update(len(x).to_bytes(4,'big'))
        h.update(x)
    return h.digest()

def calc_initial_hash(tier, covert_domain_b, covert_port, covert_ssl, begin_time):
    return listhash([b'Cash Fusion Session',
                     Protocol.VERSION,
                     tier.to_bytes(8,'big'),
                     covert_domain_b,
                     covert_port.to_bytes(4,'big'),
                     b'\x01' if covert_ssl else b'\0',
                     begin_time.to_bytes(8,'big'),
                     ])

def calc_round_hash(last_hash, round_pubkey, round_time, all_commitments, all_components):
    return listhash([b'Cash Fusion Round',
                     last_hash,
                     round_pubkey,
                     round_time.to_bytes(8,'big'),
                     listhash(all_commitments),
                     listhash(all_components),
                     ])
