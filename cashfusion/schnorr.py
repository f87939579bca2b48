'''
BCH Schnorr signatures (Jacobi symbol R, compressed-pubkey prefixing, SHA256)
and Schnorr blind signatures, in pure python on the `ecdsa` package.

Note that pure python EC math contains side channel vulnerabilities, and must
not be used in an automated-signing environment.
'''
import hashlib
import hmac

import ecdsa
from ecdsa.ellipticcurve import INFINITY
from ecdsa.numbertheory import jacobi

from .ecc import G, order, fieldsize, ser_to_point, point_to_ser
from .util import CryptoError

def nonce_function_rfc6979(order, privkeybytes, msg32, algo16=b'', ndata=b''):
    """ pure python RFC6979 deterministic nonce generation, done in
    libsecp256k1 style -- see nonce_function_rfc6979() in secp256k1.c.
    """
    assert len(privkeybytes) == 32
    assert len(msg32) == 32
    assert len(algo16) in (0, 16)
    assert len(ndata) in (0, 32)
    assert order.bit_length() == 256

    V = b'\x01'*32
    K = b'\x00'*32
    blob = bytes(privkeybytes) + msg32 + ndata + algo16
    # initialize
    K = hmac.new(K, V+b'\x00'+blob, 'sha256').digest()
    V = hmac.new(K, V, 'sha256').digest()
    K = hmac.new(K, V+b'\x01'+blob, 'sha256').digest()
    V = hmac.new(K, V, 'sha256').digest()
    # loop until an in-range k is found; the first candidate is already
    # the right size so T is just V (RFC6979 3.2.h.2)
    while True:
        V = hmac.new(K, V, 'sha256').digest()
        k = int.from_bytes(V, 'big')
        if 0 < k < order:
            return k
        K = hmac.new(K, V+b'\x00', 'sha256').digest()
        V = hmac.new(K, V, 'sha256').digest()


def sign(privkey, message_hash):
    '''Create a Schnorr signature.

    Returns a 64-long bytes object (the signature), or raise ValueError
    on failure. Failure can occur due to an invalid private key.

    `privkey` should be the 32 byte raw private key.

    `message_hash` should be the 32 byte sha256d hash of the tx input (or
    message) you want to sign
    '''
    if not isinstance(privkey, bytes) or len(privkey) != 32:
        raise ValueError('privkey must be a bytes object of length 32')
    if not isinstance(message_hash, bytes) or len(message_hash) != 32:
        raise ValueError('message_hash must be a bytes object of length 32')

    secexp = int.from_bytes(privkey, 'big')
    if not 0 < secexp < order:
        raise ValueError('could not sign')
    pubbytes = point_to_ser(secexp * G, comp=True)

    k = nonce_function_rfc6979(order, privkey, message_hash,
                               algo16=b'Schnorr+SHA256\x20\x20')
    R = k * G
    if jacobi(R.y(), fieldsize) == -1:
        k = order - k
    rbytes = int(R.x()).to_bytes(32,'big')

    ebytes = hashlib.sha256(rbytes + pubbytes + message_hash).digest()
    e = int.from_bytes(ebytes, 'big')

    s = (k + e*secexp) % order

    return rbytes + int(s).to_bytes(32, 'big')


def verify(pubkey, signature, message_hash):
    '''Verify a Schnorr signature, returning True if valid.

    May raise a ValueError or return False on failure.

    `pubkey` should be the the raw public key bytes (33 or 65 long).

    `signature` should be the 64 byte schnorr signature as would be returned
    from `sign` above.

    `message_hash` should be the 32 byte hash of the message to be verified'''

    if not isinstance(pubkey, bytes) or len(pubkey) not in (33, 65):
        raise ValueError('pubkey must be a bytes object of either length 33 or 65')
    if not isinstance(signature, bytes) or len(signature) != 64:
        raise ValueError('signature must be a bytes object of length 64')
    if not isinstance(message_hash, bytes) or len(message_hash) != 32:
        raise ValueError('message_hash must be a bytes object of length 32')

    # off-curve points, failed decompression, bad format: ValueError
    pubpoint = ser_to_point(pubkey)

    rbytes = signature[:32]
    s = int.from_bytes(signature[32:], 'big')
    if s >= order:
        return False

    # compressed format, regardless of whether pubkey was compressed or not:
    pubbytes = point_to_ser(pubpoint, comp=True)

    ebytes = hashlib.sha256(rbytes + pubbytes + message_hash).digest()
    e = int.from_bytes(ebytes, 'big')

    R = s*G + ((order - e) % order)*pubpoint

    if R == INFINITY:
        return False

    if jacobi(R.y(), fieldsize) != 1:
        return False

    return int(R.x()).to_bytes(32, 'big') == rbytes

class BlindSigner:
    """ Schnorr blind signature creator, signer side.

    We calculate R = k*G for some secret k, and share R with the requester.
    Then, upon receiving an e value, we calculate s = k + e*x, where x is our
    private key, and return s to the requester.

    Security note: If we were to sign two distinct requests for the same R,
    then our private key could be recovered. Thus, you can only call .sign()
    once (and this class enforces this restriction in a thread-safe manner).
    If you need a new blind signature then you must create a new instance.
    """

    def __init__(self):
        k = ecdsa.util.randrange(order)
        # we store k in a list since .pop() is atomic.
        self._kcontainer = [k]
        self.R = point_to_ser(k * G, comp=True)

    def get_R(self):
        return self.R

    def sign(self, privkey, ebytes):
        assert len(privkey) == 32
        assert len(ebytes) == 32
        try:
            k = self._kcontainer.pop()
        except IndexError:
            raise RuntimeError("Attempted to sign twice!") from None

        x = int.from_bytes(privkey, 'big')
        e = int.from_bytes(ebytes, 'big')

        s = (k + e * x) % order
        return int(s).to_bytes(32, 'big')


class BlindSignatureRequest:
    """ Schnorr blind signature creator, requester side.

    We expect to be set up with two elliptic curve points
    (serialized as bytes) -- the Blind signer's public key, and
    a nonce point whose secret is known by the signer. Also, the
    32-byte message_hash should be provided.

    Upon construction, this creates and remembers the blinding factors,
    and also performs the expensive math needed to create the blind
    signature request. Once initialized, call .get_request() to obtain
    the 32-byte request that should be sent to the signer. Once you get
    back their 32-byte response, call finalize().

    Internally we use two random blinding factors a,b. Due to the jacobi
    thing, we have to also include a signflip factor c = +/- 1.

        [signer provides: R = k*G]
        R' = c*(R + a*G + b*P)
        choose c = +1 or -1 such that jacobi(R'.y(), fieldsize) = +1
        e' = Hash(R'.x | ser_compressed(P) | message32)
        e = c*e' + b mod n
        [send to signer: e]
        [signer provides: s = k + e*x]
        s' = c*(s + a) mod n

        resulting unblinded signature: (R'.x, s')
    """

    def __init__(self, pubkey, R, message_hash):
        """ Expects three bytes objects. Raises ValueError if the points
        can't be parsed. """
        assert isinstance(pubkey, bytes)
        assert isinstance(R, bytes)
        assert len(message_hash) == 32

        self.pubkey = pubkey
        self.R = R
        self.message_hash = message_hash

        self.a = ecdsa.util.randrange(order)
        self.b = ecdsa.util.randrange(order)
        self._calc_initial()
        assert self.c in (-1, +1)
        ehash = hashlib.sha256(self.Rxnew + self.pubkey_compressed + message_hash).digest()
        self.e = (self.c * int.from_bytes(ehash,'big') + self.b) % order

    def _calc_initial(self):
        # Calculates Rxnew, c, and compressed pubkey.
        try:
            Rpoint = ser_to_point(self.R)
        except ValueError as e:
            raise ValueError('R could not be parsed') from e
        try:
            pubpoint = ser_to_point(self.pubkey)
        except ValueError as e:
            raise ValueError('pubkey could not be parsed') from e

        self.pubkey_compressed = point_to_ser(pubpoint, comp=True)

        Rnew = Rpoint + self.a * G + self.b * pubpoint
        if Rnew == INFINITY:
            # 2^-256 chance, unless the signer is playing games
            raise ValueError('blinded nonce is at infinity')
        self.Rxnew = int(Rnew.x()).to_bytes(32,'big')

        self.c = jacobi(Rnew.y(), fieldsize)

    def get_request(self,):
        """ returns 32 bytes e value, to be sent to the signer """
        return int(self.e).to_bytes(32,'big')

    def finalize(self, sbytes, check = True):
        """ expects 32 bytes s value, returns 64 byte finished signature

        If check=True (default) this will perform a verification of the result.
        Upon failure it raises CryptoError. The cause for this error is that
        the blind signer has provided an incorrect blinded s value."""
        if len(sbytes) != 32:
            raise CryptoError("Blind signature response has wrong length.")

        s = int.from_bytes(sbytes,'big')

        snew = (self.c*(s + self.a)) % order

        sig = self.Rxnew + int(snew).to_bytes(32,'big')
        if check and not verify(self.pubkey, sig, self.message_hash):
            raise CryptoError("Blind signature verification failed.")
        return sig
