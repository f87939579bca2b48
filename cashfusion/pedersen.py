"""
Pedersen commitments on secp256k1 --

    commitment = nonce*G + amount*H

where G is the regular base point and H is a secondary base point with an
unknown discrete logarithm with respect to G. One should choose H as a
"nothing-up-my-sleeve" point with an obviously chosen x coordinate.

nonce and amount are scalars. The nonce should be randomly and uniformly
selected for each commitment, and the amount committed is a modular number.

Note that commitments to negative amounts are indistinguishable from
commitments to very large amounts. In practice, you probably need some kind
of additional mechanism (commitment reveal, range proof) to make sure the
amount is sensible.
"""

import ecdsa
from ecdsa.ellipticcurve import INFINITY

from .ecc import G, order, ser_to_point, point_to_ser

class NonceRangeError(ValueError):
    pass

class ResultAtInfinity(Exception):
    pass

class InsecureHPoint(Exception):
    # This exception gets thrown when the H point has a known discrete
    # logarithm, which means the commitment setup is broken.
    pass

class PedersenSetup:
    """
    You need to make one of these objects to set up the Pedersen scheme,
    before making any Commitment objects. One Setup object can be used for
    many Commitments.

    This stores uncompressed serializations of H and H+G as .H and .HG,
    respectively, along with their parsed points.

    (H+G is there to blind the elliptic curve math -- see Commitment)
    """
    def __init__(self, H):
        assert isinstance(H, bytes)

        try:
            Hpoint = ser_to_point(H)
        except ValueError as e:
            raise ValueError("H could not be parsed") from e
        HGpoint = Hpoint + G
        if HGpoint == INFINITY:
            # this happens if H = -G
            raise InsecureHPoint(-1)
        self._H = Hpoint
        self._HG = HGpoint

        self.H = point_to_ser(Hpoint, comp=False)
        self.HG = point_to_ser(HGpoint, comp=False)

    def commit(self, amount, nonce=None):
        return Commitment(self, amount, nonce=nonce)

class Commitment:
    """
    This represents a single commitment. Upon construction it calculates the
    commitment point, and stores the random secret nonce value.
    """
    def __init__(self, setup, amount, nonce=None, _P_uncompressed=None):
        """ setup should be a PedersenSetup object.

        amount should be an integer, may be negative or positive. The provided
        value is stored as .amount and its normal form (mod order) is stored in
        amount_mod. There is no restriction on the size nor sign of amount.

        You can also use this class to test a revealed commitment, by providing
        the nonce value. Provided nonces must be in the range 0 < nonce < order,
        or else a NonceRangeError will result.

        _P_uncompressed is an internal API variable, do not use.
        """
        assert isinstance(setup, PedersenSetup)
        self.setup = setup

        self.amount = int(amount)
        self.amount_mod = self.amount % order

        if nonce is None:
            self.nonce = ecdsa.util.randrange(order)
        else:
            self.nonce = int(nonce)
        if self.nonce <= 0 or self.nonce >= order:
            raise NonceRangeError

        if _P_uncompressed:
            assert len(_P_uncompressed) == 65
            assert _P_uncompressed[0] == 4
            self.P_uncompressed = _P_uncompressed
            self.P_compressed = bytes([2 + (_P_uncompressed[-1]&1)]) + _P_uncompressed[1:33]
            return

        try:
            self._calc_initial()
        except ResultAtInfinity:
            # P = infinity can't be serialized, and if it happens then we can
            # trivially compute the discrete log of H relative to G: the
            # commitment scheme is cracked, and most likely someone else knows
            # that discrete log too.
            # (Because 0 < nonce < order, this has only ~2^-256 chance of
            # happening in a normal setup.)
            dlog = (pow(self.amount_mod, order-2, order) * self.nonce) % order
            raise InsecureHPoint(dlog)

    def _calc_initial(self):
        k = self.nonce
        a = self.amount_mod

        # We don't want to calculate (a * H) since the time to execute
        # would reveal information about size / bitcount of a. So, we use
        # the nonce as a blinding offset factor.
        Ppoint = ((a - k) % order) * self.setup._H + k * self.setup._HG

        if Ppoint == INFINITY:
            raise ResultAtInfinity

        self.P_uncompressed = point_to_ser(Ppoint, comp=False)
        self.P_compressed = point_to_ser(Ppoint, comp=True)

def add_points(points_iterable):
    """ Adds one or more serialized points together. Returns uncompressed point.

    Note: intermediate sums are allowed to be the point at infinity, but not the
    final result.
    """
    plist = [ser_to_point(pser) for pser in points_iterable]
    if not plist:
        raise ValueError('empty list')
    Psum = plist[0]
    for P in plist[1:]:
        Psum = Psum + P
    if Psum == INFINITY:
        raise ResultAtInfinity
    return point_to_ser(Psum, comp=False)

def add_commitments(commitment_iterable):
    """ Adds any number of Pedersen commitments together, resulting in
    another Commitment.

    All commitments must share the same PedersenSetup (else the result
    wouldn't make any sense)."""
    ktotal = 0
    atotal = 0
    points = []
    setups = []
    for c in commitment_iterable:
        ktotal += c.nonce
        atotal += c.amount
        points.append(c.P_uncompressed)
        setups.append(c.setup)

    if len(points) < 1:
        raise ValueError('empty list')

    setup = setups[0]
    if not all(s is setup for s in setups):
        raise ValueError('mismatched setups')

    # atotal is not computed from modulo quantities.

    ktotal = ktotal % order

    if ktotal == 0:
        # improbable by accident, but very easily occurs with deliberate nonce choices.
        raise NonceRangeError

    if len(points) < 512:
        # Point addition is quite fast, when compared to doing two
        # scalar.point multiplications.
        try:
            P_uncompressed = add_points(points)
        except ResultAtInfinity:
            P_uncompressed = None # will raise exception below
    else:
        # So many points, we are better off just doing it from scalars.
        P_uncompressed = None

    return Commitment(setup, atotal, nonce=ktotal, _P_uncompressed = P_uncompressed)
