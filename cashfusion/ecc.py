"""
secp256k1 point (de)serialization on top of the pure-python `ecdsa` package.
"""

import ecdsa
from ecdsa.ellipticcurve import PointJacobi, INFINITY
from ecdsa.errors import MalformedPointError

curve = ecdsa.SECP256k1.curve
G = ecdsa.SECP256k1.generator
order = G.order()
fieldsize = curve.p()


def ser_to_point(ser):
    """ Parse a compressed (33 byte) or uncompressed (65 byte) point.
    Raises ValueError for off-curve points and bad encodings. """
    if len(ser) not in (33, 65):
        raise ValueError('bad point length')
    try:
        return PointJacobi.from_bytes(curve, bytes(ser),
                                      valid_encodings=('compressed', 'uncompressed'),
                                      order=order)
    except MalformedPointError as e:
        raise ValueError('point could not be parsed') from e

def point_to_ser(P, comp=True):
    if P == INFINITY:
        raise ValueError('cannot serialize point at infinity')
    return P.to_bytes('compressed' if comp else 'uncompressed')

def pubkey_from_privkey(privkey, comp=True):
    secexp = int.from_bytes(privkey, 'big')
    if not 0 < secexp < order:
        raise ValueError('invalid private key')
    return point_to_ser(secexp * G, comp=comp)
