"""
Chain parameters needed by the fusion client.
"""
from collections import namedtuple

class NetworkParams(namedtuple('NetworkParams', 'name genesis dust_threshold')):
    """ `genesis` is the block hash in its usual (big-endian display) hex form;
    `dust_threshold` is the smallest output value the network relays. """
    __slots__ = ()

    def genesis_hash_bytes(self) -> bytes:
        """ The raw 32-byte hash in bitcoind memory order, as carried in ClientHello. """
        return bytes(reversed(bytes.fromhex(self.genesis)))

MAINNET = NetworkParams(
    name = 'mainnet',
    genesis = '000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f',
    dust_threshold = 546,
)

TESTNET3 = NetworkParams(
    name = 'testnet3',
    genesis = '000000000933ea01ad0ee984209779baaec3ced90fa3f408719526f8d77f4943',
    dust_threshold = 546,
)

TESTNET4 = NetworkParams(
    name = 'testnet4',
    genesis = '000000001dd410c49a788668ce26751718cc797474d3152a5fc073dd44fd9f7b',
    dust_threshold = 546,
)

NETWORKS = {n.name: n for n in (MAINNET, TESTNET3, TESTNET4)}
