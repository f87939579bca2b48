"""
The wallet interface that a fusion needs, plus a small in-memory key wallet.

A fusion only needs to: list coins it may spend, get fresh output scripts to
receive the fused amounts, and produce Schnorr signatures for its own inputs.
"""
import threading
from collections import namedtuple

from . import schnorr
from .networks import MAINNET
from .transaction import SIGHASH_ALL, SIGHASH_FORKID, hash160, p2pkh_script
from .util import PrintError, gen_keypair

# prevout_hash is the hex txid (display order); key is whatever the wallet
# needs to find the private key again.
Coin = namedtuple('Coin', 'prevout_hash prevout_n value pubkey script_pubkey key')


class FusionWallet(PrintError):
    def list_spendable_coins(self):
        """ Return a list of Coin. """
        raise NotImplementedError

    def fresh_change_address(self):
        """ Return the output script (bytes) of a new, unused P2PKH or P2SH address. """
        raise NotImplementedError

    def sign_schnorr(self, tx, input_index, key, script_pubkey, amount, sighash=SIGHASH_ALL|SIGHASH_FORKID):
        """ Return a 64-byte Schnorr signature for `tx` input `input_index`. """
        raise NotImplementedError

    def network_parameters(self):
        raise NotImplementedError


class KeyWallet(FusionWallet):
    """ Holds raw private keys in memory and makes P2PKH scripts from them.
    Coins have to be added by hand with add_coin(). """

    def __init__(self, network=MAINNET):
        self.network = network
        self.lock = threading.Lock()
        self.keys = {}  # compressed pubkey -> privkey
        self.coins = []
        self.change_scripts = []

    def new_key(self):
        privkey, _, pubkey = gen_keypair()
        with self.lock:
            self.keys[pubkey] = privkey
        return pubkey

    def add_coin(self, prevout_hash, prevout_n, value, pubkey=None):
        if pubkey is None:
            pubkey = self.new_key()
        assert pubkey in self.keys, "unknown key"
        coin = Coin(prevout_hash, prevout_n, value, pubkey, p2pkh_script(hash160(pubkey)), pubkey)
        with self.lock:
            self.coins.append(coin)
        return coin

    def list_spendable_coins(self):
        with self.lock:
            return list(self.coins)

    def fresh_change_address(self):
        script = p2pkh_script(hash160(self.new_key()))
        with self.lock:
            self.change_scripts.append(script)
        return script

    def sign_schnorr(self, tx, input_index, key, script_pubkey, amount, sighash=SIGHASH_ALL|SIGHASH_FORKID):
        with self.lock:
            privkey = self.keys[key]
        digest = tx.digest(input_index, script_pubkey, amount, sighash)
        return schnorr.sign(privkey, digest)

    def network_parameters(self):
        return self.network
