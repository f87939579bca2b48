"""
CashFusion - conf.py - configuration & settings management
"""
from typing import Optional, Tuple

class DictStorage:
    """ Minimal in-memory stand-in for a wallet storage object. """
    def __init__(self, initial=None):
        self._data = dict(initial or {})

    def get(self, key, default=None):
        return self._data.get(key, default)

    def put(self, key, value):
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class Conf:
    """
    A class that's a simple wrapper around CashFusion settings stored in a
    storage object (anything with .get(key, default) and .put(key, value),
    e.g. a wallet's storage). The intended use-case is for outside code
    to construct these object as needed to read a key, e.g.:
            r = Conf(storage).max_rounds     # getter
            Conf(storage).max_rounds = 3     # setter
    Setting a value to None restores the default.
    """

    class Defaults:
        ServerList = [  # first one is the default
            ('89.40.7.97', 8787, False),
        ]
        Server = ServerList[0]
        TorHost = '127.0.0.1'
        TorPort = 9050
        MaxRounds = 5
        MaxCryptoFailures = 2
        SkipSignaturesPolicy = 'quit'  # or 'retry'
        InactiveTimeout = 600  # seconds to wait in pools before giving up

    SKIP_SIGNATURES_POLICIES = ('quit', 'retry')

    def __init__(self, storage):
        assert storage is not None
        self.storage = storage

    @property
    def server(self) -> Tuple[str, int, bool]:
        host, port, ssl = self.storage.get('cashfusion_server', self.Defaults.Server)
        return str(host), int(port), bool(ssl)
    @server.setter
    def server(self, t : Optional[Tuple[str, int, bool]]):
        if t is not None:
            host, port, ssl = t
            assert isinstance(host, str) and host
            assert 0 < int(port) < 65536
            t = (host, int(port), bool(ssl))
        self.storage.put('cashfusion_server', t)

    @property
    def tor_host(self) -> str:
        return str(self.storage.get('cashfusion_tor_host', self.Defaults.TorHost))
    @tor_host.setter
    def tor_host(self, host : Optional[str]):
        self.storage.put('cashfusion_tor_host', host)

    @property
    def tor_port(self) -> int:
        return int(self.storage.get('cashfusion_tor_port', self.Defaults.TorPort))
    @tor_port.setter
    def tor_port(self, port : Optional[int]):
        if port is not None:
            port = int(port)
            assert 0 < port < 65536
        self.storage.put('cashfusion_tor_port', port)

    @property
    def max_rounds(self) -> int:
        return max(1, int(self.storage.get('cashfusion_max_rounds', self.Defaults.MaxRounds)))
    @max_rounds.setter
    def max_rounds(self, n : Optional[int]):
        if n is not None: n = int(n)
        self.storage.put('cashfusion_max_rounds', n)

    @property
    def max_crypto_failures(self) -> int:
        return max(1, int(self.storage.get('cashfusion_max_crypto_failures', self.Defaults.MaxCryptoFailures)))
    @max_crypto_failures.setter
    def max_crypto_failures(self, n : Optional[int]):
        if n is not None: n = int(n)
        self.storage.put('cashfusion_max_crypto_failures', n)

    @property
    def skip_signatures_policy(self) -> str:
        policy = self.storage.get('cashfusion_skip_signatures_policy', self.Defaults.SkipSignaturesPolicy)
        if policy not in self.SKIP_SIGNATURES_POLICIES:
            policy = self.Defaults.SkipSignaturesPolicy
        return policy
    @skip_signatures_policy.setter
    def skip_signatures_policy(self, policy : Optional[str]):
        if policy is not None and policy not in self.SKIP_SIGNATURES_POLICIES:
            raise ValueError('unknown skip_signatures policy {!r}'.format(policy))
        self.storage.put('cashfusion_skip_signatures_policy', policy)

    @property
    def inactive_timeout(self) -> float:
        return float(self.storage.get('cashfusion_inactive_timeout', self.Defaults.InactiveTimeout))
    @inactive_timeout.setter
    def inactive_timeout(self, secs : Optional[float]):
        if secs is not None: secs = float(secs)
        self.storage.put('cashfusion_inactive_timeout', secs)
