import unittest

from ..conf import Conf, DictStorage


class TestConf(unittest.TestCase):

    def setUp(self):
        self.storage = DictStorage()
        self.conf = Conf(self.storage)

    def test_defaults(self):
        self.assertEqual(self.conf.server, Conf.Defaults.Server)
        self.assertEqual(self.conf.tor_host, '127.0.0.1')
        self.assertEqual(self.conf.tor_port, 9050)
        self.assertEqual(self.conf.max_rounds, 5)
        self.assertEqual(self.conf.max_crypto_failures, 2)
        self.assertEqual(self.conf.skip_signatures_policy, 'quit')
        self.assertEqual(self.conf.inactive_timeout, 600.)

    def test_set_and_reset(self):
        self.conf.server = ('fusion.example.com', '8789', 1)
        self.assertEqual(self.conf.server, ('fusion.example.com', 8789, True))
        # a fresh Conf on the same storage sees the change
        self.assertEqual(Conf(self.storage).server, ('fusion.example.com', 8789, True))
        self.conf.server = None
        self.assertEqual(self.conf.server, Conf.Defaults.Server)

        self.conf.max_rounds = '3'
        self.assertEqual(self.conf.max_rounds, 3)
        self.conf.max_rounds = None
        self.assertEqual(self.conf.max_rounds, 5)

        self.conf.tor_port = 9150
        self.assertEqual(self.conf.tor_port, 9150)
        self.conf.inactive_timeout = 30
        self.assertEqual(self.conf.inactive_timeout, 30.)

    def test_floors(self):
        self.conf.max_rounds = 0
        self.assertEqual(self.conf.max_rounds, 1)
        self.conf.max_crypto_failures = -4
        self.assertEqual(self.conf.max_crypto_failures, 1)

    def test_skip_signatures_policy(self):
        self.conf.skip_signatures_policy = 'retry'
        self.assertEqual(self.conf.skip_signatures_policy, 'retry')
        with self.assertRaises(ValueError):
            self.conf.skip_signatures_policy = 'ignore'
        self.assertEqual(self.conf.skip_signatures_policy, 'retry')
        # junk in storage falls back to the default
        self.storage.put('cashfusion_skip_signatures_policy', 'bogus')
        self.assertEqual(self.conf.skip_signatures_policy, 'quit')

    def test_bad_values(self):
        with self.assertRaises(AssertionError):
            self.conf.tor_port = 70000
        with self.assertRaises(AssertionError):
            self.conf.server = ('', 8787, False)


if __name__ == '__main__':
    unittest.main()
