import hashlib
import unittest

from ..protocol import Protocol
from ..util import calc_initial_hash, calc_round_hash, listhash


class TestListHash(unittest.TestCase):

    def test_definition(self):
        expected = hashlib.sha256(b'\0\0\0\x02ab' + b'\0\0\0\0' + b'\0\0\0\x01c').digest()
        self.assertEqual(listhash([b'ab', b'', b'c']), expected)
        self.assertEqual(listhash([]), hashlib.sha256(b'').digest())

    def test_boundaries(self):
        self.assertNotEqual(listhash([b'ab', b'c']), listhash([b'a', b'bc']))
        self.assertNotEqual(listhash([b'abc']), listhash([b'abc', b'']))
        self.assertNotEqual(listhash([b'a', b'b']), listhash([b'b', b'a']))

    def test_iterables(self):
        self.assertEqual(listhash(x for x in (b'x', b'y')), listhash([b'x', b'y']))


class TestSessionHashes(unittest.TestCase):
    args = (100000, b'covert.example.onion', 8788, False, 1600000000)

    def test_initial_hash(self):
        h = calc_initial_hash(*self.args)
        self.assertEqual(len(h), 32)
        self.assertEqual(h, calc_initial_hash(*self.args))
        self.assertEqual(h, listhash([b'Cash Fusion Session', Protocol.VERSION,
                                      (100000).to_bytes(8, 'big'), b'covert.example.onion',
                                      (8788).to_bytes(4, 'big'), b'\0',
                                      (1600000000).to_bytes(8, 'big')]))

    def test_initial_hash_sensitivity(self):
        h = calc_initial_hash(*self.args)
        tier, domain, port, ssl, t = self.args
        variants = [
            (tier + 1, domain, port, ssl, t),
            (tier, domain + b'.', port, ssl, t),
            (tier, domain, port + 1, ssl, t),
            (tier, domain, port, True, t),
            (tier, domain, port, ssl, t + 1),
            ]
        hashes = {calc_initial_hash(*v) for v in variants}
        self.assertEqual(len(hashes), len(variants))
        self.assertNotIn(h, hashes)

    def test_round_hash(self):
        last = calc_initial_hash(*self.args)
        commitments = [b'c1', b'c2']
        components = [b'x1', b'x2', b'x3']
        h = calc_round_hash(last, b'\x02' * 33, 1600000040, commitments, components)
        self.assertEqual(h, calc_round_hash(last, b'\x02' * 33, 1600000040, list(commitments), list(components)))
        self.assertEqual(h, listhash([b'Cash Fusion Round', last, b'\x02' * 33,
                                      (1600000040).to_bytes(8, 'big'),
                                      listhash(commitments), listhash(components)]))

        # chaining: a different previous hash gives a different round hash
        self.assertNotEqual(h, calc_round_hash(b'\0' * 32, b'\x02' * 33, 1600000040, commitments, components))
        # one flipped bit anywhere changes everything
        other = calc_round_hash(last, b'\x02' * 33, 1600000040, commitments, [b'x1', b'x2', b'x2'])
        self.assertNotEqual(h, other)
        differing_bits = bin(int.from_bytes(h, 'big') ^ int.from_bytes(other, 'big')).count('1')
        self.assertGreater(differing_bits, 64)


if __name__ == '__main__':
    unittest.main()
