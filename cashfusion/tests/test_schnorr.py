import hashlib
import secrets
import unittest

from .. import schnorr
from ..ecc import pubkey_from_privkey
from ..util import CryptoError

OFF_CURVE = b'\x04' + (1).to_bytes(32, 'big') + (1).to_bytes(32, 'big')


class TestSchnorr(unittest.TestCase):

    def test_deterministic_sig(self):
        ''' Duplicate the deterministic sig test from Bitcoin ABC's
        src/test/key_tests.cpp '''
        private_key = bytes.fromhex(
            "12b004fff7f4b69ef8650e767f18f11ede158148b425660723b9f9a66e61f747")

        pubkey = bytes.fromhex(
            "030b4c866585dd868a9d62348a9cd008d6a312937048fff31670e7e920cfc7a744")
        self.assertEqual(pubkey_from_privkey(private_key), pubkey)

        def sha(b):
            return hashlib.sha256(b).digest()

        msg = b"Very deterministic message"
        msghash = sha(sha(msg))
        self.assertEqual(msghash, bytes.fromhex(
            "5255683da567900bfd3e786ed8836a4e7763c221bf1ac20ece2a5171b9199e8a"))

        sig = schnorr.sign(private_key, msghash)
        ref_sig = bytes.fromhex("2c56731ac2f7a7e7f11518fc7722a166b02438924ca9d8"
                                "b4d111347b81d0717571846de67ad3d913a8fdf9d8f3f7"
                                "3161a4c48ae81cb183b214765feb86e255ce")
        self.assertEqual(sig, ref_sig)

        self.assertTrue(schnorr.verify(pubkey, sig, msghash))
        # uncompressed pubkey verifies the same
        self.assertTrue(schnorr.verify(pubkey_from_privkey(private_key, comp=False), sig, msghash))
        self.assertFalse(schnorr.verify(pubkey, sig, sha(msghash)))

    def test_bad_arguments(self):
        with self.assertRaises(ValueError):
            schnorr.sign(b'\0' * 32, b'\1' * 32)
        with self.assertRaises(ValueError):
            schnorr.sign(b'\1' * 31, b'\1' * 32)
        pubkey = pubkey_from_privkey(b'\1' * 32)
        with self.assertRaises(ValueError):
            schnorr.verify(pubkey, b'\0' * 63, b'\1' * 32)


class TestBlind(unittest.TestCase):

    def setUp(self):
        self.privkey = secrets.token_bytes(32)
        self.pubkey = pubkey_from_privkey(self.privkey)

    def test_round_trip(self):
        signer = schnorr.BlindSigner()
        R = signer.get_R()

        message_hash = secrets.token_bytes(32)
        requester = schnorr.BlindSignatureRequest(self.pubkey, R, message_hash)

        e_request = requester.get_request()
        self.assertEqual(len(e_request), 32)
        s_response = signer.sign(self.privkey, e_request)

        signature = requester.finalize(s_response)
        self.assertTrue(schnorr.verify(self.pubkey, signature, message_hash))

        # the signature is only good for the original message
        altered = bytearray(message_hash)
        altered[0] ^= 1
        self.assertFalse(schnorr.verify(self.pubkey, signature, bytes(altered)))

        # try bastardizing the s response by adding 1 to last byte
        s_bad = bytearray(s_response)
        s_bad[-1] = (s_bad[-1] + 1) % 256
        with self.assertRaises(CryptoError):
            requester.finalize(bytes(s_bad))
        with self.assertRaises(CryptoError):
            requester.finalize(s_response[:31])

    def test_signer_only_signs_once(self):
        signer = schnorr.BlindSigner()
        signer.sign(self.privkey, b'\1' * 32)
        with self.assertRaises(RuntimeError):
            signer.sign(self.privkey, b'\2' * 32)

    def test_bad_points(self):
        R = schnorr.BlindSigner().get_R()
        with self.assertRaises(ValueError):
            schnorr.BlindSignatureRequest(self.pubkey, OFF_CURVE, b'\0' * 32)
        with self.assertRaises(ValueError):
            schnorr.BlindSignatureRequest(b'\x05' + self.pubkey[1:], R, b'\0' * 32)


if __name__ == '__main__':
    unittest.main()
