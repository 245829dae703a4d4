# This software is provided 'as-is', without any express or implied
# warranty.  In no event will the author be held liable for any damages
# arising from the use of this software.
#
# Permission is granted to anyone to use this software for any purpose,
# including commercial applications, and to alter it and redistribute it
# freely, subject to the following restrictions:
#
# 1. The origin of this software must not be misrepresented; you must not
#    claim that you wrote the original software. If you use this software
#    in a product, an acknowledgment in the product documentation would be
#    appreciated but is not required.
# 2. Altered source versions must be plainly marked as such, and must not be
#    misrepresented as being the original software.
# 3. This notice may not be removed or altered from any source distribution.

import base64
import unittest

import nacl.signing
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from dkimparse.errors import KeyFormatError
from dkimparse.key import bitsize, evaluate_pk, Key


class TestKey(unittest.TestCase):

    def test_parse_defaults(self):
        key = Key.parse('p=dGVzdA==')
        self.assertEqual('DKIM1', key.version)
        self.assertEqual('rsa', key.key_type)
        self.assertIsNone(key.hash_algorithms)
        self.assertEqual([], key.flags)
        self.assertEqual(['*'], key.service_types)
        self.assertEqual(b'test', key.data)
        self.assertFalse(key.revoked)
        self.assertFalse(key.testing)

    def test_parse_bytes_record(self):
        key = Key.parse(
            b'v=DKIM1; k=ed25519; h=sha256; t=y:s; s=email; n=hi; p=dGVzdA==')
        self.assertEqual('ed25519', key.key_type)
        self.assertEqual(['sha256'], key.hash_algorithms)
        self.assertEqual(['y', 's'], key.flags)
        self.assertTrue(key.testing)
        self.assertEqual('hi', key.notes)

    def test_folded_key_data(self):
        key = Key.parse('k=rsa; p=dGVz\r\n dA==')
        self.assertEqual(b'test', key.data)

    def test_empty_p_is_revoked(self):
        self.assertTrue(Key.parse('v=DKIM1; p=').revoked)

    def test_missing_p(self):
        self.assertRaises(KeyFormatError, Key.parse, 'v=DKIM1; k=rsa')

    def test_bad_version(self):
        self.assertRaises(KeyFormatError, Key.parse, 'v=DKIM2; p=dGVzdA==')

    def test_unknown_key_type(self):
        self.assertRaises(KeyFormatError, Key.parse, 'k=dsa; p=dGVzdA==')

    def test_not_for_email(self):
        self.assertRaises(KeyFormatError, Key.parse, 's=tlsrpt; p=dGVzdA==')

    def test_bad_tag_list(self):
        self.assertRaises(KeyFormatError, Key.parse, 'p=dGVzdA==; junk')

    def test_non_ascii_record(self):
        self.assertRaises(KeyFormatError, Key.parse, b'p=\xe9')


class TestEvaluatePK(unittest.TestCase):

    name = 'test._domainkey.example.com.'

    def test_rsa(self):
        private_key = rsa.generate_private_key(
            public_exponent=65537, key_size=1024)
        der = private_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo)
        record = 'v=DKIM1; k=rsa; p=' + base64.b64encode(der).decode('ascii')
        key, pk, keysize = evaluate_pk(self.name, record)
        self.assertEqual('rsa', key.key_type)
        self.assertEqual(1024, keysize)
        self.assertEqual(
            private_key.public_key().public_numbers().n, pk['modulus'])

    def test_ed25519(self):
        verify_key = nacl.signing.SigningKey.generate().verify_key
        record = b'v=DKIM1; k=ed25519; p=' + base64.b64encode(
            verify_key.encode())
        key, pk, keysize = evaluate_pk(self.name, record)
        self.assertEqual('ed25519', key.key_type)
        self.assertEqual(verify_key.encode(), pk.encode())
        self.assertEqual(256, keysize)

    def test_missing_record(self):
        self.assertRaisesRegex(
            KeyFormatError, 'missing public key', evaluate_pk, self.name, None)

    def test_revoked(self):
        self.assertRaisesRegex(
            KeyFormatError, 'revoked', evaluate_pk, self.name, 'v=DKIM1; p=')

    def test_unparsable_key(self):
        self.assertRaisesRegex(
            KeyFormatError, 'could not parse', evaluate_pk, self.name,
            'v=DKIM1; p=dGVzdA==')

    def test_bitsize(self):
        self.assertEqual(8, bitsize(255))
        self.assertEqual(9, bitsize(256))
