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
#
# Copyright (c) 2008 Greg Hewgill http://hewgill.com
#
# This has been modified from the original software.
# Copyright (c) 2011 William Grant <me@williamgrant.id.au>
#
# This has been modified from the original software.

__all__ = [
    'DigestTooLargeError',
    'HASH_ALGORITHMS',
    'parse_ed25519_key',
    'parse_public_key',
    'RSASSA_PKCS1_v1_5_verify',
    'UnparsableKeyError',
    ]

import hashlib

import nacl.exceptions
import nacl.signing
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


# DER encoded DigestInfo prefixes, RFC 8017 section 9.2, note 1.
HASH_ID_MAP = {
    'sha1': bytes.fromhex('3021300906052b0e03021a05000414'),
    'sha256': bytes.fromhex('3031300d060960864801650304020105000420'),
    }

HASH_ALGORITHMS = {
    'rsa-sha1': hashlib.sha1,
    'rsa-sha256': hashlib.sha256,
    'ed25519-sha256': hashlib.sha256,
    }


class DigestTooLargeError(Exception):
    """The digest is too large to fit within the requested length."""
    pass


class UnparsableKeyError(Exception):
    """The data could not be parsed as a key."""
    pass


def parse_public_key(data):
    """Parse an RSA public key.

    @param data: DER-encoded X.509 subjectPublicKeyInfo
        containing an RFC3447 RSAPublicKey.
    @return: RSA public key
    """
    try:
        key = serialization.load_der_public_key(data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise UnparsableKeyError(str(e))
    if not isinstance(key, rsa.RSAPublicKey):
        raise UnparsableKeyError("not an RSA public key")
    numbers = key.public_numbers()
    pk = {
        'modulus': numbers.n,
        'publicExponent': numbers.e,
    }
    return pk


def parse_ed25519_key(data):
    """Parse a raw 32 byte Ed25519 public key (RFC 8463).

    @param data: the public key bytes
    @return: a nacl VerifyKey
    """
    try:
        return nacl.signing.VerifyKey(data)
    except (nacl.exceptions.ValueError, nacl.exceptions.TypeError) as e:
        raise UnparsableKeyError(str(e))


def EMSA_PKCS1_v1_5_encode(hash, mlen):
    """Encode a digest with RFC3447 EMSA-PKCS1-v1_5.

    @param hash: hash object to encode
    @param mlen: desired message length
    @return: encoded digest byte string
    """
    dinfo = HASH_ID_MAP[hash.name] + hash.digest()
    if len(dinfo) + 11 > mlen:
        raise DigestTooLargeError()
    return b"\x00\x01" + b"\xff" * (mlen - len(dinfo) - 3) + b"\x00" + dinfo


def str2int(s):
    """Convert a byte string to an integer.

    @param s: byte string representing a positive integer to convert
    @return: converted integer
    """
    return int.from_bytes(s, 'big')


def int2str(n, length=-1):
    """Convert an integer to a byte string.

    @param n: positive integer to convert
    @param length: minimum length
    @return: converted bytestring, of at least the minimum length if it was
        specified
    """
    assert n >= 0
    if length < 0:
        length = max(1, (n.bit_length() + 7) // 8)
    return n.to_bytes(length, 'big')


def perform_rsa(message, exponent, modulus, mlen):
    """Perform RSA signing or verification.

    @param message: byte string to operate on
    @param exponent: public or private key exponent
    @param modulus: key modulus
    @param mlen: desired output length
    @return: byte string result of the operation
    """
    return int2str(pow(str2int(message), exponent, modulus), mlen)


def RSASSA_PKCS1_v1_5_verify(hash, signature, pk):
    """Verify a digest signed with RFC3447 RSASSA-PKCS1-v1_5.

    @param hash: hash object to check
    @param signature: signed digest byte string
    @param pk: public key, as returned by parse_public_key
    @return: True if the signature is valid, False otherwise
    """
    modlen = len(int2str(pk['modulus']))
    if len(signature) != modlen:
        return False
    if str2int(signature) >= pk['modulus']:
        return False
    encoded_digest = EMSA_PKCS1_v1_5_encode(hash, modlen)
    signed_digest = perform_rsa(
        signature, pk['publicExponent'], pk['modulus'], modlen)
    return encoded_digest == signed_digest
