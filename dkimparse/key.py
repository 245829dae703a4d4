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
# Copyright (c) 2016, 2017, 2018, 2019 Scott Kitterman <scott@kitterman.com>
#
# This has been modified from the original software.

"""DKIM public key record model (RFC 6376 section 3.6.1)."""

import base64
import binascii
import re

from dkimparse.crypto import (
    parse_ed25519_key,
    parse_public_key,
    UnparsableKeyError,
    )
from dkimparse.errors import KeyFormatError
from dkimparse.util import InvalidTagValueList, parse_tag_value

__all__ = [
    'bitsize',
    'evaluate_pk',
    'Key',
    ]

KEY_TYPES = ('rsa', 'ed25519')


def bitsize(x):
    """Return size of long in bits."""
    return len(bin(x)) - 2


def _split_list(value):
    return [x.lower() for x in re.split(r"\s*:\s*", value.strip()) if x]


class Key(object):
    """A parsed DKIM key record."""

    def __init__(self, tags):
        self.tags = tags
        self.version = tags.get('v', 'DKIM1')
        self.key_type = tags.get('k', 'rsa').lower()
        #: Acceptable hash algorithms, None when any is acceptable.
        self.hash_algorithms = _split_list(tags['h']) if 'h' in tags else None
        self.flags = _split_list(tags.get('t', ''))
        self.service_types = _split_list(tags.get('s', '*'))
        self.notes = tags.get('n')
        try:
            self.data = base64.b64decode(
                re.sub(r"\s+", "", tags['p']), validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyFormatError("p= value is not valid base64: %s" % e)

    @property
    def revoked(self):
        """An empty p= value means the key has been revoked."""
        return not self.data

    @property
    def testing(self):
        return 'y' in self.flags

    @classmethod
    def parse(cls, record):
        """Parse a DKIM key record.

        @param record: the TXT record, as bytes or str
        @return: a L{Key}
        @raise KeyFormatError: the record is not a usable DKIM key record
        """
        if isinstance(record, bytes):
            try:
                record = record.decode('ascii')
            except UnicodeDecodeError:
                raise KeyFormatError("key record is not ASCII: %r" % record)
        try:
            tags = parse_tag_value(record)
        except InvalidTagValueList as e:
            raise KeyFormatError("invalid key record: %r" % e)
        if tags.get('v', 'DKIM1') != 'DKIM1':
            raise KeyFormatError("v= value is not DKIM1 (%s)" % tags['v'])
        if 'p' not in tags:
            raise KeyFormatError("incomplete public key: %s" % record)
        key = cls(tags)
        if key.key_type not in KEY_TYPES:
            raise KeyFormatError("unknown key type: %s" % key.key_type)
        if '*' not in key.service_types and 'email' not in key.service_types:
            raise KeyFormatError(
                "key is not for email (s=%s)" % tags.get('s'))
        return key

    def __repr__(self):
        return '<Key k=%s revoked=%s>' % (self.key_type, self.revoked)


def evaluate_pk(name, s):
    """Turn the TXT record for name into a usable public key.

    @param name: the DNS name the record was found at, for error messages
    @param s: the TXT record, or None when there is none
    @return: three-tuple of (L{Key}, public key, key size in bits)
    @raise KeyFormatError: the record is missing, revoked or unusable
    """
    if not s:
        raise KeyFormatError("missing public key: %s" % name)
    key = Key.parse(s)
    if key.revoked:
        raise KeyFormatError("public key revoked: %s" % name)
    try:
        if key.key_type == 'rsa':
            pk = parse_public_key(key.data)
            keysize = bitsize(pk['modulus'])
        else:
            pk = parse_ed25519_key(key.data)
            keysize = 256
    except UnparsableKeyError as e:
        raise KeyFormatError("could not parse public key (%s): %s" %
                             (key.tags['p'], e))
    return key, pk, keysize
