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

"""DKIM-Signature tag-value model (RFC 6376 section 3.5)."""

import base64
import binascii
import re
import time

from dkimparse.canonicalization import (
    CanonicalizationPolicy,
    InvalidCanonicalizationPolicyError,
    )
from dkimparse.crypto import HASH_ALGORITHMS
from dkimparse.errors import MessageFormatError, ValidationError
from dkimparse.util import InvalidTagValueList, parse_tag_value

__all__ = [
    'Signature',
    'validate_signature_fields',
    ]

#: Leeway for mailers with inaccurate clocks, in seconds.
SLOP = 36000

BASE64_RE = re.compile(r"[\s0-9A-Za-z+/]+=*\s*$")


def validate_signature_fields(sig, now=None):
    """Validate DKIM-Signature fields.

    Basic checks for presence and correct formatting of mandatory fields.
    Raises a ValidationError if checks fail, otherwise returns None.

    @param sig: A dict mapping field keys to values.
    @param now: current time in seconds since the epoch (default time.time())
    """
    mandatory_fields = ('v', 'a', 'b', 'bh', 'd', 'h', 's')
    for field in mandatory_fields:
        if field not in sig:
            raise ValidationError("DKIM signature missing %s=" % field)
    if sig['v'] != "1":
        raise ValidationError("v= value is not 1 (%s)" % sig['v'])
    if sig['a'] not in HASH_ALGORITHMS:
        raise ValidationError("unknown signature algorithm: %s" % sig['a'])
    if BASE64_RE.match(sig['b']) is None:
        raise ValidationError("b= value is not valid base64 (%s)" % sig['b'])
    if BASE64_RE.match(sig['bh']) is None:
        raise ValidationError(
            "bh= value is not valid base64 (%s)" % sig['bh'])
    if not sig['d'] or not sig['s']:
        raise ValidationError("d= and s= values must not be empty")
    if 'i' in sig and (
        len(sig['i']) <= len(sig['d']) or
        not sig['i'].lower().endswith(sig['d'].lower()) or
        sig['i'][-len(sig['d'])-1] not in ('@', '.')):
        raise ValidationError(
            "i= domain is not a subdomain of d= (i=%s d=%s)" %
            (sig['i'], sig['d']))
    if 'l' in sig and re.match(r"\d{1,76}$", sig['l']) is None:
        raise ValidationError(
            "l= value is not a decimal integer (%s)" % sig['l'])
    if 'q' in sig and sig['q'] != "dns/txt":
        raise ValidationError("q= value is not dns/txt (%s)" % sig['q'])
    if now is None:
        now = int(time.time())
    t_sign = 0
    if 't' in sig:
        if re.match(r"\d+$", sig['t']) is None:
            raise ValidationError(
                "t= value is not a decimal integer (%s)" % sig['t'])
        t_sign = int(sig['t'])
        if t_sign > now + SLOP:
            raise ValidationError(
                "t= value is in the future (%s)" % sig['t'])
    if 'x' in sig:
        if re.match(r"\d+$", sig['x']) is None:
            raise ValidationError(
                "x= value is not a decimal integer (%s)" % sig['x'])
        x_sign = int(sig['x'])
        if x_sign < now - SLOP:
            raise ValidationError(
                "x= value is past (%s)" % sig['x'])
        if x_sign < t_sign:
            raise ValidationError(
                "x= value is less than t= value (x=%s t=%s)" %
                (sig['x'], sig['t']))


def b64decode(value):
    """Decode a base64 tag value, ignoring embedded folding whitespace."""
    try:
        return base64.b64decode(re.sub(r"\s+", "", value), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("invalid base64 value: %s" % e)


class Signature(object):
    """A parsed DKIM-Signature header field value.

    Instances are created with L{Signature.parse} and are not modified
    afterwards.
    """

    def __init__(self, tags):
        #: The raw tag=value dict.
        self.tags = tags
        self.version = tags['v']
        self.algorithm = tags['a']
        #: The c= value, "header/body"; simple/simple when absent.
        self.canonical = tags.get('c', 'simple/simple')
        self.domain = tags['d']
        self.selector = tags['s']
        #: Signed header field names, lowercase, in signing order.
        self.headers = [
            x.lower() for x in re.split(r"\s*:\s*", tags['h'].strip()) if x]
        self.length = int(tags['l']) if 'l' in tags else None
        self.body_hash = b64decode(tags['bh'])
        self.signature = b64decode(tags['b'])
        self.identity = tags.get('i', '@' + self.domain)
        self.query = tags.get('q', 'dns/txt')
        self.timestamp = int(tags['t']) if 't' in tags else None
        self.expiration = int(tags['x']) if 'x' in tags else None

    @classmethod
    def parse(cls, value):
        """Parse the value of a DKIM-Signature header field.

        @param value: the header field value (text after the colon)
        @return: a L{Signature}
        @raise MessageFormatError: the value is not a valid tag=value list
        or names an unknown canonicalization
        @raise ValidationError: a tag is missing or has an invalid value
        """
        try:
            tags = parse_tag_value(value)
        except InvalidTagValueList as e:
            raise MessageFormatError("invalid tag-value list: %r" % e)
        validate_signature_fields(tags)
        try:
            policy = CanonicalizationPolicy.from_c_value(tags.get('c'))
        except InvalidCanonicalizationPolicyError as e:
            raise MessageFormatError("invalid c= value: %s" % e.args[0])
        if 'c' in tags:
            tags['c'] = policy.to_c_value()
        sig = cls(tags)
        if not sig.headers:
            raise ValidationError("h= value is empty")
        if 'from' not in sig.headers:
            raise ValidationError("h= value does not include From")
        return sig

    @property
    def hash_algorithm(self):
        """The hash part of a=, e.g. 'sha256'."""
        return self.algorithm.split('-')[-1]

    @property
    def key_type(self):
        """The key type part of a=, e.g. 'rsa'."""
        return self.algorithm.split('-')[0]

    def __repr__(self):
        return '<Signature d=%s s=%s a=%s c=%s>' % (
            self.domain, self.selector, self.algorithm, self.canonical)
