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
# Copyright (c) 2016 Google, Inc.
# Contact: Brandon Long <blong@google.com>
#
# This has been modified from the original software.
# Copyright (c) 2016 Scott Kitterman <scott@kitterman.com>
#
# This has been modified from the original software.

import base64
import re

import nacl.exceptions

from dkimparse.canonicalization import (
    algorithms as CANONICALIZATION_ALGORITHMS,
    CanonicalizationPolicy,
    InvalidCanonicalizationPolicyError,
    )
from dkimparse.crypto import (
    DigestTooLargeError,
    HASH_ALGORITHMS,
    RSASSA_PKCS1_v1_5_verify,
    )
from dkimparse.dnsplug import DNSTempError, get_txt
from dkimparse.errors import (
    DKIMException,
    InternalError,
    KeyFormatError,
    MessageFormatError,
    ValidationError,
    )
from dkimparse.key import evaluate_pk, Key
from dkimparse.signature import Signature
from dkimparse.types import Status
from dkimparse.util import get_default_logger

__all__ = [
    "DKIMException",
    "DNSTempError",
    "InternalError",
    "KeyFormatError",
    "MessageFormatError",
    "ValidationError",
    "DKIM",
    "Key",
    "Signature",
    "Status",
    "VerificationResult",
    "filter_signature_headers",
    "find_signature_header_sets",
    "is_signature_header",
    "parse",
    "process_header",
    "split_headers",
    "split_message",
    "verify",
]

#: Header field names treated as DKIM signatures, including vendor aliases.
SIGNATURE_HEADERS = ('DKIM-Signature', 'X-Google-DKIM-Signature')

SIGNATURE_HEADER_RE = re.compile(
    r'(?:%s)[\x20\x09]*:' % '|'.join(re.escape(x) for x in SIGNATURE_HEADERS),
    re.IGNORECASE)

#: A header starts after a CRLF that is followed by a non-WSP or the end.
HEADER_SPLIT_RE = re.compile(r'\r\n(?=[^\x20\x09]|\Z)')

# FWS  =  ([*WSP CRLF] 1*WSP) /  obs-FWS ; Folding white space  [RFC5322]
FWS = br'(?:(?:\s*\r?\n)?\s+)?'
RE_BTAG = re.compile(br'([;\s]b'+FWS+br'=)(?:'+FWS+br'[a-zA-Z0-9+/=])*(?:\r?\n\Z)?')


class HashThrough(object):
    def __init__(self, hasher, debug=False):
        self.data = []
        self.hasher = hasher
        self.name = hasher.name
        self.debug = debug

    def update(self, data):
        if self.debug:
            self.data.append(data)
        return self.hasher.update(data)

    def digest(self):
        return self.hasher.digest()

    def hashed(self):
        return b''.join(self.data)


def split_message(message):
    """Split a raw message at the first empty line.

    >>> split_message(b'From: a@b\\r\\nSubject: hi\\r\\n\\r\\nbody\\r\\n')
    ('From: a@b\\r\\nSubject: hi', b'body\\r\\n')

    @param message: the raw message bytes
    @return: tuple of (header block text, raw body bytes)
    @raise MessageFormatError: no header/body boundary was found
    """
    boundary = message.find(b"\r\n\r\n")
    if boundary == -1:
        raise MessageFormatError("No header boundary found")
    header = message[:boundary].decode('utf-8', 'surrogateescape')
    return header, message[boundary + 4:]


def split_headers(header):
    """Split a header block into logical header lines.

    Continuation lines stay attached to the header they fold.

    >>> split_headers('From: a@b\\r\\nSubject: hi\\r\\n there\\r\\nTo: c@d')
    ['From: a@b', 'Subject: hi\\r\\n there', 'To: c@d']
    """
    if not header:
        return []
    return HEADER_SPLIT_RE.split(header)


def is_signature_header(header):
    """Return True if the header line is a DKIM signature of any variant.

    >>> is_signature_header('dkim-signature: v=1')
    True
    >>> is_signature_header('X-Google-DKIM-Signature: v=1')
    True
    >>> is_signature_header('DKIM-Signature-Foo: v=1')
    False
    """
    return SIGNATURE_HEADER_RE.match(header) is not None


def filter_signature_headers(headers, signature_header):
    """Drop signature headers other than signature_header.

    @param headers: list of header lines to filter
    @param signature_header: the signature header line to keep
    @return: the filtered list, original order kept
    """
    return [h for h in headers
            if h == signature_header or not is_signature_header(h)]


def find_signature_header_sets(headers):
    """Build one isolated header set per signature header.

    Each set starts with one signature header, followed by every
    non-signature header in the original order. Signature headers are
    taken by position, so two identical signature headers still give two
    sets.

    @param headers: list of header lines, as from L{split_headers}
    @return: list of header sets, in header order
    """
    sets = []
    for h in headers:
        if not is_signature_header(h):
            continue
        # Slicing from i onwards would let later signatures leak in.
        sig_headers = [x for x in headers if not is_signature_header(x)]
        sig_headers.insert(0, h)
        sets.append(sig_headers)
    return sets


def header_field(header):
    """Turn a header line into a (name, value) pair of bytes.

    The value keeps its leading whitespace and folds and gains the
    terminating CRLF, as it appeared in the message.

    >>> header_field('Subject: hi\\r\\n there')
    (b'Subject', b' hi\\r\\n there\\r\\n')
    """
    name, sep, value = header.partition(':')
    if not sep:
        raise MessageFormatError(
            "Unexpected characters in RFC822 header: %r" % header)
    return (name.encode('utf-8', 'surrogateescape'),
            value.encode('utf-8', 'surrogateescape') + b"\r\n")


def select_headers(headers, include_headers):
    """Select message header fields to be signed/verified.

    >>> h = [('from','biz'),('foo','bar'),('from','baz'),('subject','boring')]
    >>> i = ['from','subject','to','from']
    >>> select_headers(h,i)
    [('from', 'baz'), ('subject', 'boring'), ('from', 'biz')]
    >>> h = [('From','biz'),('Foo','bar'),('Subject','Boring')]
    >>> i = ['from','subject','to','from']
    >>> select_headers(h,i)
    [('From', 'biz'), ('Subject', 'Boring')]
    """
    sign_headers = []
    lastindex = {}
    for h in include_headers:
        assert h == h.lower()
        i = lastindex.get(h, len(headers))
        while i > 0:
            i -= 1
            if h == headers[i][0].lower():
                sign_headers.append(headers[i])
                break
        lastindex[h] = i
    return sign_headers


def process_header(headers, include_headers, canonicalization):
    """Assemble the header bytes covered by the signature in headers[0].

    Header fields named in include_headers are taken bottom-up, as many
    times as they are named, canonicalized with the given header
    algorithm and followed by the signature header itself with its b=
    value removed and no trailing CRLF.

    @param headers: a signature header set; the signature header first
    @param include_headers: signed header names (the h= list)
    @param canonicalization: header canonicalization name, simple or relaxed
    @return: the bytes to hash
    """
    try:
        canonicalize = CANONICALIZATION_ALGORITHMS[canonicalization.lower()]
    except KeyError:
        raise MessageFormatError(
            "unknown header canonicalization: %s" % canonicalization)
    fields = [header_field(h) for h in headers]
    sigheader = fields[0]
    cheaders = canonicalize.canonicalize_headers(fields[1:])
    sign_headers = select_headers(
        cheaders, [x.lower() for x in include_headers])
    csig = canonicalize.canonicalize_headers(
        [(sigheader[0], RE_BTAG.sub(b'\\1', sigheader[1]))])
    return b''.join(x + b":" + y for x, y in
        sign_headers + [(x, y.rstrip(b"\r\n")) for x, y in csig])


class VerificationResult(object):
    """The outcome of processing one signature header.

    A result starts with status NONE and is filled in as processing
    goes. Once it is handed out in a result list it is frozen and any
    assignment raises AttributeError.
    """

    def __init__(self, header=None):
        #: The signature header line this result is about.
        self.header = header
        self.verified = False
        self.status = Status.NONE
        self.error = None
        self.signature = None
        self.key = None
        #: Canonicalized header bytes covered by the signature.
        self.processed_header = None
        #: Raw body, truncated to the l= length when there is one.
        self.body = None
        #: Canonicalized body as hashed for bh=.
        self.processed_body = None
        self.keysize = 0

    def __setattr__(self, name, value):
        if self.__dict__.get('_frozen'):
            raise AttributeError("VerificationResult is frozen")
        object.__setattr__(self, name, value)

    def freeze(self):
        self._frozen = True

    def fail(self, error, status=Status.PERMFAIL):
        self.verified = False
        self.error = error
        self.status = status

    def __repr__(self):
        return '<VerificationResult %s verified=%s error=%r>' % (
            self.status.name, self.verified, self.error)


#: Hold a message and options while its signatures are processed.
class DKIM(object):

    #: Create a DKIM instance to verify an rfc5322 message.
    #:
    #: @param message: the raw message bytes (CRLF line endings)
    #: @param logger: a logger to which debug info will be written (default None)
    #: @param minkey: the minimum RSA key size to accept
    #: @param timeout: number of seconds for DNS lookup timeout
    #: @param debug_content: log the exact bytes hashed at debug level
    #: @raise TypeError: message is not bytes
    #: @raise MessageFormatError: message has no header/body boundary
    def __init__(self, message=None, logger=None, minkey=1024, timeout=5,
                 debug_content=False):
        if logger is None:
            logger = get_default_logger()
        self.logger = logger
        self.minkey = minkey
        self.timeout = timeout
        self.debug_content = debug_content
        self.set_message(message)

    #: Load a new message to be verified.
    #: @param message: the raw message bytes, or None for no message
    def set_message(self, message):
        if message is None:
            self.header, self.body, self.headers = '', b'', []
            return
        if not isinstance(message, (bytes, bytearray)):
            raise TypeError("Message must be bytes")
        self.header, self.body = split_message(bytes(message))
        self.headers = split_headers(self.header)

    def signature_header_sets(self):
        return find_signature_header_sets(self.headers)

    def process(self, headers):
        """Run the parse and canonicalization steps for one header set.

        @param headers: a signature header set, signature header first
        @return: a L{VerificationResult}; on failure its status is PERMFAIL
        """
        result = VerificationResult(headers[0] if headers else None)
        if not headers or not is_signature_header(headers[0]):
            result.fail(MessageFormatError("Missing DKIM-Signature"))
            return result
        try:
            sig = Signature.parse(headers[0].split(':', 1)[1])
        except DKIMException as e:
            self.logger.debug("unparsable signature %r: %s" % (headers[0], e))
            result.fail(e)
            return result
        result.signature = sig
        self.logger.debug("sig: %r" % sig.tags)

        if sig.length is not None:
            result.body = self.body[:sig.length]
        else:
            result.body = self.body

        include_headers = list(sig.headers)
        # address bug#644046 by including any additional From header
        # fields when verifying.  Since there should be only one From header,
        # this shouldn't break any legitimate messages.
        if 'from' in include_headers:
            include_headers.append('from')
        try:
            result.processed_header = process_header(
                headers, include_headers, sig.canonical.split('/')[0])
        except DKIMException as e:
            result.fail(e)
            return result
        if self.debug_content:
            self.logger.debug("processed header: %r" % result.processed_header)
        return result

    def verify_body(self, result):
        """Check the bh= body hash of a processed result.

        @raise ValidationError: the body hash does not match
        """
        sig = result.signature
        try:
            canon_policy = CanonicalizationPolicy.from_c_value(sig.canonical)
        except InvalidCanonicalizationPolicyError as e:
            raise MessageFormatError("invalid c= value: %s" % e.args[0])
        body = canon_policy.canonicalize_body(self.body)
        if sig.length is not None:
            body = body[:sig.length]
        result.processed_body = body

        h = HashThrough(HASH_ALGORITHMS[sig.algorithm](), self.debug_content)
        h.update(body)
        if self.debug_content:
            self.logger.debug("body hashed: %r" % h.hashed())
        bodyhash = h.digest()
        self.logger.debug("bh: %s" % base64.b64encode(bodyhash))
        if bodyhash != sig.body_hash:
            raise ValidationError(
                "body hash mismatch (got %s, expected %s)" %
                (base64.b64encode(bodyhash), sig.tags['bh']))

    def verify_header(self, result, key, pk, keysize):
        """Check the b= signature of a processed result against a key.

        @return: True if the signature verifies or False otherwise
        @raise KeyFormatError: the key does not fit the signature
        """
        sig = result.signature
        result.key = key
        result.keysize = keysize
        if key.key_type != sig.key_type:
            raise KeyFormatError("key type %s does not match a=%s" %
                                 (key.key_type, sig.algorithm))
        if (key.hash_algorithms is not None and
                sig.hash_algorithm not in key.hash_algorithms):
            raise KeyFormatError("hash %s not allowed by key (h=%s)" %
                                 (sig.hash_algorithm, key.tags['h']))

        h = HashThrough(HASH_ALGORITHMS[sig.algorithm](), self.debug_content)
        h.update(result.processed_header)
        if self.debug_content:
            self.logger.debug("signed for %s: %r" %
                              (result.header.split(':', 1)[0], h.hashed()))
        if key.key_type == 'rsa':
            try:
                res = RSASSA_PKCS1_v1_5_verify(h, sig.signature, pk)
            except DigestTooLargeError as e:
                raise KeyFormatError("digest too large for modulus: %s" % e)
            if res and keysize < self.minkey:
                raise KeyFormatError("public key too small: %d" % keysize)
            return res
        try:
            pk.verify(h.digest(), sig.signature)
        except (nacl.exceptions.BadSignatureError, nacl.exceptions.ValueError):
            return False
        return True

    def finish(self, result, res):
        result.verified = res
        if res:
            result.status = Status.OK
        else:
            result.fail(ValidationError("signature did not verify"))
        self.logger.debug("%s valid: %s" % (result.signature.domain, res))

    #: Verify the signature of one processed result.
    #: Failures are recorded in the result, never raised.
    #: @param result: a L{VerificationResult} from L{process}
    #: @param dnsfunc: an optional function to lookup TXT resource records
    #: for a DNS domain.  The default uses dnspython.
    def verify_sig(self, result, dnsfunc=get_txt):
        sig = result.signature
        try:
            self.verify_body(result)
            name = sig.selector + "._domainkey." + sig.domain + "."
            key, pk, keysize = evaluate_pk(
                name, dnsfunc(name, timeout=self.timeout))
            self.finish(result, self.verify_header(result, key, pk, keysize))
        except DNSTempError as e:
            self.logger.error("%s" % e)
            result.fail(e, Status.TEMPFAIL)
        except KeyFormatError as e:
            self.logger.error("%s" % e)
            result.fail(e)
        except DKIMException as e:
            self.logger.debug("%s" % e)
            result.fail(e)

    def parse_all(self):
        """Process every signature without looking up keys.

        @return: list of L{VerificationResult}, in header order; results
        that did not fail keep status NONE
        """
        results = []
        for headers in self.signature_header_sets():
            result = self.process(headers)
            result.freeze()
            results.append(result)
        return results

    #: Verify every signature on the message, one after the other.
    #: @param dnsfunc: an optional function to lookup TXT resource records
    #: for a DNS domain.  The default uses dnspython.
    #: @return: list of L{VerificationResult}, in header order
    #: @raise InternalError: a result was left without a verdict
    def verify_all(self, dnsfunc=get_txt):
        results = []
        for headers in self.signature_header_sets():
            result = self.process(headers)
            if result.status is Status.NONE:
                self.verify_sig(result, dnsfunc)
            if result.status is Status.NONE:
                raise InternalError("no verdict for %r" % result.header)
            result.freeze()
            results.append(result)
        return results


def parse(message, logger=None):
    """Locate and canonicalize every DKIM signature on a message.

    No keys are looked up; results keep status NONE unless the signature
    could not be processed.

    @param message: the raw message bytes (CRLF line endings)
    @param logger: a logger to which debug info will be written (default None)
    @return: list of L{VerificationResult}, one per signature header
    @raise TypeError: message is not bytes
    @raise MessageFormatError: message has no header/body boundary
    """
    return DKIM(message, logger=logger).parse_all()


def verify(message, logger=None, dnsfunc=get_txt, minkey=1024, timeout=5):
    """Verify every DKIM signature on an RFC822 formatted message.

    @param message: the raw message bytes (CRLF line endings)
    @param logger: a logger to which debug info will be written (default None)
    @param dnsfunc: an optional function to lookup TXT resource records
    @param minkey: the minimum RSA key size to accept
    @param timeout: number of seconds for DNS lookup timeout (default = 5)
    @return: list of L{VerificationResult}, one per signature header
    @raise TypeError: message is not bytes
    @raise MessageFormatError: message has no header/body boundary
    """
    d = DKIM(message, logger=logger, minkey=minkey, timeout=timeout)
    return d.verify_all(dnsfunc=dnsfunc)
