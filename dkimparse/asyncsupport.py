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
# Copyright (c) 2017 Valimail Inc
# Contact: Gene Shuman <gene@valimail.com>
#
# This has been modified from the original software.

import asyncio

import aiodns

import dkimparse
from dkimparse.dnsplug import DNSTempError, to_qname
from dkimparse.key import evaluate_pk
from dkimparse.types import Status

__all__ = [
    'get_txt_async',
    'load_pk_from_dns_async',
    'verify_async'
    ]

# c-ares status codes that a retry may get past.
TEMPORARY_ERRORS = (
    aiodns.error.ARES_ETIMEOUT,
    aiodns.error.ARES_ESERVFAIL,
    aiodns.error.ARES_ECONNREFUSED,
    )


async def get_txt_async(name, timeout=5):
    """Return a TXT record associated with a DNS name in an asnyc loop. For
    DKIM we can assume there is only one."""

    if isinstance(name, bytes):
        try:
            name = name.decode('ascii')
        except UnicodeDecodeError:
            return None
    qname = to_qname(name)
    if qname is None:
        return None

    # Note: This will use the existing loop
    loop = asyncio.get_running_loop()
    resolver = aiodns.DNSResolver(loop=loop, timeout=timeout)

    try:
        result = await resolver.query(qname.to_text(), 'TXT')
    except aiodns.error.DNSError as e:
        if e.args and e.args[0] in TEMPORARY_ERRORS:
            raise DNSTempError("%s: %s" % (name, e))
        result = None

    if result:
        return result[0].text
    else:
        return None


async def load_pk_from_dns_async(name, dnsfunc, timeout=5):
    s = await dnsfunc(name, timeout=timeout)
    return evaluate_pk(name, s)


class DKIM(dkimparse.DKIM):

    #: Verify the signature of one processed result, awaiting the key lookup.
    #: Failures are recorded in the result, never raised.
    #: @param result: a L{VerificationResult} from L{process}
    #: @param dnsfunc: a coroutine function to lookup TXT resource records
    async def verify_sig(self, result, dnsfunc=get_txt_async):
        sig = result.signature
        try:
            self.verify_body(result)
            name = sig.selector + "._domainkey." + sig.domain + "."
            key, pk, keysize = await load_pk_from_dns_async(
                name, dnsfunc, timeout=self.timeout)
            self.finish(result, self.verify_header(result, key, pk, keysize))
        except DNSTempError as e:
            self.logger.error("%s" % e)
            result.fail(e, Status.TEMPFAIL)
        except dkimparse.KeyFormatError as e:
            self.logger.error("%s" % e)
            result.fail(e)
        except dkimparse.DKIMException as e:
            self.logger.debug("%s" % e)
            result.fail(e)

    async def verify_all(self, dnsfunc=get_txt_async):
        results = []
        for headers in self.signature_header_sets():
            result = self.process(headers)
            if result.status is Status.NONE:
                await self.verify_sig(result, dnsfunc)
            if result.status is Status.NONE:
                raise dkimparse.InternalError(
                    "no verdict for %r" % result.header)
            result.freeze()
            results.append(result)
        return results


async def verify_async(message, logger=None, dnsfunc=None, minkey=1024,
        timeout=5):
    """Verify every DKIM signature on a message in an asyncio context.
    @param message: the raw message bytes (CRLF line endings)
    @param logger: a logger to which debug info will be written (default None)
    @param dnsfunc: an optional coroutine function to lookup TXT records
    @param timeout: number of seconds for DNS lookup timeout (default = 5)
    @return: list of L{dkimparse.VerificationResult}, one per signature header
    """
    if not dnsfunc:
        dnsfunc = get_txt_async
    d = DKIM(message, logger=logger, minkey=minkey, timeout=timeout)
    return await d.verify_all(dnsfunc=dnsfunc)
