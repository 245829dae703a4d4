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

import dns.exception
import dns.name
import dns.rdatatype
import dns.resolver

__all__ = [
    'DNSTempError',
    'get_txt',
    'to_qname'
    ]


class DNSTempError(Exception):
    """A transient DNS failure; the lookup may succeed if retried."""
    pass


def to_qname(name):
    """Return name as an absolute dnspython Name.

    @param name: str domain name built from signature tags
    @return: a dns.name.Name, or None if name is not a valid domain name
    """
    try:
        return dns.name.from_text(name)
    except (dns.exception.DNSException, UnicodeError):
        return None


def get_txt_dnspython(name, timeout=5):
    """Return a TXT record associated with a DNS name."""
    qname = to_qname(name)
    if qname is None:
        return None
    try:
        a = dns.resolver.resolve(qname, dns.rdatatype.TXT,
                                 raise_on_no_answer=False, lifetime=timeout,
                                 search=False)
    except dns.resolver.NXDOMAIN:
        return None
    except (dns.exception.Timeout, dns.resolver.NoNameservers) as e:
        raise DNSTempError("%s: %s" % (name, e))
    except dns.exception.DNSException:
        return None
    if a.rrset is None:
        return None
    # For DKIM we can assume there is only one.
    for rdata in a.rrset:
        return b"".join(rdata.strings)
    return None


def get_txt(name, timeout=5):
    """Return a TXT record associated with a DNS name.

    @param name: The bytes or str domain name.
    @param timeout: lookup timeout in seconds
    @return: The TXT record as bytes, or None if there is no record
    @raise DNSTempError: the lookup failed in a way that may be temporary
    """
    if isinstance(name, bytes):
        try:
            name = name.decode('ascii')
        except UnicodeDecodeError:
            return None
    return get_txt_dnspython(name, timeout=timeout)
