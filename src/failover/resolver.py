"""
Resolver

Reads the addresses the domain currently advertises through the system
resolver. A family with no address is an empty string, not an error.
"""

import asyncio
import logging
import socket
from typing import List, Optional

from .addressing import AddressFamily, address_family
from .errors import ResolutionError
from .models import AdvertisedState

logger = logging.getLogger(__name__)


def lookup_addresses(domain: str) -> List[str]:
    """Return every address the system resolver reports for ``domain``"""
    try:
        infos = socket.getaddrinfo(domain, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"DNS lookup failure for {domain}: {e}") from e

    addresses = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        address = sockaddr[0]
        if address not in addresses:
            addresses.append(address)
    return addresses


def first_of_family(addresses: List[str], family: AddressFamily) -> str:
    for address in addresses:
        if address_family(address) is family:
            return address
    return ""


def resolve_family(domain: str, family: AddressFamily) -> str:
    """Return the first advertised address of ``family``, or '' if there is none"""
    return first_of_family(lookup_addresses(domain), family)


def resolve_advertised(domain: str) -> AdvertisedState:
    """Read both families from a single lookup"""
    addresses = lookup_addresses(domain)
    return AdvertisedState(
        ipv4=first_of_family(addresses, AddressFamily.IPV4),
        ipv6=first_of_family(addresses, AddressFamily.IPV6),
    )


async def resolve_advertised_async(
    domain: str, timeout_seconds: Optional[float] = None
) -> AdvertisedState:
    """Resolve in a worker thread, bounded by ``timeout_seconds``"""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(resolve_advertised, domain),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise ResolutionError(
            f"DNS lookup for {domain} timed out after {timeout_seconds}s"
        ) from e
