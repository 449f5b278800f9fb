"""
Address helpers shared by the resolver, decision engine and synchronizer.
"""

import ipaddress
from enum import Enum
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ANCHOR_NAME = "@"


class AddressFamily(Enum):
    """Address family and the DNS record type that carries it"""
    IPV4 = "A"
    IPV6 = "AAAA"

    @property
    def record_type(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return "IPv4" if self is AddressFamily.IPV4 else "IPv6"


def parse_address(value: Optional[str]) -> Optional[IPAddress]:
    """Parse an address, returning None for empty or malformed input.

    IPv4-mapped IPv6 addresses are folded to their IPv4 form so that
    ``::ffff:10.0.0.1`` and ``10.0.0.1`` compare equal.
    """
    if not value:
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return address.ipv4_mapped
    return address


def address_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two addresses by value.

    An empty or unparsable address only equals another empty or
    unparsable one.
    """
    return parse_address(left) == parse_address(right)


def address_family(value: Optional[str]) -> Optional[AddressFamily]:
    address = parse_address(value)
    if address is None:
        return None
    if isinstance(address, ipaddress.IPv4Address):
        return AddressFamily.IPV4
    return AddressFamily.IPV6


def record_fqdn(name: str, domain: str) -> str:
    """Full record name: ``@`` is the bare domain, anything else a label of it"""
    domain = domain.rstrip(".")
    if name == ANCHOR_NAME:
        return domain
    return f"{name}.{domain}"
