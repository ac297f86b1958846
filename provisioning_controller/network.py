"""Classify the network stack of the provisioning network from observed addresses."""

import ipaddress
from collections.abc import Iterable

from provisioning_controller.models.outcome import NetworkStackMode

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def normalize_address(address: str | IPAddress) -> IPAddress:
    """Parse an address, turning IPv4-mapped IPv6 into plain IPv4.

    Raises:
        ValueError: If the address cannot be parsed
    """
    ip = ipaddress.ip_address(address.strip() if isinstance(address, str) else address)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def is_local(ip: IPAddress) -> bool:
    """Loopback and link-local addresses never leave the host or segment."""
    return ip.is_loopback or ip.is_link_local


def network_stack(addresses: Iterable[str | IPAddress]) -> NetworkStackMode:
    """
    Classify a set of addresses as IPv4, IPv6 or dual stack.

    Local addresses only decide the family when nothing routable was seen,
    so an IPv4 loopback next to a global IPv6 address stays IPv6. An empty
    set is IPv4.
    """
    ips = [normalize_address(a) for a in addresses]
    routable = [ip for ip in ips if not is_local(ip)]
    considered = routable or ips

    has_v4 = any(ip.version == 4 for ip in considered)
    has_v6 = any(ip.version == 6 for ip in considered)

    if has_v4 and has_v6:
        return NetworkStackMode.DUAL
    if has_v6:
        return NetworkStackMode.V6
    return NetworkStackMode.V4
