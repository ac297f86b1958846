"""Discover the addresses the internal API host is reachable on."""

import socket
from typing import Protocol

from provisioning_controller.exceptions import AddressDiscoveryError
from provisioning_controller.logging_config import get_logger

logger = get_logger(__name__)


class AddressSource(Protocol):
    """Anything that can list the addresses of a host."""

    def addresses(self, host: str) -> list[str]: ...


class DnsAddressSource:
    """Resolve addresses through the system resolver."""

    def __init__(self, resolver=socket.getaddrinfo):
        self.resolver = resolver

    def addresses(self, host: str) -> list[str]:
        """
        Look up every address of ``host``.

        Returns:
            Distinct addresses in resolver order.

        Raises:
            AddressDiscoveryError: If the lookup fails or returns nothing.
        """
        logger.debug(f"Resolving addresses of {host}")
        try:
            infos = self.resolver(host, None, 0, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            raise AddressDiscoveryError(
                f"Failed to resolve {host}",
                f"{e}. Check that cluster DNS serves the internal API record.",
            )

        found: list[str] = []
        for _family, _type, _proto, _canonname, sockaddr in infos:
            # IPv6 sockaddr carries flow info and scope id after the address
            address = sockaddr[0]
            if address not in found:
                found.append(address)

        if not found:
            raise AddressDiscoveryError(f"No addresses found for {host}")

        logger.debug(f"{host} resolved to {', '.join(found)}")
        return found


class StaticAddressSource:
    """Fixed address list, for clusters where DNS is not authoritative."""

    def __init__(self, addresses: list[str]):
        self._addresses = list(addresses)

    def addresses(self, host: str) -> list[str]:
        return list(self._addresses)
