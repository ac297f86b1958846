"""Resolve the internal API server host from cluster infrastructure status."""

from urllib.parse import urlsplit

from provisioning_controller.exceptions import EndpointMalformedError
from provisioning_controller.platform import read_infrastructure
from provisioning_controller.store import ObjectStore


def parse_internal_host(url: str) -> str:
    """
    Return the host part of an API server URL, without scheme or port.

    Raises:
        EndpointMalformedError: If the URL is empty, unparsable or has no host.
    """
    if not url or not url.strip():
        raise EndpointMalformedError(
            "Infrastructure status has no apiServerInternalURI",
            "The internal API endpoint is published by the cluster installer",
        )
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError as e:
        raise EndpointMalformedError(f"Unparsable apiServerInternalURI {url!r}", str(e))
    if not host:
        raise EndpointMalformedError(
            f"apiServerInternalURI {url!r} has no host component",
            "Expected a URL such as https://api-int.example.com:6443",
        )
    return host


def api_server_internal_host(store: ObjectStore) -> str:
    """
    Read the Infrastructure status and return its internal API server host.

    Raises:
        EndpointMalformedError: If the URL is absent or malformed.
        PlatformIndeterminateError: If the Infrastructure object is missing.
        StoreAccessError: If the store cannot be read.
    """
    return parse_internal_host(read_infrastructure(store).api_server_internal_url)
