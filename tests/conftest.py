"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from provisioning_controller.addresses import StaticAddressSource
from provisioning_controller.config import ControllerSettings
from provisioning_controller.models.provisioning import PROVISIONING_SINGLETON_NAME
from provisioning_controller.reconciler import ControllerContext
from provisioning_controller.sink import RecordingSink
from provisioning_controller.store import InMemoryStore

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

INTERNAL_URL = "https://api-int.ostest.test.metalkube.org:6443"
INTERNAL_HOST = "api-int.ostest.test.metalkube.org"


def infrastructure(platform="BareMetal", url=INTERNAL_URL, name="cluster") -> dict:
    """Infrastructure object as the API server serves it."""
    status = {}
    if platform is not None:
        status["platform"] = platform
    if url is not None:
        status["apiServerInternalURI"] = url
    return {
        "apiVersion": "config.openshift.io/v1",
        "kind": "Infrastructure",
        "metadata": {"name": name},
        "status": status,
    }


def provisioning(name=PROVISIONING_SINGLETON_NAME, **spec) -> dict:
    """Provisioning object as the API server serves it."""
    return {
        "apiVersion": "metal3.io/v1alpha1",
        "kind": "Provisioning",
        "metadata": {"name": name},
        "spec": spec
        or {
            "provisioningNetwork": "Managed",
            "provisioningInterface": "enp1s0",
            "provisioningIP": "172.22.0.3",
            "provisioningNetworkCIDR": "172.22.0.0/24",
            "provisioningDHCPRange": "172.22.0.10,172.22.0.100",
        },
    }


@pytest.fixture
def make_infrastructure():
    """Factory for Infrastructure objects."""
    return infrastructure


@pytest.fixture
def make_provisioning():
    """Factory for Provisioning objects."""
    return provisioning


@pytest.fixture
def store():
    """Store holding a bare-metal Infrastructure and the Provisioning singleton."""
    s = InMemoryStore()
    s.put(infrastructure())
    s.put(provisioning())
    return s


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def context(store, sink):
    """Controller context over the in-memory store with a fixed IPv4 address."""
    return ControllerContext(
        store=store,
        sink=sink,
        address_source=StaticAddressSource(["192.168.111.5"]),
        settings=ControllerSettings(),
    )
