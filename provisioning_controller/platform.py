"""Decide whether the provisioning subsystem applies to this cluster."""

from provisioning_controller.exceptions import PlatformIndeterminateError
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.infrastructure import (
    INFRASTRUCTURE_NAME,
    InfrastructureStatus,
    PlatformType,
)
from provisioning_controller.store import ObjectStore, ResourceKind

logger = get_logger(__name__)


def read_infrastructure(store: ObjectStore) -> InfrastructureStatus:
    """
    Fetch and parse the cluster Infrastructure status.

    Raises:
        PlatformIndeterminateError: If the object is missing or its status is malformed.
        StoreAccessError: If the store cannot be read.
    """
    obj = store.get(ResourceKind.INFRASTRUCTURE, INFRASTRUCTURE_NAME)
    if obj is None:
        raise PlatformIndeterminateError(
            "Unable to determine platform: Infrastructure 'cluster' not found",
            "The cluster status authority has not published infrastructure status yet",
        )
    try:
        return InfrastructureStatus.from_object(obj)
    except ValueError as e:
        raise PlatformIndeterminateError(
            "Unable to determine platform: malformed Infrastructure status", str(e)
        )


def is_enabled(store: ObjectStore) -> bool:
    """
    Return True when the cluster runs on bare metal.

    An unset platform means the subsystem simply does not apply. Any other
    concrete platform, or status that cannot be read, is an error rather than
    a silent False.

    Raises:
        PlatformIndeterminateError: If the platform cannot be decided.
        StoreAccessError: If the store cannot be read.
    """
    infra = read_infrastructure(store)
    platform = infra.platform_type

    if platform is PlatformType.BAREMETAL:
        return True
    if platform is PlatformType.UNSET:
        logger.debug("Infrastructure platform is unset, provisioning is disabled")
        return False

    raise PlatformIndeterminateError(
        f"Unsupported platform type: {infra.platform!r}",
        f"Provisioning is only managed on {PlatformType.BAREMETAL.value} clusters",
    )
