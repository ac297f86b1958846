"""Read the Provisioning singleton."""

from provisioning_controller.exceptions import ProvisioningConfigError
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.provisioning import (
    PROVISIONING_SINGLETON_NAME,
    ProvisioningConfig,
)
from provisioning_controller.store import ObjectStore, ResourceKind, object_name

logger = get_logger(__name__)


def read_provisioning_cr(store: ObjectStore) -> ProvisioningConfig | None:
    """
    Fetch the Provisioning configuration by its well-known name.

    Returns:
        The parsed configuration, or None when the singleton does not exist.

    Raises:
        StoreAccessError: If the store cannot be read.
        ProvisioningConfigError: If the resource cannot be decoded.
    """
    obj = store.get(ResourceKind.PROVISIONING, PROVISIONING_SINGLETON_NAME)
    if obj is None:
        logger.debug(f"Provisioning {PROVISIONING_SINGLETON_NAME!r} not found")
        return None
    if not isinstance(obj.get("metadata"), dict):
        raise ProvisioningConfigError(
            f"Provisioning {PROVISIONING_SINGLETON_NAME!r} could not be decoded",
            f"metadata must be a mapping, got {type(obj.get('metadata')).__name__}",
        )
    if object_name(obj) != PROVISIONING_SINGLETON_NAME:
        logger.debug(f"Ignoring Provisioning named {object_name(obj)!r}")
        return None

    try:
        return ProvisioningConfig.from_object(obj)
    except ValueError as e:
        raise ProvisioningConfigError(
            f"Provisioning {PROVISIONING_SINGLETON_NAME!r} could not be decoded",
            str(e),
        )
