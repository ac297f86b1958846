"""Data models for the provisioning controller."""

from provisioning_controller.models.infrastructure import InfrastructureStatus, PlatformType
from provisioning_controller.models.outcome import (
    Condition,
    ConditionType,
    ErrorKind,
    NetworkStackMode,
    ReconcileOutcome,
)
from provisioning_controller.models.provisioning import (
    PROVISIONING_SINGLETON_NAME,
    ProvisioningConfig,
    ProvisioningNetwork,
)

__all__ = [
    "Condition",
    "ConditionType",
    "ErrorKind",
    "InfrastructureStatus",
    "NetworkStackMode",
    "PlatformType",
    "PROVISIONING_SINGLETON_NAME",
    "ProvisioningConfig",
    "ProvisioningNetwork",
    "ReconcileOutcome",
]
