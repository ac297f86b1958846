"""Data models for the result of a reconcile pass."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from provisioning_controller.models.provisioning import ProvisioningConfig


class NetworkStackMode(str, Enum):
    """Address family mode of the provisioning network."""

    V4 = "v4"
    V6 = "v6"
    DUAL = "dual"


class ErrorKind(str, Enum):
    """Failure categories a reconcile pass can report."""

    PLATFORM_INDETERMINATE = "PlatformIndeterminate"
    STORE_ACCESS_FAILURE = "StoreAccessFailure"
    ENDPOINT_MALFORMED = "EndpointMalformed"
    # Reported through an absent config, never as an outcome error
    CONFIG_NOT_FOUND = "ConfigNotFound"
    ADDRESS_DISCOVERY_FAILURE = "AddressDiscoveryFailure"
    SINK_FAILURE = "SinkFailure"


class ReconcileOutcome(BaseModel):
    """Snapshot produced by one reconcile pass and consumed by the deployment sink."""

    model_config = ConfigDict(frozen=True)

    enabled: bool
    config: ProvisioningConfig | None = None
    network_stack: NetworkStackMode | None = None
    internal_host: str | None = None
    error: ErrorKind | None = None
    message: str | None = None
    requeue_after: float | None = None

    @property
    def converged(self) -> bool:
        """True when the pass produced a full configuration without error."""
        return self.error is None and self.config is not None and self.enabled

    def to_snapshot(self) -> dict:
        """Render the parameters handed to the deployment sink."""
        return {
            "enabled": self.enabled,
            "networkStack": self.network_stack.value if self.network_stack else None,
            "apiServerInternalHost": self.internal_host,
            "provisioning": self.config.to_spec() if self.config else None,
        }


class ConditionType(str, Enum):
    """Condition types recorded on the Provisioning status."""

    AVAILABLE = "Available"
    DEGRADED = "Degraded"
    DISABLED = "Disabled"


class Condition(BaseModel):
    """Status condition in the Kubernetes convention."""

    type: ConditionType
    status: bool
    reason: str
    message: str = ""
    last_transition_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_status_dict(self) -> dict:
        """Render as a status.conditions entry."""
        return {
            "type": self.type.value,
            "status": "True" if self.status else "False",
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
