"""Data model for the cluster Infrastructure status resource."""

from enum import Enum

from pydantic import BaseModel

INFRASTRUCTURE_GROUP = "config.openshift.io"
INFRASTRUCTURE_VERSION = "v1"
INFRASTRUCTURE_PLURAL = "infrastructures"
INFRASTRUCTURE_NAME = "cluster"


class PlatformType(str, Enum):
    """Platform types the controller distinguishes."""

    BAREMETAL = "BareMetal"
    NONE = "None"
    OTHER = "Other"
    UNSET = ""


class InfrastructureStatus(BaseModel):
    """The fields of Infrastructure status the controller consumes."""

    platform: str = ""
    api_server_internal_url: str = ""

    @property
    def platform_type(self) -> PlatformType:
        """Map the raw platform string onto the known platform types."""
        try:
            return PlatformType(self.platform)
        except ValueError:
            return PlatformType.OTHER

    @classmethod
    def from_object(cls, obj: dict) -> "InfrastructureStatus":
        """Parse from an Infrastructure resource.

        Raises:
            ValueError: If the status block is not a mapping
        """
        status = obj.get("status")
        if status is None:
            status = {}
        if not isinstance(status, dict):
            raise ValueError("Infrastructure status must be a mapping")

        platform = status.get("platform") or ""
        if not platform:
            # Newer clusters only populate platformStatus
            platform_status = status.get("platformStatus") or {}
            if isinstance(platform_status, dict):
                platform = platform_status.get("type") or ""

        return cls(
            platform=str(platform),
            api_server_internal_url=str(status.get("apiServerInternalURI") or ""),
        )
