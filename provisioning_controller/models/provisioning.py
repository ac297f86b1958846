"""Data model for the Provisioning configuration resource."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, IPvAnyNetwork, field_validator

PROVISIONING_GROUP = "metal3.io"
PROVISIONING_VERSION = "v1alpha1"
PROVISIONING_PLURAL = "provisionings"

# The only Provisioning instance the controller acts on
PROVISIONING_SINGLETON_NAME = "provisioning-configuration"


class ProvisioningNetwork(str, Enum):
    """How the provisioning network is operated."""

    MANAGED = "Managed"
    UNMANAGED = "Unmanaged"
    DISABLED = "Disabled"


_KNOWN_SPEC_KEYS = {
    "provisioningNetwork",
    "provisioningInterface",
    "provisioningIP",
    "provisioningNetworkCIDR",
    "provisioningDHCPRange",
    "provisioningOSDownloadURL",
    "watchAllNamespaces",
    "virtualMediaViaExternalNetwork",
}


class ProvisioningConfig(BaseModel):
    """User-authored subsystem parameters read from the Provisioning singleton."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    provisioning_network: ProvisioningNetwork = Field(
        default=ProvisioningNetwork.MANAGED, alias="provisioningNetwork"
    )
    provisioning_interface: str | None = Field(default=None, alias="provisioningInterface")
    provisioning_ip: IPvAnyAddress | None = Field(default=None, alias="provisioningIP")
    provisioning_network_cidr: IPvAnyNetwork | None = Field(
        default=None, alias="provisioningNetworkCIDR"
    )
    provisioning_dhcp_range: str | None = Field(default=None, alias="provisioningDHCPRange")
    provisioning_os_download_url: str | None = Field(
        default=None, alias="provisioningOSDownloadURL"
    )
    watch_all_namespaces: bool = Field(default=False, alias="watchAllNamespaces")
    virtual_media_via_external_network: bool = Field(
        default=False, alias="virtualMediaViaExternalNetwork"
    )
    extra_spec: dict[str, Any] = Field(default_factory=dict)

    @field_validator("provisioning_dhcp_range")
    @classmethod
    def validate_provisioning_dhcp_range(cls, v: str | None) -> str | None:
        """Validate provisioningDHCPRange is a 'start,end' pair of addresses."""
        if not v:
            return v
        parts = [p.strip() for p in v.split(",")]
        if len(parts) != 2:
            raise ValueError(f"provisioningDHCPRange '{v}' must be 'start,end'")
        for part in parts:
            IPvAnyAddress(part)
        return v

    @classmethod
    def from_object(cls, obj: dict) -> "ProvisioningConfig":
        """Parse from a Provisioning resource as returned by the store.

        Raises:
            ValueError: If metadata or spec is not a mapping, or a field is invalid
        """
        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be a mapping")
        spec = obj.get("spec") or {}
        if not isinstance(spec, dict):
            raise ValueError("spec must be a mapping")
        known = {k: v for k, v in spec.items() if k in _KNOWN_SPEC_KEYS}
        extra = {k: v for k, v in spec.items() if k not in _KNOWN_SPEC_KEYS}
        return cls(name=metadata.get("name", ""), extra_spec=extra, **known)

    def to_spec(self) -> dict:
        """Render back to the resource's spec form."""
        spec = self.model_dump(
            by_alias=True, exclude={"name", "extra_spec"}, exclude_none=True, mode="json"
        )
        spec.update(self.extra_spec)
        return spec
