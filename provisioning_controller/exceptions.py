"""Custom exceptions for the provisioning controller."""

from provisioning_controller.models.outcome import ErrorKind


class ProvisioningControllerError(Exception):
    """Base exception for all provisioning controller errors."""

    kind: ErrorKind | None = None
    retryable: bool = True

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class PlatformIndeterminateError(ProvisioningControllerError):
    """Raised when the cluster platform cannot be determined."""

    kind = ErrorKind.PLATFORM_INDETERMINATE


class StoreAccessError(ProvisioningControllerError):
    """Raised for transport or permission failures against the resource store."""

    kind = ErrorKind.STORE_ACCESS_FAILURE


class ConflictError(StoreAccessError):
    """Raised when an update is rejected because the object changed underneath."""

    pass


class ProvisioningConfigError(StoreAccessError):
    """Raised when the Provisioning resource cannot be decoded."""

    pass


class EndpointMalformedError(ProvisioningControllerError):
    """Raised when the internal API server URL is absent or unparsable."""

    kind = ErrorKind.ENDPOINT_MALFORMED


class AddressDiscoveryError(ProvisioningControllerError):
    """Raised when the addresses of the internal API host cannot be resolved."""

    kind = ErrorKind.ADDRESS_DISCOVERY_FAILURE


class SinkError(ProvisioningControllerError):
    """Raised when the deployment sink fails to materialize an outcome."""

    kind = ErrorKind.SINK_FAILURE


class ConfigurationError(ProvisioningControllerError):
    """Exception raised for controller settings errors."""

    retryable = False


class ReconcileCancelledError(ProvisioningControllerError):
    """Raised when a reconcile pass is cancelled or runs past its deadline."""

    retryable = False
