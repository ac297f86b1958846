"""Controller settings."""

import os
from pathlib import Path

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from provisioning_controller.exceptions import ConfigurationError

ENV_PREFIX = "PROVISIONING_CONTROLLER_"


class ControllerSettings(BaseModel):
    """Tunables of the controller process."""

    namespace: str = "openshift-machine-api"
    resync_seconds: float = 600
    reconcile_timeout_seconds: float = 60
    retry_base_seconds: float = 5
    retry_max_seconds: float = 300
    status_update_attempts: int = 3
    watch_timeout_seconds: int = 300
    outcome_config_map: str = "metal3-provisioning-outcome"
    log_level: str = "INFO"

    @field_validator(
        "resync_seconds",
        "reconcile_timeout_seconds",
        "retry_base_seconds",
        "retry_max_seconds",
        "status_update_attempts",
        "watch_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Durations and counts must be positive."""
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v

    @field_validator("namespace", "outcome_config_map")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate names are not empty."""
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one the logging module knows."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return v.upper()

    @model_validator(mode="after")
    def validate_retry_bounds(self) -> "ControllerSettings":
        """The backoff ceiling cannot be below its base."""
        if self.retry_max_seconds < self.retry_base_seconds:
            raise ValueError("retry_max_seconds must be >= retry_base_seconds")
        return self

    @classmethod
    def load(
        cls, path: str | Path | None = None, environ: dict | None = None
    ) -> "ControllerSettings":
        """
        Load settings from an optional YAML file, then apply environment overrides.

        Environment variables are named PROVISIONING_CONTROLLER_<FIELD>, e.g.
        PROVISIONING_CONTROLLER_RESYNC_SECONDS=300.

        Raises:
            ConfigurationError: If the file cannot be read or the values are invalid.
        """
        import yaml

        environ = os.environ if environ is None else environ
        data: dict = {}

        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigurationError(
                    f"Settings file not found: {path}",
                    "Create the file or omit --config to use defaults",
                )
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Failed to parse settings file {path}", str(e))
            except PermissionError as e:
                raise ConfigurationError(
                    f"Permission denied reading settings file: {path}",
                    f"{e}. Check the file permissions of the mounted settings",
                )
            except OSError as e:
                raise ConfigurationError(
                    f"Failed to read settings file {path}",
                    f"{e}. --config must point to a readable YAML file",
                )
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Settings file {path} must contain a mapping",
                    f"Got {type(data).__name__}",
                )

        for name in cls.model_fields:
            value = environ.get(ENV_PREFIX + name.upper())
            if value is not None:
                data[name] = value

        try:
            return cls(**data)
        except ValidationError as e:
            problems = "\n".join(
                f"  - {'.'.join(str(x) for x in err['loc']) or 'settings'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError("Invalid controller settings", problems)
