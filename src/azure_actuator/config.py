"""Configuration management with validation.

Security constraints are enforced at configuration load time so the actuator
always talks to Azure through a managed identity.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS = 1800
DEFAULT_DELETE_TIMEOUT_SECONDS = 1800
MIN_OPERATION_TIMEOUT_SECONDS = 30
MAX_OPERATION_TIMEOUT_SECONDS = 7200

MAX_DEPLOYMENT_NAME_LENGTH = 64
MAX_RESOURCE_GROUP_NAME_LENGTH = 90

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_LOCATION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"


@dataclass(frozen=True)
class SecurityConfig:
    """Security-related configuration with safe defaults.

    Authentication is always a managed identity; that is not configurable.
    See src/azure_actuator/security.py for enforcement.
    """

    # Emit audit events for destructive operations (resource group deletion)
    enable_audit_logging: bool = True


@dataclass(frozen=True)
class Config:
    """Actuator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    subscription_id: str
    location: str

    # User-assigned identity; system-assigned identity when unset
    identity_client_id: str | None = None

    deployment_timeout_seconds: int = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
    delete_timeout_seconds: int = DEFAULT_DELETE_TIMEOUT_SECONDS

    security: SecurityConfig = field(default_factory=SecurityConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not self.location:
            errors.append("AZURE_LOCATION is required")
        elif not re.match(VALID_LOCATION_PATTERN, self.location.lower()):
            errors.append(f"AZURE_LOCATION must be a valid Azure region: {self.location}")

        for name, value in (
            ("DEPLOYMENT_TIMEOUT", self.deployment_timeout_seconds),
            ("DELETE_TIMEOUT", self.delete_timeout_seconds),
        ):
            if not MIN_OPERATION_TIMEOUT_SECONDS <= value <= MAX_OPERATION_TIMEOUT_SECONDS:
                errors.append(
                    f"{name} must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                    f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
                )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription holding the cluster resources
            AZURE_LOCATION: Location used when a cluster does not declare one
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity (optional)
            DEPLOYMENT_TIMEOUT: Timeout for ARM deployments in seconds (default: 1800)
            DELETE_TIMEOUT: Timeout for resource group deletion in seconds (default: 1800)
            ENABLE_AUDIT_LOGGING: Emit security audit events (default: true)
        """

        env = os.environ
        return cls(
            subscription_id=env.get("AZURE_SUBSCRIPTION_ID", "").strip(),
            location=env.get("AZURE_LOCATION", "").strip(),
            identity_client_id=env.get("AZURE_CLIENT_ID") or None,
            deployment_timeout_seconds=_env_seconds(
                "DEPLOYMENT_TIMEOUT", DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS
            ),
            delete_timeout_seconds=_env_seconds("DELETE_TIMEOUT", DEFAULT_DELETE_TIMEOUT_SECONDS),
            security=SecurityConfig(
                enable_audit_logging=_env_flag("ENABLE_AUDIT_LOGGING", default=True),
            ),
        )


_TRUE_VALUES = frozenset(("true", "1", "yes", "on"))


def _env_seconds(key: str, default: int) -> int:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    if not raw.isdigit():
        raise ConfigurationError(f"{key} must be an integer: {raw}")
    return int(raw)


def _env_flag(key: str, default: bool) -> bool:
    raw = os.environ.get(key, "").strip().lower()
    return raw in _TRUE_VALUES if raw else default
