"""Credential handling for the actuator.

Every Azure call made on behalf of a cluster authenticates with a managed
identity. Service principal secrets, client certificates and passwords in
the environment are treated as a fatal misconfiguration.

SECURITY INVARIANTS:
1. No secret-bearing AZURE_* variable may be present when a Scope is created
2. ManagedIdentityCredential is the only credential type handed to a Scope
"""

from __future__ import annotations

import logging
import os
from typing import Any

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Variables that would let azure-identity fall back to a secret-based credential
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_vars} set. The cluster actuator only "
    "authenticates with a managed identity. Remove the credential variables, "
    "assign a managed identity to the workload and grant it Contributor on "
    "the cluster resource groups."
)


class SecretlessViolationError(Exception):
    """A credential secret was found in the environment.

    The actuator must not create a Scope while this condition holds.
    """

    def __init__(self, env_vars: list[str]) -> None:
        self.env_vars = env_vars
        super().__init__(SECRETLESS_VIOLATION_MESSAGE.format(env_vars=", ".join(env_vars)))


def find_credential_env_vars() -> list[str]:
    """Names of forbidden credential variables set to a non-empty value."""
    return [name for name in FORBIDDEN_CREDENTIAL_ENV_VARS if os.environ.get(name)]


def enforce_secretless_architecture() -> None:
    """Refuse to continue when a credential secret is present.

    Raises:
        SecretlessViolationError: Naming every forbidden variable that is set.
    """
    found = find_credential_env_vars()
    if not found:
        return

    logger.critical(
        "Secretless architecture violation",
        extra={
            "security_event": "credential_detected",
            "env_vars": found,
            "action": "scope_blocked",
        },
    )
    raise SecretlessViolationError(found)


def get_managed_identity_credential(
    client_id: str | None = None,
) -> ManagedIdentityCredential:
    """Return the managed identity credential used for provider sessions.

    Args:
        client_id: Client ID of a user-assigned identity. The system-assigned
            identity is used when None.

    Raises:
        SecretlessViolationError: If a credential secret is in the environment.
    """
    enforce_secretless_architecture()

    kwargs: dict[str, Any] = {}
    if client_id:
        kwargs["client_id"] = client_id
    logger.debug(
        "Creating managed identity credential",
        extra={
            "identity": "user-assigned" if client_id else "system-assigned",
            "client_id_prefix": client_id[:8] if client_id else None,
        },
    )
    return ManagedIdentityCredential(**kwargs)


def log_security_audit_event(
    event_type: str,
    cluster: str,
    target_resource: str | None = None,
    action: str | None = None,
    result: str | None = None,
) -> None:
    """Emit an audit record for a destructive or credential-related action.

    Records carry `security_audit=True` so log pipelines can route them
    separately from operational logs.

    Args:
        event_type: Category of event ("deletion", ...).
        cluster: Namespaced name of the cluster the event concerns.
        target_resource: Azure resource being acted on.
        action: Operation name, e.g. "delete_resource_group".
        result: "started", "success" or "failure".
    """
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "cluster": cluster,
            "target_resource": target_resource,
            "action": action,
            "result": result,
        },
    )
