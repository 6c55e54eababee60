"""ARM template deployment and long-running operation helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from azure.core.polling import LROPoller
from azure.mgmt.resource.resources.models import (
    Deployment,
    DeploymentMode,
    DeploymentProperties,
)

from ..config import MAX_DEPLOYMENT_NAME_LENGTH

if TYPE_CHECKING:
    from ..scope import Scope

logger = logging.getLogger(__name__)

# Deployment name prefix for tracking
DEPLOYMENT_NAME_PREFIX = "cluster-actuator"

ARM_TEMPLATE_SCHEMA = (
    "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#"
)


class DeploymentTimeoutError(Exception):
    """Raised when an Azure long-running operation exceeds its timeout."""

    pass


def deployment_name(cluster_name: str, purpose: str) -> str:
    """Stable deployment name for one cluster and purpose.

    The name is reused across reconciles so ARM keeps one deployment record
    per purpose instead of accumulating history.
    """
    suffix = f"-{purpose}"
    max_cluster_len = MAX_DEPLOYMENT_NAME_LENGTH - len(DEPLOYMENT_NAME_PREFIX) - len(suffix) - 1
    return f"{DEPLOYMENT_NAME_PREFIX}-{cluster_name[:max_cluster_len]}{suffix}"


def wait_for(poller: LROPoller[Any], timeout_seconds: int, operation_name: str) -> Any:
    """Block until `poller` completes or `timeout_seconds` elapse.

    Raises:
        DeploymentTimeoutError: If the operation is still running at the deadline.
        HttpResponseError: If Azure reports the operation as failed.
    """
    result = poller.result(timeout=timeout_seconds)
    if not poller.done():
        logger.error(
            f"{operation_name} timed out",
            extra={"operation": operation_name, "timeout_seconds": timeout_seconds},
        )
        raise DeploymentTimeoutError(
            f"{operation_name} did not complete within {timeout_seconds}s"
        )
    return result


def deploy_template(
    scope: Scope,
    purpose: str,
    template: dict[str, Any],
    parameters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Deploy an inline ARM template into the cluster resource group.

    Incremental mode leaves resources outside the template alone, so the
    deployment is idempotent across reconciles.

    Args:
        scope: Scope of the cluster being reconciled.
        purpose: Short identifier used in the deployment name ("network", "api-lb").
        template: ARM template body.
        parameters: ARM parameters in {"name": {"value": ...}} form.

    Returns:
        Template outputs flattened to {name: value}.
    """
    name = deployment_name(scope.name, purpose)
    deployment = Deployment(
        properties=DeploymentProperties(
            mode=DeploymentMode.INCREMENTAL,
            template=template,
            parameters=parameters or {},
        )
    )

    logger.info(
        "Starting ARM deployment",
        extra={
            "cluster": scope.name,
            "resource_group": scope.resource_group,
            "deployment_name": name,
        },
    )

    poller = scope.resource_client.deployments.begin_create_or_update(
        resource_group_name=scope.resource_group,
        deployment_name=name,
        parameters=deployment,
    )
    result = wait_for(poller, scope.config.deployment_timeout_seconds, f"Deployment {name}")

    outputs = (result.properties.outputs if result.properties else None) or {}
    return {key: value.get("value") for key, value in outputs.items()}
