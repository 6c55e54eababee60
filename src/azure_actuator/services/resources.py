"""Resource group management for a cluster."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from azure.core.exceptions import ResourceNotFoundError
from azure.mgmt.resource.resources.models import ResourceGroup

from ..security import log_security_audit_event
from .deployments import wait_for

if TYPE_CHECKING:
    from ..scope import Scope

logger = logging.getLogger(__name__)

CLUSTER_TAG_PREFIX = "sigs.k8s.io_cluster-api-provider-azure_cluster_"
RESOURCE_LIFECYCLE_OWNED = "owned"


def cluster_tag(cluster_name: str) -> str:
    """Tag key marking a resource as belonging to `cluster_name`."""
    return f"{CLUSTER_TAG_PREFIX}{cluster_name}"


class ResourcesService:
    """Creates and deletes the resource group that holds a cluster."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope
        self._client = scope.resource_client

    def reconcile_resource_group(self) -> None:
        """Create or update the cluster resource group.

        Raises:
            HttpResponseError: If Azure rejects the request.
        """
        scope = self._scope
        group = ResourceGroup(
            location=scope.location,
            tags={cluster_tag(scope.name): RESOURCE_LIFECYCLE_OWNED},
        )
        self._client.resource_groups.create_or_update(
            resource_group_name=scope.resource_group,
            parameters=group,
        )
        logger.info(
            f"Resource group '{scope.resource_group}' ensured in {scope.location}",
            extra={"cluster": scope.name},
        )

    def delete_resource_group(self) -> None:
        """Delete the cluster resource group and wait for completion.

        A resource group that no longer exists counts as deleted.

        Raises:
            HttpResponseError: If Azure rejects the deletion.
            DeploymentTimeoutError: If deletion does not finish in time.
        """
        scope = self._scope
        audit = scope.config.security.enable_audit_logging
        cluster_ref = f"{scope.namespace}/{scope.name}"

        if audit:
            log_security_audit_event(
                "deletion",
                cluster=cluster_ref,
                target_resource=scope.resource_group,
                action="delete_resource_group",
                result="started",
            )

        try:
            poller = self._client.resource_groups.begin_delete(
                resource_group_name=scope.resource_group,
            )
        except ResourceNotFoundError:
            logger.info(
                f"Resource group '{scope.resource_group}' already deleted",
                extra={"cluster": scope.name},
            )
            return

        try:
            wait_for(
                poller,
                scope.config.delete_timeout_seconds,
                f"Deletion of resource group {scope.resource_group}",
            )
        except Exception:
            if audit:
                log_security_audit_event(
                    "deletion",
                    cluster=cluster_ref,
                    target_resource=scope.resource_group,
                    action="delete_resource_group",
                    result="failure",
                )
            raise

        if audit:
            log_security_audit_event(
                "deletion",
                cluster=cluster_ref,
                target_resource=scope.resource_group,
                action="delete_resource_group",
                result="success",
            )
        logger.info(
            f"Resource group '{scope.resource_group}' deleted",
            extra={"cluster": scope.name},
        )
