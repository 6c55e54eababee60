"""Cluster actuator invoked by the cluster controller.

reconcile() converges a cluster's Azure resources in a fixed order and
stops at the first failing step; the controller re-runs the whole sequence
on its next pass, relying on every step being idempotent. delete() removes
the cluster resource group and asks the controller to retry on failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

from .client import ClusterClient
from .deployer import Deployer
from .errors import RequeueAfterError
from .models import Cluster
from .scope import DEFAULT_SCOPE_GETTER, Scope, ScopeGetter, ScopeParams, released
from .services.certificates import CertificatesService
from .services.network import NetworkService
from .services.resources import ResourcesService

logger = logging.getLogger(__name__)

# Delay before the controller retries a failed deletion
DELETE_REQUEUE_AFTER = timedelta(seconds=5)

API_LOAD_BALANCER_ROLE = "api"

ReconcileStep = tuple[str, Callable[[], None]]


class ReconcileError(Exception):
    """Terminal reconcile/delete failure; the message names cluster and step."""

    pass


@dataclass
class ActuatorParams:
    """Construction parameters for Actuator."""

    client: ClusterClient | None
    scope_getter: ScopeGetter = field(default=DEFAULT_SCOPE_GETTER)


class Actuator:
    """Performs cluster reconciliation and deletion on Azure."""

    def __init__(self, params: ActuatorParams) -> None:
        self._client = params.client
        self._deployer = Deployer(scope_getter=params.scope_getter)

    @property
    def deployer(self) -> Deployer:
        return self._deployer

    def get_ip(self, cluster: Cluster) -> str:
        return self._deployer.get_ip(cluster)

    def get_kubeconfig(self, cluster: Cluster) -> str:
        return self._deployer.get_kubeconfig(cluster)

    def reconcile(self, cluster: Cluster) -> None:
        """Reconcile a cluster.

        Raises:
            ReconcileError: If the scope cannot be created or a step fails.
                The collaborator error is chained as __cause__.
        """
        logger.info(f"Reconciling cluster {cluster.name}", extra={"namespace": cluster.namespace})

        scope = self._new_scope(cluster)
        with released(scope):
            for step_name, step in self._reconcile_steps(scope):
                try:
                    step()
                except Exception as e:
                    raise ReconcileError(
                        f"failed to reconcile {step_name} for cluster {cluster.name!r}: {e}"
                    ) from e

    def delete(self, cluster: Cluster) -> None:
        """Delete a cluster's Azure resources.

        Only the resource group is deleted; everything the cluster owns lives
        inside it.

        Raises:
            ReconcileError: If the scope cannot be created.
            RequeueAfterError: If resource group deletion failed and should be retried.
        """
        logger.info(f"Deleting cluster {cluster.name}", extra={"namespace": cluster.namespace})

        scope = self._new_scope(cluster)
        with released(scope):
            resources = ResourcesService(scope)
            try:
                resources.delete_resource_group()
            except Exception as e:
                logger.error(
                    f"Error deleting resource group: {e}",
                    extra={"cluster": cluster.name, "resource_group": scope.resource_group},
                )
                raise RequeueAfterError(requeue_after=DELETE_REQUEUE_AFTER) from e

    def _new_scope(self, cluster: Cluster) -> Scope:
        try:
            return self._deployer.scope_getter(ScopeParams(cluster=cluster, client=self._client))
        except Exception as e:
            raise ReconcileError(f"failed to create scope: {e}") from e

    def _reconcile_steps(self, scope: Scope) -> list[ReconcileStep]:
        """Ordered reconcile steps; later steps depend on earlier ones."""
        certificates = CertificatesService(scope)
        resources = ResourcesService(scope)
        network = NetworkService(scope)

        return [
            ("certificates", certificates.reconcile_certificates),
            ("resource group", resources.reconcile_resource_group),
            ("network", network.reconcile_network),
            (
                "load balancers",
                lambda: network.reconcile_load_balancer(API_LOAD_BALANCER_ROLE),
            ),
        ]
