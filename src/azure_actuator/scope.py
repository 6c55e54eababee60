"""Per-call provider session bound to one Cluster.

A Scope is created for every reconcile/delete call. It decodes the Azure
provider spec and status from the Cluster object, owns the Azure resource
client for the duration of the call and writes any changes to spec and
status back to the Kubernetes API when it is closed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from azure.mgmt.resource import ResourceManagementClient
from kubernetes.client.exceptions import ApiException
from pydantic import ValidationError

from .config import Config, ConfigurationError
from .models import (
    AzureClusterProviderSpec,
    AzureClusterProviderStatus,
    Cluster,
    Network,
    Subnet,
    Vnet,
)
from .security import get_managed_identity_credential

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential

    from .client import ClusterClient

logger = logging.getLogger(__name__)


class ScopeError(Exception):
    """Raised when a Scope cannot be created or its state cannot be stored."""

    pass


@dataclass
class ScopeParams:
    """Inputs for new_scope.

    `client` may be None for read-only scopes (the Deployer); such scopes
    never write back. `config` and `credential` are resolved from the
    environment when omitted.
    """

    cluster: Cluster | None
    client: ClusterClient | None = None
    config: Config | None = None
    credential: TokenCredential | None = None


class Scope:
    """Provider session for a single cluster and a single call."""

    def __init__(
        self,
        cluster: Cluster,
        client: ClusterClient | None,
        config: Config,
        resource_client: ResourceManagementClient,
        cluster_config: AzureClusterProviderSpec,
        cluster_status: AzureClusterProviderStatus,
    ) -> None:
        self.cluster = cluster
        self.cluster_config = cluster_config
        self.cluster_status = cluster_status
        self._client = client
        self._config = config
        self._resource_client = resource_client
        self._closed = False

        # Snapshot of the decoded state; close() only writes what changed
        self._stored_config = cluster.spec.provider_spec.value or {}
        self._stored_status = cluster.status.provider_status or {}

    @property
    def config(self) -> Config:
        return self._config

    @property
    def resource_client(self) -> ResourceManagementClient:
        return self._resource_client

    @property
    def name(self) -> str:
        return self.cluster.name

    @property
    def namespace(self) -> str:
        return self.cluster.namespace

    @property
    def location(self) -> str:
        return self.cluster_config.location

    @property
    def resource_group(self) -> str:
        return self.cluster_config.resource_group

    @property
    def vnet(self) -> Vnet:
        return self.cluster_config.network_spec.vnet

    @property
    def subnets(self) -> list[Subnet]:
        return self.cluster_config.network_spec.subnets

    @property
    def network(self) -> Network:
        return self.cluster_status.network

    @property
    def closed(self) -> bool:
        return self._closed

    def subnet(self, role: str) -> Subnet | None:
        """Return the subnet with the given role, if declared."""
        for subnet in self.subnets:
            if subnet.role == role:
                return subnet
        return None

    def close(self) -> None:
        """Release the session and persist changed provider spec and status.

        Safe to call more than once; only the first call has an effect.

        Raises:
            ScopeError: If the Kubernetes API rejects the write-back.
        """
        if self._closed:
            return
        self._closed = True

        try:
            if self._client is not None:
                self._store(self._client)
        finally:
            self._resource_client.close()

    def _store(self, client: ClusterClient) -> None:
        config_wire = _merged(self._stored_config, self.cluster_config.to_wire())
        status_wire = _merged(self._stored_status, self.cluster_status.to_wire())
        cluster = self.cluster

        try:
            if config_wire != self._stored_config:
                updated = cluster.model_copy(deep=True)
                updated.spec.provider_spec.value = config_wire
                cluster = client.update(updated)

            if status_wire != self._stored_status:
                updated = cluster.model_copy(deep=True)
                updated.status.provider_status = status_wire
                cluster = client.update_status(updated)
        except ApiException as e:
            logger.error(
                "Failed to store cluster provider state",
                extra={"cluster": self.name, "namespace": self.namespace, "status": e.status},
            )
            raise ScopeError(
                f"failed to store provider state for cluster {self.namespace}/{self.name}: {e.reason}"
            ) from e

        self.cluster = cluster


def _merged(stored: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    # Keys the models do not know about are carried through untouched
    return {**stored, **current}


def new_scope(params: ScopeParams) -> Scope:
    """Create a Scope from a Cluster.

    Raises:
        ScopeError: If the cluster is missing, its provider payload is
            invalid or configuration cannot be loaded.
        SecretlessViolationError: If credential secrets are in the environment.
    """
    cluster = params.cluster
    if cluster is None:
        raise ScopeError("failed to generate new scope from nil cluster")

    try:
        cluster_config = AzureClusterProviderSpec.model_validate(
            cluster.spec.provider_spec.value or {}
        )
    except ValidationError as e:
        raise ScopeError(f"failed to load cluster provider config: {e}") from e

    try:
        cluster_status = AzureClusterProviderStatus.model_validate(
            cluster.status.provider_status or {}
        )
    except ValidationError as e:
        raise ScopeError(f"failed to load cluster provider status: {e}") from e

    try:
        config = params.config or Config.from_env()
    except ConfigurationError as e:
        raise ScopeError(f"failed to load actuator configuration: {e}") from e

    if not cluster_config.resource_group:
        cluster_config.resource_group = cluster.name
    if not cluster_config.location:
        cluster_config.location = config.location

    credential = params.credential or get_managed_identity_credential(config.identity_client_id)
    resource_client = ResourceManagementClient(
        credential=credential,
        subscription_id=config.subscription_id,
    )

    return Scope(
        cluster=cluster,
        client=params.client,
        config=config,
        resource_client=resource_client,
        cluster_config=cluster_config,
        cluster_status=cluster_status,
    )


@contextmanager
def released(scope: Scope) -> Iterator[Scope]:
    """Yield `scope` and close it exactly once on every exit path.

    A failure to close while another exception is propagating is logged so
    the original error reaches the caller.
    """
    try:
        yield scope
    except BaseException:
        try:
            scope.close()
        except ScopeError:
            logger.exception("Failed to close scope", extra={"cluster": scope.name})
        raise
    scope.close()


ScopeGetter = Callable[[ScopeParams], Scope]

DEFAULT_SCOPE_GETTER: ScopeGetter = new_scope
