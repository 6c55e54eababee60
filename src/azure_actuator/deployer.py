"""Read-only cluster accessors used by the machine controller.

The Deployer answers "where is the API server" and "how do I talk to it"
for a cluster, using scopes obtained from its scope getter. Its scopes carry
no cluster client, so they never write back.
"""

from __future__ import annotations

import logging

import yaml

from .models import Cluster
from .scope import DEFAULT_SCOPE_GETTER, ScopeGetter, ScopeParams, released
from .services.certificates import api_server_url, new_kubeconfig

logger = logging.getLogger(__name__)


class DeployerError(Exception):
    """Raised when cluster connection details are not available yet."""

    pass


class Deployer:
    """Provides API endpoint and kubeconfig of a reconciled cluster."""

    def __init__(self, scope_getter: ScopeGetter = DEFAULT_SCOPE_GETTER) -> None:
        self._scope_getter = scope_getter

    @property
    def scope_getter(self) -> ScopeGetter:
        return self._scope_getter

    def get_ip(self, cluster: Cluster) -> str:
        """Return the API server address (DNS name, else IP address).

        Raises:
            DeployerError: If the load balancer has not been reconciled.
            ScopeError: If the cluster provider payload is invalid.
        """
        scope = self._scope_getter(ScopeParams(cluster=cluster))
        with released(scope):
            api_server_ip = scope.network.api_server_ip
            address = api_server_ip.dns_name or api_server_ip.ip_address

        if not address:
            raise DeployerError(f"API server address not yet available for cluster {cluster.name!r}")
        return address

    def get_kubeconfig(self, cluster: Cluster) -> str:
        """Return an admin kubeconfig (YAML) for the cluster.

        The kubeconfig stored in the provider spec is returned when present;
        otherwise one is issued from the cluster CA.

        Raises:
            DeployerError: If the CA or API server address is missing.
        """
        scope = self._scope_getter(ScopeParams(cluster=cluster))
        with released(scope):
            stored = scope.cluster_config.admin_kubeconfig
            ca = scope.cluster_config.ca_key_pair

        if stored:
            return stored

        if not ca.has_cert_and_key():
            raise DeployerError(f"CA key pair not yet generated for cluster {cluster.name!r}")

        address = self.get_ip(cluster)
        logger.debug("Issuing admin kubeconfig", extra={"cluster": cluster.name})
        kubeconfig = new_kubeconfig(cluster.name, api_server_url(address), ca)
        return yaml.safe_dump(kubeconfig, default_flow_style=False)
