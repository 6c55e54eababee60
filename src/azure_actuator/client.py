"""Client for cluster.k8s.io Cluster objects.

Thin wrapper over the kubernetes CustomObjectsApi that speaks in terms of
the Cluster model. The actuator receives one instance by injection and the
Scope uses it to persist provider spec and status.
"""

from __future__ import annotations

import logging

from kubernetes import client, config
from kubernetes.client import ApiClient, CustomObjectsApi

from .models import CLUSTER_API_GROUP, CLUSTER_API_VERSION, CLUSTER_PLURAL, Cluster

logger = logging.getLogger(__name__)


class ClusterClient:
    """Reads and writes Cluster objects through the Kubernetes API."""

    def __init__(self, api: CustomObjectsApi) -> None:
        self._api = api

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig_path: str | None = None,
        context: str | None = None,
    ) -> ClusterClient:
        """Build a client from a kubeconfig file or the in-cluster service account.

        Args:
            kubeconfig_path: Path to a kubeconfig. In-cluster configuration is
                used when None.
            context: Kubeconfig context to select.
        """
        if kubeconfig_path:
            config.load_kube_config(config_file=kubeconfig_path, context=context)
        else:
            config.load_incluster_config()
        return cls(client.CustomObjectsApi(ApiClient()))

    def get(self, namespace: str, name: str) -> Cluster:
        """Fetch a single Cluster.

        Raises:
            kubernetes.client.exceptions.ApiException: On API failure, including 404.
        """
        obj = self._api.get_namespaced_custom_object(
            group=CLUSTER_API_GROUP,
            version=CLUSTER_API_VERSION,
            namespace=namespace,
            plural=CLUSTER_PLURAL,
            name=name,
        )
        return Cluster.from_k8s(obj)

    def list(self, namespace: str | None = None) -> list[Cluster]:
        """List Clusters in one namespace, or across all namespaces when None."""
        if namespace:
            data = self._api.list_namespaced_custom_object(
                group=CLUSTER_API_GROUP,
                version=CLUSTER_API_VERSION,
                namespace=namespace,
                plural=CLUSTER_PLURAL,
            )
        else:
            data = self._api.list_cluster_custom_object(
                group=CLUSTER_API_GROUP,
                version=CLUSTER_API_VERSION,
                plural=CLUSTER_PLURAL,
            )
        return [Cluster.from_k8s(item) for item in data.get("items", [])]

    def update(self, cluster: Cluster) -> Cluster:
        """Replace the Cluster object (spec and metadata)."""
        obj = self._api.replace_namespaced_custom_object(
            group=CLUSTER_API_GROUP,
            version=CLUSTER_API_VERSION,
            namespace=cluster.namespace,
            plural=CLUSTER_PLURAL,
            name=cluster.name,
            body=cluster.to_wire(),
        )
        logger.debug(
            "Updated cluster",
            extra={"cluster": cluster.name, "namespace": cluster.namespace},
        )
        return Cluster.from_k8s(obj)

    def update_status(self, cluster: Cluster) -> Cluster:
        """Replace the status subresource of the Cluster object."""
        obj = self._api.replace_namespaced_custom_object_status(
            group=CLUSTER_API_GROUP,
            version=CLUSTER_API_VERSION,
            namespace=cluster.namespace,
            plural=CLUSTER_PLURAL,
            name=cluster.name,
            body=cluster.to_wire(),
        )
        logger.debug(
            "Updated cluster status",
            extra={"cluster": cluster.name, "namespace": cluster.namespace},
        )
        return Cluster.from_k8s(obj)
