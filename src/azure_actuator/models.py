"""Pydantic models for Cluster objects and their Azure provider payloads.

These models provide:
1. Type-safe parsing of the Cluster custom resource
2. Validation of the Azure provider spec/status at the boundary
3. Serialisation back to the camelCase wire format for write-back
"""

from __future__ import annotations

import base64
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .config import MAX_RESOURCE_GROUP_NAME_LENGTH

CLUSTER_API_GROUP = "cluster.k8s.io"
CLUSTER_API_VERSION = "v1alpha1"
CLUSTER_PLURAL = "clusters"

PROVIDER_API_VERSION = "azureprovider.k8s.io/v1alpha1"

# Subnet roles
ROLE_CONTROL_PLANE = "controlplane"
ROLE_NODE = "node"


class _WireModel(BaseModel):
    """Base for models that round-trip through the Kubernetes API."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire (camelCase) field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Cluster API object
# =============================================================================


class ObjectMeta(_WireModel):
    """Subset of Kubernetes ObjectMeta used by the actuator."""

    name: str = Field(min_length=1)
    namespace: str = "default"
    uid: str | None = None
    resource_version: str | None = Field(None, alias="resourceVersion")
    generation: int | None = None
    deletion_timestamp: str | None = Field(None, alias="deletionTimestamp")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)


class ProviderSpec(_WireModel):
    """Opaque provider configuration embedded in the Cluster spec."""

    value: dict[str, Any] | None = None


class ClusterSpec(_WireModel):
    cluster_network: dict[str, Any] = Field(default_factory=dict, alias="clusterNetwork")
    provider_spec: ProviderSpec = Field(default_factory=ProviderSpec, alias="providerSpec")


class ClusterStatus(_WireModel):
    api_endpoints: list[dict[str, Any]] = Field(default_factory=list, alias="apiEndpoints")
    provider_status: dict[str, Any] | None = Field(None, alias="providerStatus")
    error_reason: str | None = Field(None, alias="errorReason")
    error_message: str | None = Field(None, alias="errorMessage")


class Cluster(_WireModel):
    """A cluster.k8s.io/v1alpha1 Cluster object.

    Owned by the cluster controller; the actuator only writes back the
    provider spec value and provider status.
    """

    api_version: str = Field(f"{CLUSTER_API_GROUP}/{CLUSTER_API_VERSION}", alias="apiVersion")
    kind: str = "Cluster"
    metadata: ObjectMeta
    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def being_deleted(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @classmethod
    def from_k8s(cls, obj: dict[str, Any]) -> Cluster:
        """Parse a Cluster from a CustomObjectsApi response body."""
        return cls.model_validate(obj)


# =============================================================================
# Azure provider spec
# =============================================================================


class KeyPair(_WireModel):
    """Certificate (or public key) and private key.

    Both halves are stored as base64 of their PEM encoding, matching how
    Kubernetes serialises byte fields.
    """

    cert: str = ""
    key: str = ""

    def has_cert_and_key(self) -> bool:
        return bool(self.cert) and bool(self.key)

    def cert_pem(self) -> bytes:
        return base64.b64decode(self.cert)

    def key_pem(self) -> bytes:
        return base64.b64decode(self.key)

    @classmethod
    def from_pem(cls, cert_pem: bytes, key_pem: bytes) -> KeyPair:
        return cls(
            cert=base64.b64encode(cert_pem).decode("ascii"),
            key=base64.b64encode(key_pem).decode("ascii"),
        )


class Vnet(_WireModel):
    id: str = ""
    name: str = ""
    cidr_block: str = Field("", alias="cidrBlock")


class SecurityGroup(_WireModel):
    id: str = ""
    name: str = ""


class Subnet(_WireModel):
    """A subnet of the cluster virtual network."""

    role: str
    id: str = ""
    name: str = ""
    cidr_block: str = Field("", alias="cidrBlock")
    security_group: SecurityGroup = Field(default_factory=SecurityGroup, alias="securityGroup")

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        valid_roles = {ROLE_CONTROL_PLANE, ROLE_NODE}
        if v not in valid_roles:
            raise ValueError(f"role must be one of {valid_roles}")
        return v


class NetworkSpec(_WireModel):
    vnet: Vnet = Field(default_factory=Vnet)
    subnets: list[Subnet] = Field(default_factory=list)


class AzureClusterProviderSpec(_WireModel):
    """Desired Azure configuration of a cluster (spec.providerSpec.value)."""

    api_version: str = Field(PROVIDER_API_VERSION, alias="apiVersion")
    kind: str = "AzureClusterProviderSpec"

    resource_group: str = Field("", alias="resourceGroup")
    location: str = ""
    network_spec: NetworkSpec = Field(default_factory=NetworkSpec, alias="networkSpec")

    ca_key_pair: KeyPair = Field(default_factory=KeyPair, alias="caKeyPair")
    etcd_ca_key_pair: KeyPair = Field(default_factory=KeyPair, alias="etcdCAKeyPair")
    front_proxy_ca_key_pair: KeyPair = Field(default_factory=KeyPair, alias="frontProxyCAKeyPair")
    sa_key_pair: KeyPair = Field(default_factory=KeyPair, alias="saKeyPair")

    admin_kubeconfig: str = Field("", alias="adminKubeconfig")
    discovery_hashes: list[str] = Field(default_factory=list, alias="discoveryHashes")

    @field_validator("resource_group")
    @classmethod
    def validate_resource_group(cls, v: str) -> str:
        if len(v) > MAX_RESOURCE_GROUP_NAME_LENGTH:
            raise ValueError(
                f"resourceGroup exceeds maximum length of {MAX_RESOURCE_GROUP_NAME_LENGTH}"
            )
        return v


# =============================================================================
# Azure provider status
# =============================================================================


class PublicIP(_WireModel):
    id: str = ""
    name: str = ""
    ip_address: str = Field("", alias="ipAddress")
    dns_name: str = Field("", alias="dnsName")


class FrontendIPConfig(_WireModel):
    name: str = ""


class BackendPool(_WireModel):
    id: str = ""
    name: str = ""


class LoadBalancer(_WireModel):
    id: str = ""
    name: str = ""
    sku: str = "Standard"
    frontend_ip_config: FrontendIPConfig = Field(
        default_factory=FrontendIPConfig, alias="frontendIpConfig"
    )
    backend_pool: BackendPool = Field(default_factory=BackendPool, alias="backendPool")


class Network(_WireModel):
    """Observed network resources of a cluster."""

    security_groups: dict[str, SecurityGroup] = Field(
        default_factory=dict, alias="securityGroups"
    )
    api_server_lb: LoadBalancer = Field(default_factory=LoadBalancer, alias="apiServerLb")
    api_server_ip: PublicIP = Field(default_factory=PublicIP, alias="apiServerIp")


class AzureClusterProviderStatus(_WireModel):
    """Observed Azure state of a cluster (status.providerStatus)."""

    api_version: str = Field(PROVIDER_API_VERSION, alias="apiVersion")
    kind: str = "AzureClusterProviderStatus"

    network: Network = Field(default_factory=Network)
