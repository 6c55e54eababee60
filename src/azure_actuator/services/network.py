"""Virtual network and load balancer reconciliation.

Network resources are expressed as inline ARM templates deployed in
incremental mode into the cluster resource group. Resource IDs reported by
the deployment outputs are recorded in the provider spec (desired layout)
and provider status (observed endpoints).

Teardown of network resources is not provided here: deleting the cluster
resource group removes them.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from ..models import (
    ROLE_CONTROL_PLANE,
    ROLE_NODE,
    BackendPool,
    FrontendIPConfig,
    LoadBalancer,
    PublicIP,
    SecurityGroup,
    Subnet,
)
from .certificates import API_SERVER_PORT
from .deployments import ARM_TEMPLATE_SCHEMA, deploy_template

if TYPE_CHECKING:
    from ..scope import Scope

logger = logging.getLogger(__name__)

NETWORK_API_VERSION = "2023-09-01"

DEFAULT_VNET_CIDR = "10.0.0.0/8"
DEFAULT_CONTROL_PLANE_SUBNET_CIDR = "10.0.0.0/16"
DEFAULT_NODE_SUBNET_CIDR = "10.1.0.0/16"

LOAD_BALANCER_SKU = "Standard"
MAX_DNS_LABEL_LENGTH = 63


def _nsg_id(name: str) -> str:
    return f"[resourceId('Microsoft.Network/networkSecurityGroups', '{name}')]"


def _route_table_id(name: str) -> str:
    return f"[resourceId('Microsoft.Network/routeTables', '{name}')]"


def _subnet_id(vnet_name: str, subnet_name: str) -> str:
    return f"[resourceId('Microsoft.Network/virtualNetworks/subnets', '{vnet_name}', '{subnet_name}')]"


def dns_label(cluster_name: str, role: str) -> str:
    """Public IP DNS label: lowercase letters, digits and hyphens, starting with a letter."""
    label = re.sub(r"[^a-z0-9-]", "-", f"{cluster_name}-{role}".lower())
    if not label[0].isalpha():
        label = f"k{label}"
    return label[:MAX_DNS_LABEL_LENGTH].rstrip("-")


def _security_rule(name: str, port: int, priority: int) -> dict[str, Any]:
    return {
        "name": name,
        "properties": {
            "protocol": "Tcp",
            "sourcePortRange": "*",
            "destinationPortRange": str(port),
            "sourceAddressPrefix": "*",
            "destinationAddressPrefix": "*",
            "access": "Allow",
            "priority": priority,
            "direction": "Inbound",
        },
    }


class NetworkService:
    """Reconciles the cluster virtual network and API load balancer."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    @property
    def route_table_name(self) -> str:
        return f"{self._scope.name}-node-routetable"

    def reconcile_network(self) -> None:
        """Ensure the virtual network, subnets, security groups and route table.

        Raises:
            HttpResponseError: If the deployment fails.
            DeploymentTimeoutError: If the deployment does not finish in time.
        """
        control_plane, node = self._apply_network_defaults()

        template = self._build_network_template(control_plane, node)
        outputs = deploy_template(self._scope, "network", template)

        self._scope.vnet.id = outputs.get("vnetId", "")
        control_plane.id = outputs.get("controlPlaneSubnetId", "")
        control_plane.security_group.id = outputs.get("controlPlaneNsgId", "")
        node.id = outputs.get("nodeSubnetId", "")
        node.security_group.id = outputs.get("nodeNsgId", "")

        self._scope.network.security_groups = {
            ROLE_CONTROL_PLANE: control_plane.security_group.model_copy(),
            ROLE_NODE: node.security_group.model_copy(),
        }

        logger.info(
            "Network reconciled",
            extra={
                "cluster": self._scope.name,
                "vnet": self._scope.vnet.name,
                "subnets": [control_plane.name, node.name],
            },
        )

    def reconcile_load_balancer(self, role: str) -> None:
        """Ensure the public IP and load balancer for `role` (e.g. "api").

        Records the public endpoint in status.network.apiServerIp and the
        load balancer in status.network.apiServerLb.

        Raises:
            HttpResponseError: If the deployment fails.
            DeploymentTimeoutError: If the deployment does not finish in time.
        """
        name = self._scope.name
        lb = LoadBalancer(
            name=f"{name}-{role}-lb",
            sku=LOAD_BALANCER_SKU,
            frontend_ip_config=FrontendIPConfig(name=f"{name}-{role}-frontEnd"),
            backend_pool=BackendPool(name=f"{name}-{role}-backendPool"),
        )
        public_ip = PublicIP(name=f"{name}-{role}-pip")

        template = self._build_load_balancer_template(lb, public_ip, dns_label(name, role))
        outputs = deploy_template(self._scope, f"{role}-lb", template)

        lb.id = outputs.get("loadBalancerId", "")
        lb.backend_pool.id = outputs.get("backendPoolId", "")
        public_ip.id = outputs.get("publicIpId", "")
        public_ip.ip_address = outputs.get("ipAddress") or ""
        public_ip.dns_name = outputs.get("fqdn") or ""

        self._scope.network.api_server_lb = lb
        self._scope.network.api_server_ip = public_ip

        logger.info(
            "Load balancer reconciled",
            extra={
                "cluster": name,
                "role": role,
                "load_balancer": lb.name,
                "dns_name": public_ip.dns_name,
            },
        )

    def _apply_network_defaults(self) -> tuple[Subnet, Subnet]:
        """Fill in names and address ranges the cluster did not declare.

        Returns:
            The (control plane, node) subnets.
        """
        name = self._scope.name
        vnet = self._scope.vnet
        if not vnet.name:
            vnet.name = f"{name}-vnet"
        if not vnet.cidr_block:
            vnet.cidr_block = DEFAULT_VNET_CIDR

        defaults = (
            (ROLE_CONTROL_PLANE, DEFAULT_CONTROL_PLANE_SUBNET_CIDR),
            (ROLE_NODE, DEFAULT_NODE_SUBNET_CIDR),
        )
        ensured: list[Subnet] = []
        for role, cidr in defaults:
            subnet = self._scope.subnet(role)
            if subnet is None:
                subnet = Subnet(role=role)
                self._scope.subnets.append(subnet)
            if not subnet.name:
                subnet.name = f"{name}-{role}-subnet"
            if not subnet.cidr_block:
                subnet.cidr_block = cidr
            if not subnet.security_group.name:
                subnet.security_group = SecurityGroup(name=f"{name}-{role}-nsg")
            ensured.append(subnet)

        return ensured[0], ensured[1]

    def _build_network_template(self, control_plane: Subnet, node: Subnet) -> dict[str, Any]:
        location = self._scope.location
        vnet = self._scope.vnet
        route_table = self.route_table_name

        def subnet_resource(subnet: Subnet, with_route_table: bool) -> dict[str, Any]:
            properties: dict[str, Any] = {
                "addressPrefix": subnet.cidr_block,
                "networkSecurityGroup": {"id": _nsg_id(subnet.security_group.name)},
            }
            if with_route_table:
                properties["routeTable"] = {"id": _route_table_id(route_table)}
            return {"name": subnet.name, "properties": properties}

        return {
            "$schema": ARM_TEMPLATE_SCHEMA,
            "contentVersion": "1.0.0.0",
            "resources": [
                {
                    "type": "Microsoft.Network/networkSecurityGroups",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": control_plane.security_group.name,
                    "location": location,
                    "properties": {
                        "securityRules": [
                            _security_rule("allow_ssh", 22, 100),
                            _security_rule("allow_apiserver", API_SERVER_PORT, 101),
                        ]
                    },
                },
                {
                    "type": "Microsoft.Network/networkSecurityGroups",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": node.security_group.name,
                    "location": location,
                    "properties": {"securityRules": []},
                },
                {
                    "type": "Microsoft.Network/routeTables",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": route_table,
                    "location": location,
                    "properties": {},
                },
                {
                    "type": "Microsoft.Network/virtualNetworks",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": vnet.name,
                    "location": location,
                    "dependsOn": [
                        _nsg_id(control_plane.security_group.name),
                        _nsg_id(node.security_group.name),
                        _route_table_id(route_table),
                    ],
                    "properties": {
                        "addressSpace": {"addressPrefixes": [vnet.cidr_block]},
                        "subnets": [
                            subnet_resource(control_plane, with_route_table=False),
                            subnet_resource(node, with_route_table=True),
                        ],
                    },
                },
            ],
            "outputs": {
                "vnetId": {
                    "type": "string",
                    "value": f"[resourceId('Microsoft.Network/virtualNetworks', '{vnet.name}')]",
                },
                "controlPlaneSubnetId": {
                    "type": "string",
                    "value": _subnet_id(vnet.name, control_plane.name),
                },
                "nodeSubnetId": {"type": "string", "value": _subnet_id(vnet.name, node.name)},
                "controlPlaneNsgId": {
                    "type": "string",
                    "value": _nsg_id(control_plane.security_group.name),
                },
                "nodeNsgId": {"type": "string", "value": _nsg_id(node.security_group.name)},
            },
        }

    def _build_load_balancer_template(
        self,
        lb: LoadBalancer,
        public_ip: PublicIP,
        domain_name_label: str,
    ) -> dict[str, Any]:
        location = self._scope.location
        lb_id = f"[resourceId('Microsoft.Network/loadBalancers', '{lb.name}')]"
        pip_id = f"[resourceId('Microsoft.Network/publicIPAddresses', '{public_ip.name}')]"
        probe_name = "tcpHTTPSProbe"

        return {
            "$schema": ARM_TEMPLATE_SCHEMA,
            "contentVersion": "1.0.0.0",
            "resources": [
                {
                    "type": "Microsoft.Network/publicIPAddresses",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": public_ip.name,
                    "location": location,
                    "sku": {"name": LOAD_BALANCER_SKU},
                    "properties": {
                        "publicIPAllocationMethod": "Static",
                        "dnsSettings": {"domainNameLabel": domain_name_label},
                    },
                },
                {
                    "type": "Microsoft.Network/loadBalancers",
                    "apiVersion": NETWORK_API_VERSION,
                    "name": lb.name,
                    "location": location,
                    "sku": {"name": lb.sku},
                    "dependsOn": [pip_id],
                    "properties": {
                        "frontendIPConfigurations": [
                            {
                                "name": lb.frontend_ip_config.name,
                                "properties": {"publicIPAddress": {"id": pip_id}},
                            }
                        ],
                        "backendAddressPools": [{"name": lb.backend_pool.name}],
                        "probes": [
                            {
                                "name": probe_name,
                                "properties": {
                                    "protocol": "Tcp",
                                    "port": API_SERVER_PORT,
                                    "intervalInSeconds": 15,
                                    "numberOfProbes": 4,
                                },
                            }
                        ],
                        "loadBalancingRules": [
                            {
                                "name": "LBRuleHTTPS",
                                "properties": {
                                    "protocol": "Tcp",
                                    "frontendPort": API_SERVER_PORT,
                                    "backendPort": API_SERVER_PORT,
                                    "idleTimeoutInMinutes": 4,
                                    "enableFloatingIP": False,
                                    "loadDistribution": "Default",
                                    "frontendIPConfiguration": {
                                        "id": f"[concat({lb_id[1:-1]}, '/frontendIPConfigurations/{lb.frontend_ip_config.name}')]"
                                    },
                                    "backendAddressPool": {
                                        "id": f"[concat({lb_id[1:-1]}, '/backendAddressPools/{lb.backend_pool.name}')]"
                                    },
                                    "probe": {
                                        "id": f"[concat({lb_id[1:-1]}, '/probes/{probe_name}')]"
                                    },
                                },
                            }
                        ],
                    },
                },
            ],
            "outputs": {
                "loadBalancerId": {"type": "string", "value": lb_id},
                "backendPoolId": {
                    "type": "string",
                    "value": f"[concat({lb_id[1:-1]}, '/backendAddressPools/{lb.backend_pool.name}')]",
                },
                "publicIpId": {"type": "string", "value": pip_id},
                "ipAddress": {
                    "type": "string",
                    "value": f"[reference({pip_id[1:-1]}).ipAddress]",
                },
                "fqdn": {
                    "type": "string",
                    "value": f"[reference({pip_id[1:-1]}).dnsSettings.fqdn]",
                },
            },
        }
