"""Azure and Kubernetes API mocks for actuator tests.

Key Features:
- In-memory resource groups and template deployments
- Deployment outputs evaluated from the template (resource IDs, FQDNs)
- Error injection for deployments, deletions and stuck operations
- In-memory Cluster store with Kubernetes replace semantics

Usage:
    from azure_mock import MockAzureContext, MockClusterClient

    with MockAzureContext() as ctx:
        actuator = Actuator(
            ActuatorParams(
                client=MockClusterClient([cluster]),
                scope_getter=ctx.scope_getter(config),
            )
        )
        actuator.reconcile(cluster)

        assert ctx.state.get_resource_group("my-cluster") is not None
"""

from .clusters import MockClusterClient
from .context import MockAzureContext
from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import MOCK_PUBLIC_IP_ADDRESS, MockResourceClient, MockResourceState

__all__ = [
    "MOCK_PUBLIC_IP_ADDRESS",
    "MockAzureContext",
    "MockClusterClient",
    "MockManagedIdentityCredential",
    "MockResourceClient",
    "MockResourceState",
    "create_mock_credential",
]
