"""Azure Mock Context for actuator tests.

Provides a context manager that patches Azure SDK components with mock
implementations.
"""

from __future__ import annotations

import dataclasses
from typing import Any
from unittest import mock

from azure_actuator.config import Config
from azure_actuator.scope import Scope, ScopeGetter, ScopeParams, new_scope

from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import MockResourceClient, MockResourceGroup, MockResourceState


class MockAzureContext:
    """Context manager for Azure API mocking.

    Patches:
    - azure_actuator.security.ManagedIdentityCredential → MockManagedIdentityCredential
    - azure_actuator.scope.ResourceManagementClient → MockResourceClient

    Every client created inside the context shares one MockResourceState.

    Usage:
        with MockAzureContext() as ctx:
            actuator = Actuator(ActuatorParams(client, scope_getter=ctx.scope_getter(config)))
            actuator.reconcile(cluster)
            assert ctx.state.resource_group_count == 1
    """

    def __init__(
        self,
        *,
        client_id: str | None = None,
        fail_deployments: bool = False,
        fail_resource_group_delete: bool = False,
        incomplete_operations: bool = False,
        initial_resource_groups: list[dict[str, Any]] | None = None,
    ) -> None:
        """Initialize mock context.

        Args:
            client_id: User-assigned identity client ID to simulate.
            fail_deployments: Whether template deployments fail.
            fail_resource_group_delete: Whether resource group deletion fails.
            incomplete_operations: Whether long-running operations never finish.
            initial_resource_groups: Resource groups to pre-populate.
        """
        self._client_id = client_id
        self._fail_deployments = fail_deployments
        self._fail_resource_group_delete = fail_resource_group_delete
        self._incomplete_operations = incomplete_operations
        self._initial_resource_groups = initial_resource_groups or []

        self._state: MockResourceState | None = None
        self._credential: MockManagedIdentityCredential | None = None
        self._patches: list[Any] = []
        self.clients: list[MockResourceClient] = []

    @property
    def state(self) -> MockResourceState:
        """Get the mock resource state.

        Raises:
            RuntimeError: If accessed outside of context.
        """
        if self._state is None:
            raise RuntimeError("MockAzureContext must be used as a context manager")
        return self._state

    @property
    def credential(self) -> MockManagedIdentityCredential:
        if self._credential is None:
            raise RuntimeError("MockAzureContext must be used as a context manager")
        return self._credential

    def scope_getter(self, config: Config) -> ScopeGetter:
        """Scope getter that uses `config` instead of reading the environment."""

        def get_scope(params: ScopeParams) -> Scope:
            return new_scope(dataclasses.replace(params, config=config))

        return get_scope

    def __enter__(self) -> MockAzureContext:
        """Enter the mock context, applying patches."""
        self._state = MockResourceState()
        self._credential = create_mock_credential(client_id=self._client_id)

        for group in self._initial_resource_groups:
            self._state.put_resource_group(
                MockResourceGroup(
                    name=group["name"],
                    location=group.get("location", "westeurope"),
                    tags=group.get("tags", {}),
                )
            )

        self._patches.append(
            mock.patch(
                "azure_actuator.security.ManagedIdentityCredential",
                return_value=self._credential,
            )
        )

        def create_mock_client(credential: Any, subscription_id: str) -> MockResourceClient:
            client = MockResourceClient(
                state=self.state,
                subscription_id=subscription_id,
                fail_deployments=self._fail_deployments,
                fail_resource_group_delete=self._fail_resource_group_delete,
                incomplete_operations=self._incomplete_operations,
            )
            self.clients.append(client)
            return client

        self._patches.append(
            mock.patch(
                "azure_actuator.scope.ResourceManagementClient",
                side_effect=create_mock_client,
            )
        )

        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the mock context, removing patches."""
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()

