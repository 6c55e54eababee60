"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from azure_actuator.config import Config  # noqa: E402
from azure_actuator.models import Cluster  # noqa: E402

TEST_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"


@pytest.fixture
def config() -> Config:
    """Configuration matching the mock Azure subscription."""
    return Config(
        subscription_id=TEST_SUBSCRIPTION_ID,
        location="westeurope",
        deployment_timeout_seconds=60,
        delete_timeout_seconds=60,
    )


@pytest.fixture
def cluster() -> Cluster:
    """A freshly declared cluster with an empty provider status."""
    return Cluster.from_k8s(
        {
            "apiVersion": "cluster.k8s.io/v1alpha1",
            "kind": "Cluster",
            "metadata": {"name": "test-cluster", "namespace": "clusters", "uid": "1234"},
            "spec": {
                "clusterNetwork": {
                    "services": {"cidrBlocks": ["10.96.0.0/12"]},
                    "pods": {"cidrBlocks": ["192.168.0.0/16"]},
                    "serviceDomain": "cluster.local",
                },
                "providerSpec": {
                    "value": {
                        "apiVersion": "azureprovider.k8s.io/v1alpha1",
                        "kind": "AzureClusterProviderSpec",
                        "resourceGroup": "rg-test-cluster",
                        "location": "westeurope",
                    }
                },
            },
        }
    )
