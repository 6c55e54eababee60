"""Tests for the actuator CLI."""

from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta
from unittest import mock

import pytest
from click.testing import CliRunner
from kubernetes.client.exceptions import ApiException

from azure_actuator.actuator import ReconcileError
from azure_actuator.cli import cli
from azure_actuator.errors import RequeueAfterError
from azure_actuator.main import EXIT_ERROR, EXIT_REQUEUE, EXIT_SECURITY_VIOLATION, EXIT_SUCCESS
from azure_actuator.models import Cluster
from azure_actuator.security import FORBIDDEN_CREDENTIAL_ENV_VARS, SecretlessViolationError


class Patched:
    def __init__(self, client_factory: mock.Mock, actuator_class: mock.Mock) -> None:
        self.client_factory = client_factory
        self.client = client_factory.return_value
        self.actuator_class = actuator_class
        self.actuator = actuator_class.return_value


@pytest.fixture
def patched(cluster: Cluster) -> Generator[Patched, None, None]:
    with (
        mock.patch("azure_actuator.cli.setup_logging"),
        mock.patch("azure_actuator.cli.ClusterClient.from_kubeconfig") as client_factory,
        mock.patch("azure_actuator.cli.Actuator") as actuator_class,
    ):
        client_factory.return_value.get.return_value = cluster
        yield Patched(client_factory, actuator_class)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner(env={var: None for var in FORBIDDEN_CREDENTIAL_ENV_VARS})


class TestCommands:
    """Tests for the CLI commands."""

    def test_reconcile(self, runner: CliRunner, patched: Patched, cluster: Cluster) -> None:
        result = runner.invoke(cli, ["-n", "clusters", "reconcile", "test-cluster"])

        assert result.exit_code == EXIT_SUCCESS
        assert "clusters/test-cluster reconciled" in result.output
        patched.client.get.assert_called_once_with("clusters", "test-cluster")
        patched.actuator.reconcile.assert_called_once_with(cluster)

    def test_kubeconfig_options(self, runner: CliRunner, patched: Patched) -> None:
        runner.invoke(
            cli, ["--kubeconfig", "/tmp/kc", "--context", "mgmt", "reconcile", "test-cluster"]
        )

        patched.client_factory.assert_called_once_with("/tmp/kc", "mgmt")

    def test_delete_requires_confirmation(self, runner: CliRunner, patched: Patched) -> None:
        result = runner.invoke(cli, ["delete", "test-cluster"], input="n\n")

        assert result.exit_code != EXIT_SUCCESS
        patched.actuator.delete.assert_not_called()

    def test_delete(self, runner: CliRunner, patched: Patched, cluster: Cluster) -> None:
        result = runner.invoke(cli, ["delete", "test-cluster", "--yes"])

        assert result.exit_code == EXIT_SUCCESS
        patched.actuator.delete.assert_called_once_with(cluster)

    def test_ip(self, runner: CliRunner, patched: Patched) -> None:
        patched.actuator.get_ip.return_value = "test-cluster-api.westeurope.cloudapp.azure.com"

        result = runner.invoke(cli, ["ip", "test-cluster"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.output.strip() == "test-cluster-api.westeurope.cloudapp.azure.com"

    def test_kubeconfig(self, runner: CliRunner, patched: Patched) -> None:
        patched.actuator.get_kubeconfig.return_value = "apiVersion: v1\nkind: Config\n"

        result = runner.invoke(cli, ["kubeconfig", "test-cluster"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.output == "apiVersion: v1\nkind: Config\n"


class TestExitCodes:
    """Tests for mapping failures to exit codes."""

    def test_reconcile_error(self, runner: CliRunner, patched: Patched) -> None:
        patched.actuator.reconcile.side_effect = ReconcileError("failed to reconcile network")

        result = runner.invoke(cli, ["reconcile", "test-cluster"])

        assert result.exit_code == EXIT_ERROR

    def test_requeue(self, runner: CliRunner, patched: Patched) -> None:
        patched.actuator.delete.side_effect = RequeueAfterError(timedelta(seconds=5))

        result = runner.invoke(cli, ["delete", "test-cluster", "--yes"])

        assert result.exit_code == EXIT_REQUEUE

    def test_security_violation(self, runner: CliRunner, patched: Patched) -> None:
        patched.actuator.reconcile.side_effect = SecretlessViolationError(["AZURE_CLIENT_SECRET"])

        result = runner.invoke(cli, ["reconcile", "test-cluster"])

        assert result.exit_code == EXIT_SECURITY_VIOLATION

    def test_cluster_not_found(self, runner: CliRunner, patched: Patched) -> None:
        patched.client.get.side_effect = ApiException(status=404, reason="Not Found")

        result = runner.invoke(cli, ["reconcile", "missing"])

        assert result.exit_code == EXIT_ERROR
        patched.actuator_class.assert_not_called()

    def test_secret_in_environment_aborts_before_kubernetes(
        self, runner: CliRunner, patched: Patched
    ) -> None:
        result = runner.invoke(
            cli, ["reconcile", "test-cluster"], env={"AZURE_CLIENT_SECRET": "secret"}
        )

        assert result.exit_code == EXIT_SECURITY_VIOLATION
        patched.client_factory.assert_not_called()
