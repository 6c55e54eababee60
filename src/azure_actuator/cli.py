"""Azure cluster actuator CLI.

Runs a single actuator operation against one Cluster object. Intended for
operators and CI jobs; the long-running controller invokes the Actuator
directly.

Usage:
    azure-actuator reconcile my-cluster -n clusters
    azure-actuator delete my-cluster -n clusters
    azure-actuator ip my-cluster
    azure-actuator kubeconfig my-cluster > admin.conf
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import click
from kubernetes.client.exceptions import ApiException

from .actuator import Actuator, ActuatorParams
from .client import ClusterClient
from .errors import RequeueAfterError
from .main import exit_code_for, setup_logging
from .models import Cluster
from .security import SecretlessViolationError, enforce_secretless_architecture

logger = logging.getLogger(__name__)


@dataclass
class CliContext:
    kubeconfig: str | None
    context: str | None
    namespace: str


def _run_operation(
    cli_ctx: CliContext,
    name: str,
    operation: Callable[[Actuator, Cluster], Any],
) -> Any:
    """Load the cluster, run `operation` and exit with the mapped code on failure."""
    try:
        enforce_secretless_architecture()
        client = ClusterClient.from_kubeconfig(cli_ctx.kubeconfig, cli_ctx.context)
        cluster = client.get(cli_ctx.namespace, name)
        actuator = Actuator(ActuatorParams(client=client))
        return operation(actuator, cluster)
    except RequeueAfterError as e:
        logger.warning(
            "Requeue requested",
            extra={
                "cluster": name,
                "requeue_after_seconds": e.requeue_after.total_seconds(),
            },
        )
        sys.exit(exit_code_for(e))
    except SecretlessViolationError as e:
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        sys.exit(exit_code_for(e))
    except ApiException as e:
        logger.error(
            "Kubernetes API error",
            extra={"cluster": name, "namespace": cli_ctx.namespace, "status": e.status},
        )
        sys.exit(exit_code_for(e))
    except Exception as e:
        code = exit_code_for(e)
        logger.error(
            "Operation failed",
            extra={"cluster": name, "error": str(e), "error_type": type(e).__name__},
        )
        sys.exit(code)


@click.group()
@click.option("--kubeconfig", envvar="KUBECONFIG", default=None, help="Kubeconfig path")
@click.option("--context", default=None, help="Kubeconfig context")
@click.option("--namespace", "-n", default="default", show_default=True, help="Cluster namespace")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    context: str | None,
    namespace: str,
    verbose: bool,
) -> None:
    """Azure cluster actuator."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.obj = CliContext(kubeconfig=kubeconfig, context=context, namespace=namespace)


@cli.command()
@click.argument("name")
@click.pass_obj
def reconcile(cli_ctx: CliContext, name: str) -> None:
    """Reconcile certificates, resource group, network and API load balancer."""
    _run_operation(cli_ctx, name, lambda actuator, cluster: actuator.reconcile(cluster))
    click.echo(f"Cluster {cli_ctx.namespace}/{name} reconciled")


@cli.command()
@click.argument("name")
@click.confirmation_option(prompt="Delete the cluster resource group and everything in it?")
@click.pass_obj
def delete(cli_ctx: CliContext, name: str) -> None:
    """Delete the cluster resource group."""
    _run_operation(cli_ctx, name, lambda actuator, cluster: actuator.delete(cluster))
    click.echo(f"Cluster {cli_ctx.namespace}/{name} deleted")


@cli.command()
@click.argument("name")
@click.pass_obj
def ip(cli_ctx: CliContext, name: str) -> None:
    """Print the API server address."""
    address = _run_operation(cli_ctx, name, lambda actuator, cluster: actuator.get_ip(cluster))
    click.echo(address)


@cli.command()
@click.argument("name")
@click.pass_obj
def kubeconfig(cli_ctx: CliContext, name: str) -> None:
    """Print an admin kubeconfig for the cluster."""
    content = _run_operation(
        cli_ctx, name, lambda actuator, cluster: actuator.get_kubeconfig(cluster)
    )
    click.echo(content, nl=False)


if __name__ == "__main__":
    cli()
