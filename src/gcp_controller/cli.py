"""GCP cluster infrastructure controller CLI (gcpctl).

Usage:
    gcpctl cluster reconcile cluster.yaml
    gcpctl cluster delete cluster.yaml
    gcpctl machine reconcile cluster.yaml machine.yaml --bootstrap-data user-data
    gcpctl machine delete cluster.yaml machine.yaml

Exit codes: 0 success, 1 failure, 3 not ready (run again shortly).
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from .config import Config, ConfigurationError
from .main import EXIT_FAILURE, run_async, run_cluster, run_machine, setup_logging

PROG_NAME = "gcpctl"
VERSION = "0.1.0"

existing_file = click.Path(exists=True, dir_okay=False, path_type=Path)


def load_config() -> Config:
    """Load configuration from the environment and configure logging."""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    setup_logging(config)
    return config


@click.group()
@click.version_option(version=VERSION, prog_name=PROG_NAME)
def cli() -> None:
    """GCP cluster infrastructure controller (gcpctl).

    Converges networks, firewall rules, the API server load balancer and
    machine instances of a cluster towards its definition.

    \b
    Quick Start:
        gcpctl cluster reconcile cluster.yaml
        gcpctl machine reconcile cluster.yaml cp-0.yaml --bootstrap-data cp-0.userdata
    """
    pass


# =============================================================================
# Cluster Commands
# =============================================================================


@cli.group()
def cluster() -> None:
    """Cluster infrastructure: network, firewall rules, load balancer."""
    pass


@cluster.command("reconcile")
@click.argument("cluster_spec", type=existing_file)
def cluster_reconcile(cluster_spec: Path) -> None:
    """Create or converge the infrastructure of a cluster."""
    config = load_config()
    sys.exit(run_async(run_cluster(cluster_spec, config=config)))


@cluster.command("delete")
@click.argument("cluster_spec", type=existing_file)
def cluster_delete(cluster_spec: Path) -> None:
    """Tear down the infrastructure of a cluster."""
    config = load_config()
    sys.exit(run_async(run_cluster(cluster_spec, delete=True, config=config)))


# =============================================================================
# Machine Commands
# =============================================================================


@cli.group()
def machine() -> None:
    """Machine instances and control-plane group membership."""
    pass


@machine.command("reconcile")
@click.argument("cluster_spec", type=existing_file)
@click.argument("machine_spec", type=existing_file)
@click.option(
    "--bootstrap-data",
    "-b",
    type=existing_file,
    envvar="BOOTSTRAP_DATA_FILE",
    required=True,
    help="File holding the instance bootstrap payload (cloud-init user data)",
)
def machine_reconcile(cluster_spec: Path, machine_spec: Path, bootstrap_data: Path) -> None:
    """Create a machine instance and register control-plane members."""
    config = load_config()
    sys.exit(
        run_async(
            run_machine(cluster_spec, machine_spec, bootstrap_data=bootstrap_data, config=config)
        )
    )


@machine.command("delete")
@click.argument("cluster_spec", type=existing_file)
@click.argument("machine_spec", type=existing_file)
def machine_delete(cluster_spec: Path, machine_spec: Path) -> None:
    """Deregister and delete a machine instance."""
    config = load_config()
    sys.exit(run_async(run_machine(cluster_spec, machine_spec, delete=True, config=config)))


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
