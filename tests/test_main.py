"""Tests for the process-level runners."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml
from gcp_mock import MockGCPContext
from google.api_core.exceptions import Forbidden

from gcp_controller.config import Config
from gcp_controller.main import (
    EXIT_FAILURE,
    EXIT_NOT_READY,
    EXIT_SUCCESS,
    JsonFormatter,
    exit_code,
    run_cluster,
    run_machine,
)
from gcp_controller.reconciler import Action, ReconcileResult

CLUSTER = {
    "apiVersion": "infrastructure.gcp/v1",
    "kind": "GCPCluster",
    "metadata": {"name": "test-cluster"},
    "spec": {
        "project": "test-project",
        "region": "us-central1",
        "network": {
            "name": "net1",
            "subnets": [{"name": "sub1", "cidrBlock": "10.0.0.0/20"}],
        },
    },
}

MACHINE = {
    "name": "test-cluster-cp-0",
    "zone": "us-central1-a",
    "instanceType": "n2-standard-4",
    "image": "projects/test-project/global/images/node-image",
    "controlPlane": True,
}


@pytest.fixture
def cluster_file(tmp_path: Path) -> Path:
    path = tmp_path / "cluster.yaml"
    path.write_text(yaml.safe_dump(CLUSTER))
    return path


@pytest.fixture
def machine_file(tmp_path: Path) -> Path:
    path = tmp_path / "machine.yaml"
    path.write_text(yaml.safe_dump(MACHINE))
    return path


@pytest.fixture
def bootstrap_file(tmp_path: Path) -> Path:
    path = tmp_path / "user-data"
    path.write_text("#cloud-config\n")
    return path


class TestExitCode:
    """Tests for exit_code."""

    def test_mapping(self) -> None:
        """Test failure wins over requeue, requeue over success."""
        result = ReconcileResult(cluster="c", action=Action.RECONCILE)
        assert exit_code(result) == EXIT_SUCCESS

        result.requeue_after_seconds = 5
        assert exit_code(result) == EXIT_NOT_READY

        result.error = RuntimeError("boom")
        assert exit_code(result) == EXIT_FAILURE


class TestRunCluster:
    """Tests for run_cluster."""

    @pytest.mark.asyncio
    async def test_reconcile_success(
        self, ctx: MockGCPContext, cluster_file: Path, config: Config
    ) -> None:
        """Test a converged cluster exits 0."""
        code = await run_cluster(cluster_file, config=config, cloud_factory=ctx.cloud_factory())

        assert code == EXIT_SUCCESS
        assert ctx.state.resource_count("networks") == 1

    @pytest.mark.asyncio
    async def test_reconcile_not_ready(
        self, ctx: MockGCPContext, cluster_file: Path, config: Config
    ) -> None:
        """Test a missing endpoint exits 3."""
        ctx.state.allocated_address = None

        code = await run_cluster(cluster_file, config=config, cloud_factory=ctx.cloud_factory())

        assert code == EXIT_NOT_READY

    @pytest.mark.asyncio
    async def test_reconcile_failure(
        self, ctx: MockGCPContext, cluster_file: Path, config: Config
    ) -> None:
        """Test a provider error exits 1."""
        ctx.state.inject_error("networks", "insert", Forbidden("denied"))

        code = await run_cluster(cluster_file, config=config, cloud_factory=ctx.cloud_factory())

        assert code == EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_delete(self, ctx: MockGCPContext, cluster_file: Path, config: Config) -> None:
        """Test delete removes what reconcile created."""
        factory = ctx.cloud_factory()
        await run_cluster(cluster_file, config=config, cloud_factory=factory)

        code = await run_cluster(cluster_file, delete=True, config=config, cloud_factory=factory)

        assert code == EXIT_SUCCESS
        assert ctx.state.resource_count("networks") == 0

    @pytest.mark.asyncio
    async def test_invalid_definition(
        self, ctx: MockGCPContext, tmp_path: Path, config: Config
    ) -> None:
        """Test an invalid definition exits 1 before any provider call."""
        path = tmp_path / "cluster.yaml"
        path.write_text("name: Not_Valid\n")

        code = await run_cluster(path, config=config, cloud_factory=ctx.cloud_factory())

        assert code == EXIT_FAILURE
        assert ctx.state.calls == []

    @pytest.mark.asyncio
    async def test_client_creation_failure(self, cluster_file: Path, config: Config) -> None:
        """Test credential errors while building clients exit 1."""

        def factory(project: str, config: Config) -> None:
            raise RuntimeError("default credentials not found")

        code = await run_cluster(cluster_file, config=config, cloud_factory=factory)  # type: ignore[arg-type]

        assert code == EXIT_FAILURE


class TestRunMachine:
    """Tests for run_machine."""

    @pytest.mark.asyncio
    async def test_reconcile_and_delete(
        self,
        ctx: MockGCPContext,
        cluster_file: Path,
        machine_file: Path,
        bootstrap_file: Path,
        config: Config,
    ) -> None:
        """Test a machine is created, registered and deleted."""
        factory = ctx.cloud_factory()
        await run_cluster(cluster_file, config=config, cloud_factory=factory)

        code = await run_machine(
            cluster_file,
            machine_file,
            bootstrap_data=bootstrap_file,
            config=config,
            cloud_factory=factory,
        )
        assert code == EXIT_SUCCESS
        assert ctx.state.resource_count("instances") == 1

        code = await run_machine(
            cluster_file, machine_file, delete=True, config=config, cloud_factory=factory
        )
        assert code == EXIT_SUCCESS
        assert ctx.state.resource_count("instances") == 0

    @pytest.mark.asyncio
    async def test_not_running_yet(
        self,
        ctx: MockGCPContext,
        cluster_file: Path,
        machine_file: Path,
        bootstrap_file: Path,
        config: Config,
    ) -> None:
        """Test a provisioning instance exits 3."""
        factory = ctx.cloud_factory()
        await run_cluster(cluster_file, config=config, cloud_factory=factory)
        ctx.state.new_instance_status = "PROVISIONING"

        code = await run_machine(
            cluster_file,
            machine_file,
            bootstrap_data=bootstrap_file,
            config=config,
            cloud_factory=factory,
        )

        assert code == EXIT_NOT_READY

    @pytest.mark.asyncio
    async def test_reconcile_requires_bootstrap_data(
        self, ctx: MockGCPContext, cluster_file: Path, machine_file: Path, config: Config
    ) -> None:
        """Test reconcile without a bootstrap file exits 1 without provider calls."""
        code = await run_machine(
            cluster_file, machine_file, config=config, cloud_factory=ctx.cloud_factory()
        )

        assert code == EXIT_FAILURE
        assert ctx.state.calls == []


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_includes_extra_fields(self) -> None:
        """Test extra fields are emitted alongside the message."""
        logger = logging.getLogger("test.json")
        record = logger.makeRecord(
            "test.json",
            logging.INFO,
            __file__,
            1,
            "Created %s",
            ("network",),
            None,
            extra={"cluster": "prod", "resource": "global/net1"},
        )

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Created network"
        assert data["level"] == "INFO"
        assert data["cluster"] == "prod"
        assert data["resource"] == "global/net1"
        assert "msg" not in data
