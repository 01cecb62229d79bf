"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for gcp_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from gcp_mock import MockGCPContext  # noqa: E402

from gcp_controller.config import Config  # noqa: E402
from gcp_controller.models import ClusterDefinition, MachineDefinition  # noqa: E402
from gcp_controller.scope import ClusterScope, MachineScope  # noqa: E402


@pytest.fixture
def ctx() -> MockGCPContext:
    """Fresh in-memory project with region us-central1 and three zones."""
    return MockGCPContext()


@pytest.fixture
def config() -> Config:
    """Configuration with short polling for tests."""
    return Config(
        reconcile_timeout_seconds=60,
        operation_timeout_seconds=30,
        operation_poll_interval_seconds=0.0,
    )


@pytest.fixture
def cluster_definition() -> ClusterDefinition:
    """Cluster with its own network, one subnet and a secondary range."""
    return ClusterDefinition.model_validate(
        {
            "name": "test-cluster",
            "project": "test-project",
            "region": "us-central1",
            "network": {
                "name": "net1",
                "autoCreateSubnetworks": False,
                "routerName": "nat1",
                "subnets": [
                    {
                        "name": "sub1",
                        "cidrBlock": "10.0.0.0/20",
                        "secondaryCidrBlocks": {"pods": "10.100.0.0/16"},
                    }
                ],
            },
        }
    )


@pytest.fixture
def cluster_scope(cluster_definition: ClusterDefinition) -> ClusterScope:
    return ClusterScope(cluster_definition)


@pytest.fixture
def control_plane_definition() -> MachineDefinition:
    return MachineDefinition.model_validate(
        {
            "name": "test-cluster-cp-0",
            "zone": "us-central1-a",
            "instanceType": "n2-standard-4",
            "image": "projects/test-project/global/images/node-image",
            "controlPlane": True,
            "publicIP": True,
        }
    )


@pytest.fixture
def control_plane_scope(
    cluster_scope: ClusterScope, control_plane_definition: MachineDefinition
) -> MachineScope:
    return MachineScope(cluster_scope, control_plane_definition)
