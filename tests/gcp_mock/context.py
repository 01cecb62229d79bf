"""Mock GCP context for integration testing.

Wires the in-memory clients into a ``Cloud`` and seeds the region and
zones every cluster reconcile looks up.
"""

from __future__ import annotations

from collections.abc import Callable

from gcp_controller.cloud import Cloud
from gcp_controller.config import Config
from gcp_controller.keys import ResourceKey
from gcp_controller.models import Region, Zone

from .resources import (
    COMPUTE_API_URL,
    MockComputeState,
    MockInstanceGroupClient,
    MockResourceClient,
    MockZoneLister,
)

DEFAULT_REGION = "us-central1"
DEFAULT_ZONES = ("us-central1-a", "us-central1-b", "us-central1-c")


class MockGCPContext:
    """In-memory Compute Engine project for integration tests.

    Usage:
        ctx = MockGCPContext()
        reconciler = ClusterReconciler(scope, ctx.cloud, config)
        result = await reconciler.reconcile()

        assert ctx.state.resource_count("networks") == 1
        assert not ctx.state.mutations()
    """

    def __init__(
        self,
        *,
        project: str = "test-project",
        region: str = DEFAULT_REGION,
        zones: tuple[str, ...] = DEFAULT_ZONES,
    ) -> None:
        self.state = MockComputeState(project=project)
        self.seed_region(region, zones)
        self.cloud = create_mock_cloud(self.state)

    def seed_region(self, region: str, zones: tuple[str, ...]) -> None:
        """Add a region and its zones to the project."""
        region_link = f"{COMPUTE_API_URL}/projects/{self.state.project}/regions/{region}"
        self.state.put_resource(
            "regions",
            ResourceKey.global_(region),
            Region(name=region, self_link=region_link, status="UP"),
        )
        for zone in zones:
            self.state.put_resource(
                "zones",
                ResourceKey.global_(zone),
                Zone(
                    name=zone,
                    region=region_link,
                    status="UP",
                    self_link=f"{COMPUTE_API_URL}/projects/{self.state.project}/zones/{zone}",
                ),
            )

    def cloud_factory(self) -> Callable[[str, Config], Cloud]:
        """Factory usable in place of ``compute.new_cloud``."""

        def factory(project: str, config: Config) -> Cloud:  # noqa: ARG001
            return self.cloud

        return factory


def create_mock_cloud(state: MockComputeState) -> Cloud:
    """Build a ``Cloud`` whose clients all share ``state``."""
    return Cloud(
        project=state.project,
        networks=MockResourceClient(state, "networks"),
        routers=MockResourceClient(state, "routers"),
        subnetworks=MockResourceClient(state, "subnetworks"),
        firewalls=MockResourceClient(state, "firewalls"),
        global_addresses=MockResourceClient(state, "global_addresses"),
        health_checks=MockResourceClient(state, "health_checks"),
        backend_services=MockResourceClient(state, "backend_services"),
        instance_groups=MockInstanceGroupClient(state),
        target_tcp_proxies=MockResourceClient(state, "target_tcp_proxies"),
        global_forwarding_rules=MockResourceClient(state, "global_forwarding_rules"),
        instances=MockResourceClient(state, "instances"),
        regions=MockResourceClient(state, "regions"),
        zones=MockZoneLister(state),
    )
