"""Tests for the google-cloud-compute adapters.

The generated clients are replaced with MagicMocks; the proto messages
are real so the JSON conversion is exercised end to end.
"""

from __future__ import annotations

from contextlib import ExitStack
from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import BadRequest
from google.cloud import compute_v1

from gcp_controller.cloud import ListFilter
from gcp_controller.compute import (
    ComputeInstanceGroupClient,
    ComputeResourceClient,
    ComputeZoneLister,
    OperationWaiter,
    new_cloud,
    to_message,
    to_model,
)
from gcp_controller.config import Config
from gcp_controller.errors import OperationTimeoutError
from gcp_controller.keys import ResourceKey
from gcp_controller.models import (
    Firewall,
    FirewallAllowed,
    ForwardingRule,
    Instance,
    InstanceGroup,
    Subnetwork,
    SubnetworkSecondaryRange,
)
from gcp_controller.ratelimit import OperationRateLimiter

CLIENT_CLASSES = (
    "NetworksClient",
    "RoutersClient",
    "SubnetworksClient",
    "FirewallsClient",
    "GlobalAddressesClient",
    "HealthChecksClient",
    "BackendServicesClient",
    "InstanceGroupsClient",
    "TargetTcpProxiesClient",
    "GlobalForwardingRulesClient",
    "InstancesClient",
    "RegionsClient",
    "ZonesClient",
)


class RecordingSleep:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def finished_operation() -> MagicMock:
    operation = MagicMock()
    operation.done.return_value = True
    return operation


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def waiter(sleep: RecordingSleep) -> OperationWaiter:
    limiter = OperationRateLimiter(qps=100, burst=10, minimum_interval=0.25, sleep=sleep)
    return OperationWaiter(limiter, timeout_seconds=60)


class TestMessageConversion:
    """Tests for to_message and to_model."""

    def test_model_to_message_uses_rest_names(self) -> None:
        """Test aliased fields land on the matching proto fields."""
        firewall = Firewall(
            name="fw",
            allowed=[FirewallAllowed(ip_protocol="tcp", ports=["6443"])],
            source_ranges=["0.0.0.0/0"],
            target_tags=["c-control-plane"],
        )

        message = to_message(compute_v1.Firewall, firewall)

        assert message.name == "fw"
        assert message.allowed[0].I_p_protocol == "tcp"
        assert list(message.allowed[0].ports) == ["6443"]
        assert list(message.source_ranges) == ["0.0.0.0/0"]
        assert list(message.target_tags) == ["c-control-plane"]

    def test_message_to_model(self) -> None:
        """Test proto messages parse into the resource models."""
        message = compute_v1.Subnetwork(
            name="sub1",
            ip_cidr_range="10.0.0.0/20",
            self_link="https://example/sub1",
            secondary_ip_ranges=[
                compute_v1.SubnetworkSecondaryRange(range_name="pods", ip_cidr_range="10.1.0.0/16")
            ],
        )

        subnet = to_model(Subnetwork, compute_v1.Subnetwork, message)

        assert subnet.name == "sub1"
        assert subnet.self_link == "https://example/sub1"
        assert subnet.secondary_ip_ranges == [
            SubnetworkSecondaryRange(range_name="pods", ip_cidr_range="10.1.0.0/16")
        ]

    def test_ip_address_alias(self) -> None:
        """Test the upper-case REST names survive both directions."""
        rule = ForwardingRule(name="fr", ip_address="203.0.113.10", ip_protocol="TCP")

        message = to_message(compute_v1.ForwardingRule, rule)
        back = to_model(ForwardingRule, compute_v1.ForwardingRule, message)

        assert message.I_p_address == "203.0.113.10"
        assert back.ip_address == "203.0.113.10"
        assert back.ip_protocol == "TCP"


class TestOperationWaiter:
    """Tests for OperationWaiter."""

    @pytest.mark.asyncio
    async def test_polls_until_done(self, waiter: OperationWaiter, sleep: RecordingSleep) -> None:
        """Test each unfinished poll passes the limiter before the next."""
        operation = MagicMock()
        operation.done.side_effect = [False, False, True]

        await waiter.wait(operation, description="insert global/fw")

        assert operation.done.call_count == 3
        assert sleep.sleeps == [0.25, 0.25]
        operation.result.assert_called_once()

    @pytest.mark.asyncio
    async def test_operation_error_propagates(self, waiter: OperationWaiter) -> None:
        """Test a failed operation raises its provider error."""
        operation = finished_operation()
        operation.result.side_effect = BadRequest("invalid CIDR")

        with pytest.raises(BadRequest):
            await waiter.wait(operation, description="insert regions/r/subnetworks/s")

    @pytest.mark.asyncio
    async def test_timeout(self, sleep: RecordingSleep) -> None:
        """Test an operation that never finishes hits the deadline."""
        limiter = OperationRateLimiter(minimum_interval=0, sleep=sleep)
        operation = MagicMock()
        operation.done.return_value = False

        with pytest.raises(OperationTimeoutError, match="global/fw"):
            await OperationWaiter(limiter, timeout_seconds=0).wait(
                operation, description="insert global/fw"
            )

        operation.result.assert_not_called()


class TestComputeResourceClient:
    """Tests for ComputeResourceClient."""

    def make_client(
        self, waiter: OperationWaiter, model: type, message_type: type, field: str
    ) -> tuple[ComputeResourceClient, MagicMock]:
        raw = MagicMock()
        raw.insert.return_value = finished_operation()
        raw.update.return_value = finished_operation()
        raw.patch.return_value = finished_operation()
        raw.delete.return_value = finished_operation()
        client = ComputeResourceClient(
            raw,
            project="p1",
            model=model,
            message_type=message_type,
            field=field,
            waiter=waiter,
        )
        return client, raw

    @pytest.mark.asyncio
    async def test_get_zonal(self, waiter: OperationWaiter) -> None:
        """Test zonal resources are addressed by zone."""
        client, raw = self.make_client(waiter, Instance, compute_v1.Instance, "instance")
        raw.get.return_value = compute_v1.Instance(name="vm", status="RUNNING")

        instance = await client.get(ResourceKey.zonal("vm", "us-central1-a"))

        raw.get.assert_called_once_with(project="p1", zone="us-central1-a", instance="vm")
        assert instance.name == "vm"
        assert instance.status == "RUNNING"

    @pytest.mark.asyncio
    async def test_insert_regional(self, waiter: OperationWaiter) -> None:
        """Test the body goes in the ``{field}_resource`` argument."""
        client, raw = self.make_client(waiter, Subnetwork, compute_v1.Subnetwork, "subnetwork")

        await client.insert(
            ResourceKey.regional("sub1", "us-central1"),
            Subnetwork(name="sub1", ip_cidr_range="10.0.0.0/20"),
        )

        kwargs = raw.insert.call_args.kwargs
        assert kwargs["project"] == "p1"
        assert kwargs["region"] == "us-central1"
        assert "subnetwork" not in kwargs
        assert kwargs["subnetwork_resource"].ip_cidr_range == "10.0.0.0/20"
        raw.insert.return_value.result.assert_called_once()

    @pytest.mark.asyncio
    async def test_update_and_delete_global(self, waiter: OperationWaiter) -> None:
        """Test global resources carry no location argument."""
        client, raw = self.make_client(waiter, Firewall, compute_v1.Firewall, "firewall")
        key = ResourceKey.global_("fw")

        await client.update(key, Firewall(name="fw", priority=900))
        await client.delete(key)

        update_kwargs = raw.update.call_args.kwargs
        assert update_kwargs["firewall"] == "fw"
        assert update_kwargs["firewall_resource"].priority == 900
        assert "region" not in update_kwargs
        raw.delete.assert_called_once_with(project="p1", firewall="fw")

    @pytest.mark.asyncio
    async def test_patch(self, waiter: OperationWaiter) -> None:
        """Test patch addresses the resource and sends the body."""
        client, raw = self.make_client(waiter, Subnetwork, compute_v1.Subnetwork, "subnetwork")

        await client.patch(
            ResourceKey.regional("sub1", "us-central1"),
            Subnetwork(name="sub1", fingerprint="abc="),
        )

        kwargs = raw.patch.call_args.kwargs
        assert kwargs["subnetwork"] == "sub1"
        assert kwargs["subnetwork_resource"].fingerprint == "abc="


class TestComputeInstanceGroupClient:
    """Tests for ComputeInstanceGroupClient."""

    @pytest.fixture
    def raw(self) -> MagicMock:
        raw = MagicMock()
        raw.add_instances.return_value = finished_operation()
        raw.remove_instances.return_value = finished_operation()
        return raw

    @pytest.fixture
    def client(self, raw: MagicMock, waiter: OperationWaiter) -> ComputeInstanceGroupClient:
        return ComputeInstanceGroupClient(
            raw,
            project="p1",
            model=InstanceGroup,
            message_type=compute_v1.InstanceGroup,
            field="instance_group",
            waiter=waiter,
        )

    @pytest.mark.asyncio
    async def test_list_with_filter(
        self, raw: MagicMock, client: ComputeInstanceGroupClient
    ) -> None:
        """Test the filter is rendered into the list request."""
        raw.list.return_value = iter([compute_v1.InstanceGroup(name="c-apiserver-a")])

        groups = await client.list("us-central1-a", ListFilter("name", "c-.*"))

        request = raw.list.call_args.kwargs["request"]
        assert request.zone == "us-central1-a"
        assert request.filter == "name eq c-.*"
        assert [g.name for g in groups] == ["c-apiserver-a"]

    @pytest.mark.asyncio
    async def test_list_instances(
        self, raw: MagicMock, client: ComputeInstanceGroupClient
    ) -> None:
        """Test member listing passes the instance state filter."""
        raw.list_instances.return_value = iter(
            [compute_v1.InstanceWithNamedPorts(instance="link/vm", status="RUNNING")]
        )

        members = await client.list_instances(
            ResourceKey.zonal("g", "us-central1-a"), instance_state="RUNNING"
        )

        kwargs = raw.list_instances.call_args.kwargs
        assert kwargs["instance_group"] == "g"
        assert kwargs["instance_groups_list_instances_request_resource"].instance_state == "RUNNING"
        assert [m.instance for m in members] == ["link/vm"]

    @pytest.mark.asyncio
    async def test_membership_bodies(
        self, raw: MagicMock, client: ComputeInstanceGroupClient
    ) -> None:
        """Test add and remove send instance references."""
        key = ResourceKey.zonal("g", "us-central1-a")

        await client.add_instances(key, ["link/vm"])
        await client.remove_instances(key, ["link/vm"])

        added = raw.add_instances.call_args.kwargs["instance_groups_add_instances_request_resource"]
        removed = raw.remove_instances.call_args.kwargs[
            "instance_groups_remove_instances_request_resource"
        ]
        assert [r.instance for r in added.instances] == ["link/vm"]
        assert [r.instance for r in removed.instances] == ["link/vm"]


class TestComputeZoneLister:
    """Tests for ComputeZoneLister."""

    @pytest.mark.asyncio
    async def test_list(self) -> None:
        """Test zones are listed with the region filter."""
        raw = MagicMock()
        raw.list.return_value = iter(
            [compute_v1.Zone(name="us-central1-a", region="regions/us-central1")]
        )

        zones = await ComputeZoneLister(raw, project="p1").list(
            ListFilter("region", "regions/us-central1")
        )

        assert raw.list.call_args.kwargs["request"].filter == "region eq regions/us-central1"
        assert [z.name for z in zones] == ["us-central1-a"]


class TestNewCloud:
    """Tests for new_cloud."""

    def test_builds_every_capability(self) -> None:
        """Test one client per kind is constructed for the project."""
        with ExitStack() as stack:
            mocks = {
                name: stack.enter_context(patch.object(compute_v1, name))
                for name in CLIENT_CLASSES
            }
            cloud = new_cloud("p1", Config())

        assert cloud.project == "p1"
        assert isinstance(cloud.instance_groups, ComputeInstanceGroupClient)
        assert isinstance(cloud.zones, ComputeZoneLister)
        for mock in mocks.values():
            mock.assert_called_once_with()
