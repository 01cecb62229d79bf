"""Control-plane load balancer chain.

The chain is built in order, each step consuming the self-link of an
earlier one::

    address -> health check -> backend service -> instance groups (per zone)
            -> target TCP proxy -> forwarding rule

A failure aborts the chain without rolling back earlier steps; the next
reconcile finds them already present. Delete walks the chain backwards and
tolerates any step that was never created.
"""

from __future__ import annotations

import logging

from .cloud import Cloud, delete_if_exists, ensure, get_or_none
from .keys import ResourceKey
from .models import (
    Address,
    Backend,
    BackendService,
    ForwardingRule,
    HealthCheck,
    InstanceGroup,
    TargetTcpProxy,
)
from .scope import ClusterScope
from .status import LoadBalancerStatus

logger = logging.getLogger(__name__)

BALANCING_MODE = "UTILIZATION"


class LoadBalancerReconciler:
    """Reconciles the API server load balancer of a cluster."""

    def __init__(self, scope: ClusterScope, cloud: Cloud) -> None:
        self._scope = scope
        self._addresses = cloud.global_addresses
        self._healthchecks = cloud.health_checks
        self._backendservices = cloud.backend_services
        self._instancegroups = cloud.instance_groups
        self._targettcpproxies = cloud.target_tcp_proxies
        self._forwardingrules = cloud.global_forwarding_rules

    async def reconcile(self, zones: list[str]) -> LoadBalancerStatus:
        """Converge the load balancer chain.

        Args:
            zones: Failure domains; one control-plane instance group each.

        Returns:
            Self-links of every resource in the chain and the API server IP.
        """
        status = LoadBalancerStatus()

        address = await self.create_or_get_address()
        status.address = address.self_link
        status.api_server_ip = address.address

        healthcheck = await self.create_or_get_health_check()
        status.health_check = healthcheck.self_link

        backendsvc = await self.create_or_get_backend_service(healthcheck)
        status.backend_service = backendsvc.self_link

        instancegroups = await self.create_or_get_instance_groups(zones)
        status.instance_groups = {
            zone: group.self_link or "" for zone, group in instancegroups.items()
        }
        await self.ensure_backends(backendsvc, list(instancegroups.values()))

        target = await self.create_or_get_target_tcp_proxy(backendsvc)
        status.target_tcp_proxy = target.self_link

        forwarding = await self.create_or_get_forwarding_rule(target, address)
        status.forwarding_rule = forwarding.self_link

        return status

    async def create_or_get_address(self) -> Address:
        spec = self._scope.address_spec()
        return await ensure(self._addresses, ResourceKey.global_(spec.name), spec, kind="address")

    async def create_or_get_health_check(self) -> HealthCheck:
        spec = self._scope.health_check_spec()
        return await ensure(
            self._healthchecks, ResourceKey.global_(spec.name), spec, kind="health check"
        )

    async def create_or_get_backend_service(self, healthcheck: HealthCheck) -> BackendService:
        spec = self._scope.backend_service_spec()
        spec = spec.model_copy(update={"health_checks": [healthcheck.self_link]})
        return await ensure(
            self._backendservices, ResourceKey.global_(spec.name), spec, kind="backend service"
        )

    async def create_or_get_instance_groups(self, zones: list[str]) -> dict[str, InstanceGroup]:
        groups: dict[str, InstanceGroup] = {}
        network = self._scope.network_url()
        for zone in zones:
            spec = self._scope.instance_group_spec(zone)
            spec = spec.model_copy(update={"network": network})
            groups[zone] = await ensure(
                self._instancegroups,
                ResourceKey.zonal(spec.name, zone),
                spec,
                kind="instance group",
            )
        return groups

    async def ensure_backends(
        self, backendsvc: BackendService, groups: list[InstanceGroup]
    ) -> None:
        """Point the backend service at exactly the given instance groups."""
        backends = [
            Backend(group=group.self_link, balancing_mode=BALANCING_MODE)
            for group in groups
            if group.self_link
        ]
        if [b.group for b in backendsvc.backends] == [b.group for b in backends]:
            return

        logger.info(
            "Updating backend service backends",
            extra={"backend_service": backendsvc.name, "groups": [b.group for b in backends]},
        )
        await self._backendservices.update(
            ResourceKey.global_(backendsvc.name),
            backendsvc.model_copy(update={"backends": backends}),
        )

    async def create_or_get_target_tcp_proxy(self, backendsvc: BackendService) -> TargetTcpProxy:
        spec = self._scope.target_tcp_proxy_spec()
        spec = spec.model_copy(update={"service": backendsvc.self_link})
        return await ensure(
            self._targettcpproxies, ResourceKey.global_(spec.name), spec, kind="target tcp proxy"
        )

    async def create_or_get_forwarding_rule(
        self, target: TargetTcpProxy, address: Address
    ) -> ForwardingRule:
        spec = self._scope.forwarding_rule_spec()
        spec = spec.model_copy(update={"target": target.self_link, "ip_address": address.address})
        return await ensure(
            self._forwardingrules, ResourceKey.global_(spec.name), spec, kind="forwarding rule"
        )

    async def delete(self, zones: list[str]) -> LoadBalancerStatus:
        """Delete the chain in reverse order.

        Args:
            zones: Failure domains whose instance groups should be removed.
        """
        await delete_if_exists(
            self._forwardingrules,
            ResourceKey.global_(self._scope.forwarding_rule_spec().name),
            kind="forwarding rule",
        )
        await delete_if_exists(
            self._targettcpproxies,
            ResourceKey.global_(self._scope.target_tcp_proxy_spec().name),
            kind="target tcp proxy",
        )

        backendsvc_key = ResourceKey.global_(self._scope.backend_service_spec().name)
        await self._detach_backends(backendsvc_key)
        for zone in zones:
            await delete_if_exists(
                self._instancegroups,
                self._scope.control_plane_group_key(zone),
                kind="instance group",
            )

        await delete_if_exists(self._backendservices, backendsvc_key, kind="backend service")
        await delete_if_exists(
            self._healthchecks,
            ResourceKey.global_(self._scope.health_check_spec().name),
            kind="health check",
        )
        await delete_if_exists(
            self._addresses,
            ResourceKey.global_(self._scope.address_spec().name),
            kind="address",
        )
        return LoadBalancerStatus()

    async def _detach_backends(self, key: ResourceKey) -> None:
        # Instance groups still referenced by a backend service cannot be deleted
        backendsvc = await get_or_none(self._backendservices, key)
        if backendsvc is None or not backendsvc.backends:
            return

        logger.info("Detaching instance groups from backend service", extra={"resource": str(key)})
        await self._backendservices.update(key, backendsvc.model_copy(update={"backends": []}))
