"""Network, NAT router and subnet reconciliation.

Reconcile creates the network if missing, attaches a NAT router only to a
network this controller owns, and creates or patches subnets. Secondary IP
ranges are merged additively: ranges present only on the provider side are
never removed during reconcile.

Delete reverses the order. Self-owned subnets are deleted; foreign subnets
are patched to drop only the ranges this cluster declares. The router and
network are removed only when the network is self-owned.
"""

from __future__ import annotations

import logging

from .cloud import Cloud, delete_if_exists, ensure, get_or_none
from .keys import ResourceKey
from .models import Network, Router, Subnetwork, SubnetworkSecondaryRange
from .ownership import is_owned_by
from .scope import ClusterScope
from .status import NetworkStatus

logger = logging.getLogger(__name__)


def merge_secondary_ranges(
    observed: list[SubnetworkSecondaryRange],
    desired: list[SubnetworkSecondaryRange],
) -> list[SubnetworkSecondaryRange]:
    """Union of two range lists keyed by range name.

    Observed entries keep their position and win on conflict; desired
    entries with new names are appended in order.
    """
    names = {r.range_name for r in observed}
    merged = list(observed)
    for ip_range in desired:
        if ip_range.range_name not in names:
            merged.append(ip_range)
            names.add(ip_range.range_name)
    return merged


def subtract_secondary_ranges(
    observed: list[SubnetworkSecondaryRange],
    desired: list[SubnetworkSecondaryRange],
) -> list[SubnetworkSecondaryRange]:
    """Observed ranges minus every range name the desired list declares."""
    names = {r.range_name for r in desired}
    return [r for r in observed if r.range_name not in names]


class NetworkReconciler:
    """Reconciles the cluster network, its NAT router and subnets."""

    def __init__(self, scope: ClusterScope, cloud: Cloud) -> None:
        self._scope = scope
        self._networks = cloud.networks
        self._routers = cloud.routers
        self._subnetworks = cloud.subnetworks

    def _network_key(self) -> ResourceKey:
        return ResourceKey.global_(self._scope.network_name)

    def _router_key(self, router: Router) -> ResourceKey:
        return ResourceKey.regional(router.name, self._scope.region)

    def _subnet_key(self, subnet: Subnetwork) -> ResourceKey:
        return ResourceKey.regional(subnet.name, subnet.region or self._scope.region)

    async def reconcile(self) -> NetworkStatus:
        """Converge network, router and subnets.

        Returns:
            Self-links of the network and (when owned) its router.

        Raises:
            GoogleAPICallError: First provider error encountered.
        """
        status = NetworkStatus()
        network = await self.create_or_get_network()

        if is_owned_by(network, self._scope.name):
            router = await self.create_or_get_router(network)
            status.router = router.self_link
        else:
            logger.info(
                "Network not created by this cluster, skipping NAT router",
                extra={"network": network.name, "cluster": self._scope.name},
            )

        status.self_link = network.self_link
        await self.create_or_patch_subnets(network)
        return status

    async def create_or_get_network(self) -> Network:
        return await ensure(
            self._networks, self._network_key(), self._scope.network_spec(), kind="network"
        )

    async def create_or_get_router(self, network: Network) -> Router:
        spec = self._scope.nat_router_spec()
        key = self._router_key(spec)
        spec = spec.model_copy(
            update={"network": network.self_link, "description": self._scope.tag}
        )
        return await ensure(self._routers, key, spec, kind="cloudnat router")

    async def create_or_patch_subnets(self, network: Network) -> None:
        """Create missing subnets and add missing secondary ranges to existing ones."""
        for spec in self._scope.subnetwork_specs():
            key = self._subnet_key(spec)
            stamped = spec.model_copy(
                update={"network": network.self_link, "description": self._scope.tag}
            )
            subnet = await ensure(self._subnetworks, key, stamped, kind="subnet")

            merged = merge_secondary_ranges(subnet.secondary_ip_ranges, spec.secondary_ip_ranges)
            if merged != subnet.secondary_ip_ranges:
                logger.info(
                    "Patching secondary ip ranges for subnet",
                    extra={
                        "subnet": spec.name,
                        "ranges": [r.range_name for r in merged],
                    },
                )
                await self._subnetworks.patch(
                    key, subnet.model_copy(update={"secondary_ip_ranges": merged})
                )

    async def delete(self) -> NetworkStatus:
        """Tear down subnets, router and network created by this cluster.

        Returns:
            An empty status: the recorded self-links are cleared.

        Raises:
            GoogleAPICallError: First provider error other than not-found.
        """
        await self.delete_or_patch_subnets()

        network_key = self._network_key()
        logger.debug("Looking for network before deleting", extra={"resource": str(network_key)})
        network = await get_or_none(self._networks, network_key)
        if network is None:
            return NetworkStatus()

        if not is_owned_by(network, self._scope.name):
            logger.info(
                "Network not created by this cluster, leaving it in place",
                extra={"network": network.name, "cluster": self._scope.name},
            )
            return NetworkStatus()

        router_key = self._router_key(self._scope.nat_router_spec())
        logger.debug("Looking for cloudnat router before deleting", extra={"resource": str(router_key)})
        router = await get_or_none(self._routers, router_key)
        if is_owned_by(router, self._scope.name):
            await delete_if_exists(self._routers, router_key, kind="cloudnat router")

        await delete_if_exists(self._networks, network_key, kind="network")
        return NetworkStatus()

    async def delete_or_patch_subnets(self) -> None:
        """Delete owned subnets; strip this cluster's ranges from foreign ones."""
        for spec in self._scope.subnetwork_specs():
            key = self._subnet_key(spec)
            logger.debug("Looking for subnet before deleting", extra={"resource": str(key)})
            subnet = await get_or_none(self._subnetworks, key)
            if subnet is None:
                continue

            if is_owned_by(subnet, self._scope.name):
                await delete_if_exists(self._subnetworks, key, kind="subnet")
                continue

            remaining = subtract_secondary_ranges(
                subnet.secondary_ip_ranges, spec.secondary_ip_ranges
            )
            if remaining != subnet.secondary_ip_ranges:
                logger.info(
                    "Restoring secondary ip ranges for subnet",
                    extra={
                        "subnet": spec.name,
                        "ranges": [r.range_name for r in remaining],
                    },
                )
                await self._subnetworks.patch(
                    key, subnet.model_copy(update={"secondary_ip_ranges": remaining})
                )
