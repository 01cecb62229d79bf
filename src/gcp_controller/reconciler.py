"""Engine entry points for cluster and machine reconciliation.

A cluster reconcile is one sequential chain::

    failure domains -> network -> firewall rules -> load balancer -> endpoint

and a cluster delete walks the resource steps in reverse (load balancer,
firewall rules, network). Machines are reconciled separately, one call per
machine.

Every entry point runs under ``Config.reconcile_timeout_seconds``. The
first error aborts the chain and is recorded on the returned
``ReconcileResult``; nothing already created is rolled back and nothing is
retried here. The caller decides whether and when to run again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .bootstrap import BootstrapDataProvider
from .cloud import Cloud, ListFilter
from .config import REQUEUE_AFTER_SECONDS, Config
from .errors import ReconcileTimeoutError
from .firewalls import FirewallReconciler
from .instances import InstanceReconciler
from .keys import ResourceKey
from .loadbalancers import LoadBalancerReconciler
from .networks import NetworkReconciler
from .provenance import get_provenance_logger
from .scope import LOADBALANCER_PORT, ClusterScope, MachineScope
from .status import APIEndpoint, ClusterStatus, MachineStatus

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Engine entry point invoked."""

    RECONCILE = "reconcile"
    DELETE = "delete"


@dataclass
class ReconcileResult:
    """Result of a single reconcile or delete call."""

    cluster: str
    action: Action
    machine: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    cluster_status: ClusterStatus | None = None
    machine_status: MachineStatus | None = None
    requeue_after_seconds: int | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the call finished without error."""
        return self.error is None

    @property
    def ready(self) -> bool:
        if self.cluster_status is not None:
            return self.cluster_status.ready
        if self.machine_status is not None:
            return self.machine_status.ready
        return False


class _Engine:
    """Shared timeout, result and provenance handling of the entry points."""

    def __init__(self, cluster: ClusterScope, config: Config | None) -> None:
        self._cluster = cluster
        self._config = config or Config()

    @property
    def _machine_name(self) -> str | None:
        return None

    async def _run(
        self,
        action: Action,
        step: Callable[[ReconcileResult], Awaitable[None]],
    ) -> ReconcileResult:
        result = ReconcileResult(
            cluster=self._cluster.name, action=action, machine=self._machine_name
        )
        provenance_logger = get_provenance_logger()
        provenance = provenance_logger.create_provenance(
            cluster=self._cluster.name,
            action=action.value,
            project=self._cluster.project,
            region=self._cluster.region,
            machine=self._machine_name,
        )

        timeout = self._config.reconcile_timeout_seconds
        try:
            await asyncio.wait_for(step(result), timeout=timeout)
        except TimeoutError:
            result.error = ReconcileTimeoutError(
                f"{action.value} of {self._cluster.name} did not finish within {timeout}s"
            )
        except Exception as e:
            result.error = e
        finally:
            result.end_time = datetime.now(UTC)

        self._log_result(result)

        provenance.ready = result.ready
        provenance.requeue_after_seconds = result.requeue_after_seconds
        provenance.duration_seconds = result.duration_seconds
        if result.error is not None:
            provenance.error = str(result.error)
            provenance.error_type = type(result.error).__name__
        provenance_logger.log_provenance(provenance)

        return result

    def _log_result(self, result: ReconcileResult) -> None:
        """Log the call result with structured data."""
        extra: dict[str, Any] = {
            "cluster": result.cluster,
            "action": result.action.value,
            "duration_seconds": result.duration_seconds,
            "ready": result.ready,
        }
        if result.machine is not None:
            extra["machine"] = result.machine
        if result.requeue_after_seconds is not None:
            extra["requeue_after_seconds"] = result.requeue_after_seconds

        if result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)


class ClusterReconciler(_Engine):
    """Reconciles and tears down the cluster-level infrastructure."""

    def __init__(self, scope: ClusterScope, cloud: Cloud, config: Config | None = None) -> None:
        super().__init__(scope, config)
        self._scope = scope
        self._cloud = cloud

    async def reconcile(self) -> ReconcileResult:
        """Converge failure domains, network, firewall rules and load balancer."""
        return await self._run(Action.RECONCILE, self._reconcile)

    async def delete(self) -> ReconcileResult:
        """Delete load balancer, firewall rules and network, in that order."""
        return await self._run(Action.DELETE, self._delete)

    async def _reconcile(self, result: ReconcileResult) -> None:
        status = ClusterStatus()
        result.cluster_status = status

        status.failure_domains = await self.reconcile_failure_domains()
        status.network = await NetworkReconciler(self._scope, self._cloud).reconcile()
        await FirewallReconciler(self._scope, self._cloud).reconcile()
        status.load_balancer = await LoadBalancerReconciler(self._scope, self._cloud).reconcile(
            status.failure_domains
        )

        host = status.load_balancer.api_server_ip
        if not host:
            logger.info(
                "Control plane endpoint not known yet",
                extra={"cluster": self._scope.name},
            )
            result.requeue_after_seconds = REQUEUE_AFTER_SECONDS
            return

        status.control_plane_endpoint = APIEndpoint(host=host, port=LOADBALANCER_PORT)
        status.ready = True

    async def _delete(self, result: ReconcileResult) -> None:
        zones = await self.reconcile_failure_domains()

        await LoadBalancerReconciler(self._scope, self._cloud).delete(zones)
        await FirewallReconciler(self._scope, self._cloud).delete()
        network = await NetworkReconciler(self._scope, self._cloud).delete()

        result.cluster_status = ClusterStatus(failure_domains=zones, network=network)

    async def reconcile_failure_domains(self) -> list[str]:
        """Zones of the cluster region, restricted to the declared failure domains.

        Zones keep the provider's listing order. Without declared failure
        domains every zone of the region is used.
        """
        region = await self._cloud.regions.get(ResourceKey.global_(self._scope.region))
        zones = await self._cloud.zones.list(ListFilter("region", region.self_link or ""))

        declared = set(self._scope.failure_domains)
        names = [zone.name for zone in zones if not declared or zone.name in declared]

        missing = declared.difference(names)
        if missing:
            logger.warning(
                "Failure domains not found in region",
                extra={"region": self._scope.region, "zones": sorted(missing)},
            )

        logger.debug("Failure domains", extra={"region": self._scope.region, "zones": names})
        return names


class MachineReconciler(_Engine):
    """Reconciles and tears down one machine's instance."""

    def __init__(
        self,
        scope: MachineScope,
        cloud: Cloud,
        bootstrap: BootstrapDataProvider,
        config: Config | None = None,
    ) -> None:
        super().__init__(scope.cluster, config)
        self._scope = scope
        self._instances = InstanceReconciler(scope, cloud, bootstrap)

    @property
    def _machine_name(self) -> str | None:
        return self._scope.name

    async def reconcile(self) -> ReconcileResult:
        """Converge the instance and, for control-plane machines, group membership."""
        return await self._run(Action.RECONCILE, self._reconcile)

    async def delete(self) -> ReconcileResult:
        """Deregister and delete the instance."""
        return await self._run(Action.DELETE, self._delete)

    async def _reconcile(self, result: ReconcileResult) -> None:
        try:
            await self._instances.reconcile()
        finally:
            result.machine_status = self._instances.status
        if result.machine_status is not None and not result.machine_status.ready:
            result.requeue_after_seconds = REQUEUE_AFTER_SECONDS

    async def _delete(self, result: ReconcileResult) -> None:
        try:
            await self._instances.delete()
        finally:
            result.machine_status = self._instances.status
