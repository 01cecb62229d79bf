"""Machine instance reconciliation and control-plane group membership.

A control-plane instance is registered in its zone's API server instance
group only once it is RUNNING, so the load balancer never routes to a node
that is still provisioning. Registration is retried on every reconcile
until the status flips.
"""

from __future__ import annotations

import logging

from google.api_core.exceptions import GoogleAPICallError

from .bootstrap import BootstrapDataProvider
from .cloud import Cloud, delete_if_exists, ensure, get_or_none
from .errors import BootstrapDataError, is_not_found
from .models import INSTANCE_STATUS_RUNNING, Instance, MetadataItem
from .scope import MachineScope
from .status import EXTERNAL_IP, INTERNAL_IP, MachineStatus, NodeAddress

logger = logging.getLogger(__name__)

BOOTSTRAP_METADATA_KEY = "user-data"
INSTANCE_STATE_ALL = "ALL"


def node_addresses(instance: Instance) -> list[NodeAddress]:
    """Addresses of an instance in provider interface order.

    Each interface contributes its internal IP followed by one external IP
    per access config.
    """
    addresses: list[NodeAddress] = []
    for iface in instance.network_interfaces:
        addresses.append(NodeAddress(type=INTERNAL_IP, address=iface.network_ip or ""))
        for access_config in iface.access_configs:
            addresses.append(NodeAddress(type=EXTERNAL_IP, address=access_config.nat_ip or ""))
    return addresses


class InstanceReconciler:
    """Reconciles one machine's instance."""

    def __init__(
        self,
        scope: MachineScope,
        cloud: Cloud,
        bootstrap: BootstrapDataProvider,
    ) -> None:
        self._scope = scope
        self._instances = cloud.instances
        self._instancegroups = cloud.instance_groups
        self._bootstrap = bootstrap
        self._status: MachineStatus | None = None

    @property
    def status(self) -> MachineStatus | None:
        """Status observed by the last call, kept even when a later step failed."""
        return self._status

    async def reconcile(self) -> MachineStatus:
        """Converge the instance and, for control-plane machines, its group membership.

        The status is recorded before registration, so a failed registration
        still leaves the observed instance in ``status``.

        Raises:
            BootstrapDataError: If the bootstrap payload is unavailable.
            GoogleAPICallError: First provider error encountered.
        """
        self._status = None
        instance = await self.create_or_get_instance()

        status = MachineStatus(
            provider_id=self._scope.provider_id,
            addresses=node_addresses(instance),
            instance_status=instance.status,
            ready=instance.status == INSTANCE_STATUS_RUNNING,
        )
        self._status = status

        if self._scope.is_control_plane:
            await self.register_control_plane_instance(instance)

        return status

    async def create_or_get_instance(self) -> Instance:
        logger.debug("Getting bootstrap data for machine", extra={"machine": self._scope.name})
        try:
            bootstrap_data = await self._bootstrap.get_bootstrap_data()
        except BootstrapDataError as e:
            logger.error(
                "Error getting bootstrap data for machine",
                extra={"machine": self._scope.name, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.error(
                "Error getting bootstrap data for machine",
                extra={"machine": self._scope.name, "error": str(e)},
            )
            raise BootstrapDataError(f"failed to retrieve bootstrap data: {e}") from e

        spec = self._scope.instance_spec()
        metadata = spec.metadata.model_copy(
            update={
                "items": [
                    *spec.metadata.items,
                    MetadataItem(key=BOOTSTRAP_METADATA_KEY, value=bootstrap_data),
                ]
            }
        )
        spec = spec.model_copy(update={"metadata": metadata})

        return await ensure(self._instances, self._scope.instance_key, spec, kind="instance")

    async def _member_links(self, instance: Instance, instance_state: str) -> set[str] | None:
        """Member links of the control-plane group, or None if the group does not exist."""
        key = self._scope.control_plane_group_key()
        try:
            members = await self._instancegroups.list_instances(
                key, instance_state=instance_state
            )
        except GoogleAPICallError as err:
            if is_not_found(err):
                logger.info(
                    "Instancegroup not found",
                    extra={"instance": instance.name, "instancegroup": key.name},
                )
                return None
            logger.error(
                "Error retrieving list of instances in the instancegroup",
                extra={"instance": instance.name, "instancegroup": key.name},
            )
            raise
        return {member.instance for member in members}

    async def register_control_plane_instance(self, instance: Instance) -> None:
        """Add a RUNNING instance to the control-plane group if not already a member."""
        key = self._scope.control_plane_group_key()
        logger.debug(
            "Ensuring instance is registered in the instancegroup",
            extra={"instance": instance.name, "instancegroup": key.name},
        )
        members = await self._member_links(instance, INSTANCE_STATUS_RUNNING)

        if members is None or instance.self_link in members:
            return
        if instance.status != INSTANCE_STATUS_RUNNING:
            logger.info(
                "Instance not running yet, deferring instancegroup registration",
                extra={"instance": instance.name, "status": instance.status},
            )
            return

        logger.info(
            "Registering instance in the instancegroup",
            extra={"instance": instance.name, "instancegroup": key.name},
        )
        await self._instancegroups.add_instances(key, [instance.self_link or ""])

    async def deregister_control_plane_instance(self, instance: Instance) -> None:
        """Remove the instance from the control-plane group if it is a member."""
        key = self._scope.control_plane_group_key()
        members = await self._member_links(instance, INSTANCE_STATE_ALL)

        if members is None or instance.self_link not in members:
            return

        logger.info(
            "Deregistering instance from the instancegroup",
            extra={"instance": instance.name, "instancegroup": key.name},
        )
        await self._instancegroups.remove_instances(key, [instance.self_link or ""])

    async def delete(self) -> MachineStatus:
        """Deregister and delete the instance; a missing instance is a no-op."""
        key = self._scope.instance_key
        self._status = None
        logger.debug("Looking for instance before deleting", extra={"resource": str(key)})
        instance = await get_or_none(self._instances, key)
        if instance is None:
            self._status = MachineStatus()
            return self._status

        if self._scope.is_control_plane:
            await self.deregister_control_plane_instance(instance)

        await delete_if_exists(self._instances, key, kind="instance")
        self._status = MachineStatus()
        return self._status
