"""Capability sets over provider resource clients.

The reconcilers never talk to a concrete API client. Each resource kind is
reached through a narrow protocol (get/insert/update/patch/delete, plus
listing and membership operations for instance groups). ``compute.py``
implements them over ``google-cloud-compute``; tests substitute an
in-memory double.

All calls are coroutines: each one is a provider round trip and a
suspension point. Cancellation of the awaiting task aborts the call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, TypeVar

from google.api_core.exceptions import Conflict, GoogleAPICallError

from .errors import is_not_found
from .keys import ResourceKey
from .models import (
    Address,
    BackendService,
    Firewall,
    ForwardingRule,
    HealthCheck,
    Instance,
    InstanceGroup,
    InstanceWithNamedPorts,
    Network,
    Region,
    Router,
    Subnetwork,
    TargetTcpProxy,
    Zone,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ListFilter:
    """Field filter for list calls: ``field eq pattern`` (regular expression)."""

    field: str
    pattern: str

    def render(self) -> str:
        return f"{self.field} eq {self.pattern}"


# =============================================================================
# Capability Sets
# =============================================================================


class ResourceReader(Protocol[T]):
    async def get(self, key: ResourceKey) -> T: ...


class ResourceClient(ResourceReader[T], Protocol[T]):
    """Get/insert/delete, the minimum every managed kind supports."""

    async def insert(self, key: ResourceKey, obj: T) -> None: ...

    async def delete(self, key: ResourceKey) -> None: ...


class UpdatableResourceClient(ResourceClient[T], Protocol[T]):
    async def update(self, key: ResourceKey, obj: T) -> None: ...


class PatchableResourceClient(ResourceClient[T], Protocol[T]):
    async def patch(self, key: ResourceKey, obj: T) -> None: ...


class ZoneLister(Protocol):
    async def list(self, list_filter: ListFilter | None = None) -> list[Zone]: ...


class InstanceGroupClient(ResourceClient[InstanceGroup], Protocol):
    """Instance groups additionally expose their membership list."""

    async def list(
        self, zone: str, list_filter: ListFilter | None = None
    ) -> list[InstanceGroup]: ...

    async def list_instances(
        self, key: ResourceKey, instance_state: str = "ALL"
    ) -> list[InstanceWithNamedPorts]: ...

    async def add_instances(self, key: ResourceKey, instances: list[str]) -> None: ...

    async def remove_instances(self, key: ResourceKey, instances: list[str]) -> None: ...


@dataclass(frozen=True)
class Cloud:
    """Bundle of per-kind clients for one project."""

    project: str
    networks: ResourceClient[Network]
    routers: ResourceClient[Router]
    subnetworks: PatchableResourceClient[Subnetwork]
    firewalls: UpdatableResourceClient[Firewall]
    global_addresses: ResourceClient[Address]
    health_checks: ResourceClient[HealthCheck]
    backend_services: UpdatableResourceClient[BackendService]
    instance_groups: InstanceGroupClient
    target_tcp_proxies: ResourceClient[TargetTcpProxy]
    global_forwarding_rules: ResourceClient[ForwardingRule]
    instances: ResourceClient[Instance]
    regions: ResourceReader[Region]
    zones: ZoneLister


# =============================================================================
# Helpers
# =============================================================================


async def get_or_none(client: ResourceReader[T], key: ResourceKey) -> T | None:
    """Look up a resource, returning None when it does not exist.

    Any error other than not-found propagates.
    """
    try:
        return await client.get(key)
    except GoogleAPICallError as err:
        if is_not_found(err):
            return None
        raise


async def ensure(client: ResourceClient[T], key: ResourceKey, spec: T, *, kind: str) -> T:
    """Return the resource at ``key``, creating it from ``spec`` if absent.

    The insert response does not carry the full resource, so a created
    resource is re-fetched before it is returned. An insert that loses a
    race with another actor (``Conflict``) re-fetches the winner's resource.

    Args:
        client: Capability set for the resource kind.
        key: Scoped key of the resource.
        spec: Desired resource, already stamped with any cross references.
        kind: Human-readable kind for log output.

    Returns:
        The observed resource.

    Raises:
        GoogleAPICallError: Any lookup error other than not-found, or any
            insert/re-fetch error.
    """
    logger.debug("Looking for %s", kind, extra={"resource": str(key)})
    resource = await get_or_none(client, key)
    if resource is not None:
        return resource

    logger.info("Creating %s", kind, extra={"resource": str(key)})
    await insert_tolerating_conflict(client, key, spec, kind=kind)
    return await client.get(key)


async def insert_tolerating_conflict(
    client: ResourceClient[T], key: ResourceKey, spec: T, *, kind: str
) -> bool:
    """Insert ``spec``, treating "already exists" as created by someone else.

    Returns:
        True if this call created the resource, False on a conflict.
    """
    try:
        await client.insert(key, spec)
    except Conflict:
        logger.info("%s already exists", kind, extra={"resource": str(key)})
        return False
    except GoogleAPICallError:
        logger.error("Error creating %s", kind, extra={"resource": str(key)})
        raise
    return True


async def delete_if_exists(client: ResourceClient[T], key: ResourceKey, *, kind: str) -> bool:
    """Delete the resource at ``key``, treating not-found as already deleted.

    Returns:
        True if a delete call succeeded, False if the resource was absent.
    """
    logger.info("Deleting %s", kind, extra={"resource": str(key)})
    try:
        await client.delete(key)
    except GoogleAPICallError as err:
        if is_not_found(err):
            logger.debug("%s already deleted", kind, extra={"resource": str(key)})
            return False
        logger.error("Error deleting %s", kind, extra={"resource": str(key)})
        raise
    return True
