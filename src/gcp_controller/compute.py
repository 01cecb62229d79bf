"""Capability sets implemented over the google-cloud-compute clients.

The generated clients are synchronous; every call runs in the default
executor so the reconcilers can await it. Mutating calls return an
extended operation which is polled through the operation rate limiter
until it completes, then ``result()`` raises the operation's error if any.

Resources cross this boundary as JSON: the pydantic models serialize with
their REST aliases and the proto messages parse the same names.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from google.cloud import compute_v1
from pydantic import BaseModel

from .cloud import Cloud, ListFilter
from .config import Config
from .errors import OperationTimeoutError
from .keys import KeyScope, ResourceKey
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
from .ratelimit import OperationRateLimiter

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def to_message(message_type: Any, obj: BaseModel) -> Any:
    """Convert a resource model into its compute_v1 message."""
    payload = obj.model_dump_json(by_alias=True, exclude_none=True)
    return message_type.from_json(payload, ignore_unknown_fields=True)


def to_model(model: type[M], message_type: Any, message: Any) -> M:
    """Convert a compute_v1 message into a resource model."""
    return model.model_validate_json(message_type.to_json(message))


async def run_blocking(fn: Callable[..., Any], /, **kwargs: Any) -> Any:
    """Run a synchronous client call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, **kwargs))


class OperationWaiter:
    """Polls extended operations to completion under the rate limiter."""

    def __init__(self, limiter: OperationRateLimiter, timeout_seconds: float) -> None:
        self._limiter = limiter
        self._timeout_seconds = timeout_seconds

    async def wait(self, operation: Any, *, description: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds

        while not await run_blocking(operation.done):
            if loop.time() >= deadline:
                raise OperationTimeoutError(
                    f"operation for {description} did not finish within "
                    f"{self._timeout_seconds}s"
                )
            await self._limiter.accept()

        await run_blocking(operation.result)
        logger.debug("Operation finished", extra={"resource": description})


class ComputeResourceClient(Generic[M]):
    """Get/insert/update/patch/delete for one resource kind.

    Args:
        client: A compute_v1 ``*Client`` instance.
        project: Project all calls are made against.
        model: Pydantic model of the resource.
        message_type: compute_v1 message class of the resource.
        field: Request field naming the resource (``network``,
            ``health_check``, ...). The body field is ``{field}_resource``.
        waiter: Operation waiter shared by the project's clients.
    """

    def __init__(
        self,
        client: Any,
        *,
        project: str,
        model: type[M],
        message_type: Any,
        field: str,
        waiter: OperationWaiter,
    ) -> None:
        self._client = client
        self._project = project
        self._model = model
        self._message_type = message_type
        self._field = field
        self._waiter = waiter

    def _location(self, key: ResourceKey) -> dict[str, str]:
        match key.scope:
            case KeyScope.REGIONAL:
                return {"region": key.region or ""}
            case KeyScope.ZONAL:
                return {"zone": key.zone or ""}
            case _:
                return {}

    def _addressed(self, key: ResourceKey) -> dict[str, Any]:
        return {"project": self._project, **self._location(key), self._field: key.name}

    async def get(self, key: ResourceKey) -> M:
        message = await run_blocking(self._client.get, **self._addressed(key))
        return to_model(self._model, self._message_type, message)

    async def insert(self, key: ResourceKey, obj: M) -> None:
        operation = await run_blocking(
            self._client.insert,
            project=self._project,
            **self._location(key),
            **{f"{self._field}_resource": to_message(self._message_type, obj)},
        )
        await self._waiter.wait(operation, description=f"insert {key}")

    async def update(self, key: ResourceKey, obj: M) -> None:
        operation = await run_blocking(
            self._client.update,
            **self._addressed(key),
            **{f"{self._field}_resource": to_message(self._message_type, obj)},
        )
        await self._waiter.wait(operation, description=f"update {key}")

    async def patch(self, key: ResourceKey, obj: M) -> None:
        operation = await run_blocking(
            self._client.patch,
            **self._addressed(key),
            **{f"{self._field}_resource": to_message(self._message_type, obj)},
        )
        await self._waiter.wait(operation, description=f"patch {key}")

    async def delete(self, key: ResourceKey) -> None:
        operation = await run_blocking(self._client.delete, **self._addressed(key))
        await self._waiter.wait(operation, description=f"delete {key}")


class ComputeInstanceGroupClient(ComputeResourceClient[InstanceGroup]):
    """Instance groups plus their membership operations."""

    async def list(self, zone: str, list_filter: ListFilter | None = None) -> list[InstanceGroup]:
        request = compute_v1.ListInstanceGroupsRequest(project=self._project, zone=zone)
        if list_filter is not None:
            request.filter = list_filter.render()

        def fetch() -> list[Any]:
            return list(self._client.list(request=request))

        messages = await run_blocking(fetch)
        return [to_model(InstanceGroup, compute_v1.InstanceGroup, m) for m in messages]

    async def list_instances(
        self, key: ResourceKey, instance_state: str = "ALL"
    ) -> list[InstanceWithNamedPorts]:
        body = compute_v1.InstanceGroupsListInstancesRequest(instance_state=instance_state)

        def fetch() -> list[Any]:
            return list(
                self._client.list_instances(
                    **self._addressed(key),
                    instance_groups_list_instances_request_resource=body,
                )
            )

        messages = await run_blocking(fetch)
        return [
            to_model(InstanceWithNamedPorts, compute_v1.InstanceWithNamedPorts, m)
            for m in messages
        ]

    async def add_instances(self, key: ResourceKey, instances: list[str]) -> None:
        body = compute_v1.InstanceGroupsAddInstancesRequest(
            instances=[compute_v1.InstanceReference(instance=link) for link in instances]
        )
        operation = await run_blocking(
            self._client.add_instances,
            **self._addressed(key),
            instance_groups_add_instances_request_resource=body,
        )
        await self._waiter.wait(operation, description=f"add instances to {key}")

    async def remove_instances(self, key: ResourceKey, instances: list[str]) -> None:
        body = compute_v1.InstanceGroupsRemoveInstancesRequest(
            instances=[compute_v1.InstanceReference(instance=link) for link in instances]
        )
        operation = await run_blocking(
            self._client.remove_instances,
            **self._addressed(key),
            instance_groups_remove_instances_request_resource=body,
        )
        await self._waiter.wait(operation, description=f"remove instances from {key}")


class ComputeZoneLister:
    """Zone listing for failure-domain discovery."""

    def __init__(self, client: Any, *, project: str) -> None:
        self._client = client
        self._project = project

    async def list(self, list_filter: ListFilter | None = None) -> list[Zone]:
        request = compute_v1.ListZonesRequest(project=self._project)
        if list_filter is not None:
            request.filter = list_filter.render()

        def fetch() -> list[Any]:
            return list(self._client.list(request=request))

        messages = await run_blocking(fetch)
        return [to_model(Zone, compute_v1.Zone, m) for m in messages]


def new_cloud(project: str, config: Config) -> Cloud:
    """Build the capability sets for a project using Application Default Credentials."""
    limiter = OperationRateLimiter(
        qps=config.operation_poll_qps,
        burst=config.operation_poll_burst,
        minimum_interval=config.operation_poll_interval_seconds,
    )
    waiter = OperationWaiter(limiter, config.operation_timeout_seconds)

    def resource(client: Any, model: type[M], message_type: Any, field: str) -> Any:
        return ComputeResourceClient(
            client,
            project=project,
            model=model,
            message_type=message_type,
            field=field,
            waiter=waiter,
        )

    logger.info("Creating compute clients", extra={"project": project})
    return Cloud(
        project=project,
        networks=resource(compute_v1.NetworksClient(), Network, compute_v1.Network, "network"),
        routers=resource(compute_v1.RoutersClient(), Router, compute_v1.Router, "router"),
        subnetworks=resource(
            compute_v1.SubnetworksClient(), Subnetwork, compute_v1.Subnetwork, "subnetwork"
        ),
        firewalls=resource(compute_v1.FirewallsClient(), Firewall, compute_v1.Firewall, "firewall"),
        global_addresses=resource(
            compute_v1.GlobalAddressesClient(), Address, compute_v1.Address, "address"
        ),
        health_checks=resource(
            compute_v1.HealthChecksClient(), HealthCheck, compute_v1.HealthCheck, "health_check"
        ),
        backend_services=resource(
            compute_v1.BackendServicesClient(),
            BackendService,
            compute_v1.BackendService,
            "backend_service",
        ),
        instance_groups=ComputeInstanceGroupClient(
            compute_v1.InstanceGroupsClient(),
            project=project,
            model=InstanceGroup,
            message_type=compute_v1.InstanceGroup,
            field="instance_group",
            waiter=waiter,
        ),
        target_tcp_proxies=resource(
            compute_v1.TargetTcpProxiesClient(),
            TargetTcpProxy,
            compute_v1.TargetTcpProxy,
            "target_tcp_proxy",
        ),
        global_forwarding_rules=resource(
            compute_v1.GlobalForwardingRulesClient(),
            ForwardingRule,
            compute_v1.ForwardingRule,
            "forwarding_rule",
        ),
        instances=resource(compute_v1.InstancesClient(), Instance, compute_v1.Instance, "instance"),
        regions=resource(compute_v1.RegionsClient(), Region, compute_v1.Region, "region"),
        zones=ComputeZoneLister(compute_v1.ZonesClient(), project=project),
    )
