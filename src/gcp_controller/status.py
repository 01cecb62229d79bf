"""Output structures returned by each reconciler call.

Desired state is an immutable input; everything the engine learns about
provider state (self-links, addresses, readiness) flows back through these
results and is composed by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class NetworkStatus:
    """Network reconciliation output."""

    self_link: str | None = None
    router: str | None = None


@dataclass
class LoadBalancerStatus:
    """Load balancer chain output."""

    address: str | None = None
    api_server_ip: str | None = None
    health_check: str | None = None
    backend_service: str | None = None
    # zone -> instance group self-link
    instance_groups: dict[str, str] = field(default_factory=dict)
    target_tcp_proxy: str | None = None
    forwarding_rule: str | None = None


@dataclass(frozen=True)
class APIEndpoint:
    """Control-plane endpoint."""

    host: str
    port: int


@dataclass
class ClusterStatus:
    """Cluster-level reconciliation output."""

    failure_domains: list[str] = field(default_factory=list)
    network: NetworkStatus = field(default_factory=NetworkStatus)
    load_balancer: LoadBalancerStatus = field(default_factory=LoadBalancerStatus)
    control_plane_endpoint: APIEndpoint | None = None
    ready: bool = False


@dataclass(frozen=True)
class NodeAddress:
    """Address reported for a machine."""

    type: str
    address: str


INTERNAL_IP = "InternalIP"
EXTERNAL_IP = "ExternalIP"


@dataclass
class MachineStatus:
    """Machine (instance) reconciliation output."""

    provider_id: str | None = None
    addresses: list[NodeAddress] = field(default_factory=list)
    instance_status: str | None = None
    ready: bool = False
