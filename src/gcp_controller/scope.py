"""Derivation of per-resource desired specs from cluster definitions.

A scope is a read-only view over one ``ClusterDefinition`` (and, for
machines, one ``MachineDefinition``). Every ``*_spec()`` call returns a
fresh model so reconcilers can stamp cross references on their copy
without affecting later calls.
"""

from __future__ import annotations

from .keys import ResourceKey
from .models import (
    AccessConfig,
    Address,
    AttachedDisk,
    AttachedDiskInitializeParams,
    BackendService,
    ClusterDefinition,
    Firewall,
    FirewallAllowed,
    ForwardingRule,
    HealthCheck,
    Instance,
    InstanceGroup,
    MachineDefinition,
    Metadata,
    NamedPort,
    Network,
    NetworkInterface,
    Router,
    RouterNat,
    ServiceAccount,
    Subnetwork,
    SubnetworkSecondaryRange,
    Tags,
    TargetTcpProxy,
    TCPHealthCheck,
)
from .ownership import cluster_tag

COMPUTE_API_URL = "https://www.googleapis.com/compute/v1"

DEFAULT_NETWORK_NAME = "default"

APISERVER_PORT = 6443
APISERVER_PORT_NAME = "apiserver"
LOADBALANCER_PORT = 443

# Source ranges of Google Cloud health checkers
HEALTH_CHECK_SOURCE_RANGES = ("35.191.0.0/16", "130.211.0.0/22")

CLUSTER_PROTOCOLS = ("tcp", "udp", "icmp", "esp", "ah", "sctp")

DEFAULT_SERVICE_ACCOUNT_SCOPES = ("https://www.googleapis.com/auth/cloud-platform",)


class ClusterScope:
    """Cluster identity and the desired specs of cluster-level resources."""

    def __init__(self, definition: ClusterDefinition) -> None:
        self._definition = definition

    @property
    def definition(self) -> ClusterDefinition:
        return self._definition

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def project(self) -> str:
        return self._definition.project

    @property
    def region(self) -> str:
        return self._definition.region

    @property
    def failure_domains(self) -> list[str]:
        return list(self._definition.failure_domains)

    @property
    def tag(self) -> str:
        return cluster_tag(self.name)

    @property
    def node_tag(self) -> str:
        return f"{self.name}-node"

    @property
    def control_plane_tag(self) -> str:
        return f"{self.name}-control-plane"

    @property
    def network_name(self) -> str:
        return self._definition.network.name or DEFAULT_NETWORK_NAME

    def network_url(self) -> str:
        return f"{COMPUTE_API_URL}/projects/{self.project}/global/networks/{self.network_name}"

    def _apiserver_name(self) -> str:
        return f"{self.name}-{APISERVER_PORT_NAME}"

    def control_plane_group_name(self, zone: str) -> str:
        return f"{self.name}-{APISERVER_PORT_NAME}-{zone}"

    def control_plane_group_key(self, zone: str) -> ResourceKey:
        return ResourceKey.zonal(self.control_plane_group_name(zone), zone)

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------

    def network_spec(self) -> Network:
        """Desired network; the project's default network never carries the tag."""
        auto_create = self._definition.network.auto_create_subnetworks
        return Network(
            name=self.network_name,
            description=None if self.network_name == DEFAULT_NETWORK_NAME else self.tag,
            auto_create_subnetworks=True if auto_create is None else auto_create,
        )

    def nat_router_spec(self) -> Router:
        network = self.network_name
        return Router(
            name=self._definition.network.router_name or f"{network}-router",
            region=self.region,
            nats=[
                RouterNat(
                    name=f"{network}-nat",
                    nat_ip_allocate_option="AUTO_ONLY",
                    source_subnetwork_ip_ranges_to_nat="ALL_SUBNETWORKS_ALL_IP_RANGES",
                )
            ],
        )

    def subnetwork_specs(self) -> list[Subnetwork]:
        specs: list[Subnetwork] = []
        for subnet in self._definition.network.subnets:
            specs.append(
                Subnetwork(
                    name=subnet.name,
                    description=subnet.description,
                    region=subnet.region or self.region,
                    ip_cidr_range=subnet.cidr_block,
                    private_ip_google_access=subnet.private_google_access,
                    secondary_ip_ranges=[
                        SubnetworkSecondaryRange(range_name=name, ip_cidr_range=cidr)
                        for name, cidr in subnet.secondary_cidr_blocks.items()
                    ],
                )
            )
        return specs

    def firewall_rules_spec(self) -> list[Firewall]:
        return [
            Firewall(
                name=f"allow-{self.name}-healthchecks",
                description=self.tag,
                network=self.network_url(),
                direction="INGRESS",
                priority=1000,
                allowed=[FirewallAllowed(ip_protocol="tcp", ports=[str(APISERVER_PORT)])],
                source_ranges=list(HEALTH_CHECK_SOURCE_RANGES),
                target_tags=[self.control_plane_tag],
            ),
            Firewall(
                name=f"allow-{self.name}-cluster",
                description=self.tag,
                network=self.network_url(),
                direction="INGRESS",
                priority=1000,
                allowed=[FirewallAllowed(ip_protocol=proto) for proto in CLUSTER_PROTOCOLS],
                source_tags=[self.node_tag],
                target_tags=[self.node_tag],
            ),
        ]

    # -------------------------------------------------------------------------
    # Load balancer
    # -------------------------------------------------------------------------

    def address_spec(self) -> Address:
        return Address(
            name=self._apiserver_name(),
            description=self.tag,
            address_type="EXTERNAL",
            ip_version="IPV4",
        )

    def health_check_spec(self) -> HealthCheck:
        return HealthCheck(
            name=self._apiserver_name(),
            description=self.tag,
            type="TCP",
            tcp_health_check=TCPHealthCheck(port=APISERVER_PORT),
            check_interval_sec=10,
            timeout_sec=5,
            healthy_threshold=5,
            unhealthy_threshold=3,
        )

    def backend_service_spec(self) -> BackendService:
        return BackendService(
            name=self._apiserver_name(),
            description=self.tag,
            load_balancing_scheme="EXTERNAL",
            protocol="TCP",
            port_name=APISERVER_PORT_NAME,
            timeout_sec=600,
        )

    def instance_group_spec(self, zone: str) -> InstanceGroup:
        return InstanceGroup(
            name=self.control_plane_group_name(zone),
            description=self.tag,
            zone=zone,
            named_ports=[NamedPort(name=APISERVER_PORT_NAME, port=APISERVER_PORT)],
        )

    def target_tcp_proxy_spec(self) -> TargetTcpProxy:
        return TargetTcpProxy(
            name=self._apiserver_name(),
            description=self.tag,
            proxy_header="NONE",
        )

    def forwarding_rule_spec(self) -> ForwardingRule:
        return ForwardingRule(
            name=self._apiserver_name(),
            description=self.tag,
            ip_protocol="TCP",
            load_balancing_scheme="EXTERNAL",
            port_range=f"{LOADBALANCER_PORT}-{LOADBALANCER_PORT}",
        )


class MachineScope:
    """One machine of a cluster and its desired instance spec."""

    def __init__(self, cluster: ClusterScope, definition: MachineDefinition) -> None:
        self._cluster = cluster
        self._definition = definition

    @property
    def cluster(self) -> ClusterScope:
        return self._cluster

    @property
    def definition(self) -> MachineDefinition:
        return self._definition

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def zone(self) -> str:
        return self._definition.zone

    @property
    def is_control_plane(self) -> bool:
        return self._definition.control_plane

    @property
    def instance_key(self) -> ResourceKey:
        return ResourceKey.zonal(self.name, self.zone)

    @property
    def provider_id(self) -> str:
        return f"gce://{self._cluster.project}/{self.zone}/{self.name}"

    def control_plane_group_key(self) -> ResourceKey:
        return self._cluster.control_plane_group_key(self.zone)

    def _network_interface(self) -> NetworkInterface:
        iface = NetworkInterface(network=self._cluster.network_url())
        if self._definition.subnet:
            iface.subnetwork = f"regions/{self._cluster.region}/subnetworks/{self._definition.subnet}"
        if self._definition.public_ip:
            iface.access_configs = [AccessConfig(name="External NAT", type="ONE_TO_ONE_NAT")]
        return iface

    def instance_spec(self) -> Instance:
        machine = self._definition
        tags = [self._cluster.node_tag]
        if machine.control_plane:
            tags.append(self._cluster.control_plane_tag)
        tags.extend(machine.additional_network_tags)

        labels = dict(self._cluster.definition.additional_labels)
        labels.update(machine.additional_labels)

        service_account = machine.service_account or ServiceAccount(
            email="default", scopes=list(DEFAULT_SERVICE_ACCOUNT_SCOPES)
        )

        return Instance(
            name=machine.name,
            description=self._cluster.tag,
            zone=self.zone,
            machine_type=f"zones/{self.zone}/machineTypes/{machine.instance_type}",
            can_ip_forward=True,
            tags=Tags(items=tags),
            labels=labels,
            disks=[
                AttachedDisk(
                    auto_delete=True,
                    boot=True,
                    initialize_params=AttachedDiskInitializeParams(
                        disk_size_gb=str(machine.root_device_size),
                        disk_type=f"zones/{self.zone}/diskTypes/pd-standard",
                        source_image=machine.image,
                    ),
                )
            ],
            network_interfaces=[self._network_interface()],
            metadata=Metadata(items=[]),
            service_accounts=[service_account],
        )
