"""Pydantic models for Compute Engine resources and cluster definitions.

Resource models mirror the Compute Engine REST representation: field
aliases are the REST (camelCase) names, so the same models parse provider
responses, serialize insert/patch bodies, and validate YAML definitions.
Only the fields this controller reads or writes are modelled; unknown
fields are ignored.
"""

from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

# RFC1035 names, as required by Compute Engine
VALID_RESOURCE_NAME_PATTERN = r"^[a-z]([-a-z0-9]*[a-z0-9])?$"
MAX_RESOURCE_NAME_LENGTH = 63

INSTANCE_STATUS_RUNNING = "RUNNING"


def _validate_cidr(value: str) -> str:
    if "/" not in value:
        raise ValueError(f"must be in CIDR notation (e.g., 10.0.0.0/24): {value}")
    return value


# =============================================================================
# Base Models
# =============================================================================


class GCEModel(BaseModel):
    """Base for nested Compute Engine structures."""

    model_config = {"extra": "ignore", "populate_by_name": True}


class GCEResource(GCEModel):
    """Fields shared by every top-level Compute Engine resource."""

    name: str
    description: str | None = None
    self_link: str | None = Field(None, alias="selfLink")
    id: str | None = None


# =============================================================================
# Network Resources
# =============================================================================


class Network(GCEResource):
    """VPC network."""

    auto_create_subnetworks: bool | None = Field(None, alias="autoCreateSubnetworks")
    mtu: int | None = None


class RouterNat(GCEModel):
    """Cloud NAT configuration attached to a router."""

    name: str
    nat_ip_allocate_option: str | None = Field(None, alias="natIpAllocateOption")
    source_subnetwork_ip_ranges_to_nat: str | None = Field(
        None, alias="sourceSubnetworkIpRangesToNat"
    )


class Router(GCEResource):
    """Cloud router carrying the cluster's NAT."""

    network: str | None = None
    region: str | None = None
    nats: list[RouterNat] = Field(default_factory=list)


class SubnetworkSecondaryRange(GCEModel):
    """Named secondary CIDR block attached to a subnet (IP aliasing)."""

    range_name: str = Field(alias="rangeName")
    ip_cidr_range: str = Field(alias="ipCidrRange")


class Subnetwork(GCEResource):
    """Regional subnet."""

    network: str | None = None
    region: str | None = None
    ip_cidr_range: str | None = Field(None, alias="ipCidrRange")
    private_ip_google_access: bool | None = Field(None, alias="privateIpGoogleAccess")
    secondary_ip_ranges: list[SubnetworkSecondaryRange] = Field(
        default_factory=list, alias="secondaryIpRanges"
    )
    # Required by the API when patching
    fingerprint: str | None = None


class FirewallAllowed(GCEModel):
    """Protocol/port pair allowed by a firewall rule."""

    ip_protocol: str = Field(alias="IPProtocol")
    ports: list[str] = Field(default_factory=list)


class Firewall(GCEResource):
    """VPC firewall rule."""

    network: str | None = None
    direction: str | None = None
    priority: int | None = None
    allowed: list[FirewallAllowed] = Field(default_factory=list)
    source_ranges: list[str] = Field(default_factory=list, alias="sourceRanges")
    source_tags: list[str] = Field(default_factory=list, alias="sourceTags")
    target_tags: list[str] = Field(default_factory=list, alias="targetTags")


# =============================================================================
# Load Balancer Resources
# =============================================================================


class Address(GCEResource):
    """Reserved global IP address."""

    address: str | None = None
    address_type: str | None = Field(None, alias="addressType")
    ip_version: str | None = Field(None, alias="ipVersion")


class TCPHealthCheck(GCEModel):
    """TCP health check settings."""

    port: int


class HealthCheck(GCEResource):
    """Global health check."""

    type: str | None = None
    tcp_health_check: TCPHealthCheck | None = Field(None, alias="tcpHealthCheck")
    check_interval_sec: int | None = Field(None, alias="checkIntervalSec")
    timeout_sec: int | None = Field(None, alias="timeoutSec")
    healthy_threshold: int | None = Field(None, alias="healthyThreshold")
    unhealthy_threshold: int | None = Field(None, alias="unhealthyThreshold")


class Backend(GCEModel):
    """Backend entry of a backend service."""

    group: str
    balancing_mode: str | None = Field(None, alias="balancingMode")


class BackendService(GCEResource):
    """Global backend service."""

    load_balancing_scheme: str | None = Field(None, alias="loadBalancingScheme")
    protocol: str | None = None
    port_name: str | None = Field(None, alias="portName")
    timeout_sec: int | None = Field(None, alias="timeoutSec")
    health_checks: list[str] = Field(default_factory=list, alias="healthChecks")
    backends: list[Backend] = Field(default_factory=list)
    fingerprint: str | None = None


class NamedPort(GCEModel):
    """Named service port exposed by an instance group."""

    name: str
    port: int


class InstanceGroup(GCEResource):
    """Unmanaged zonal instance group."""

    zone: str | None = None
    network: str | None = None
    named_ports: list[NamedPort] = Field(default_factory=list, alias="namedPorts")


class InstanceWithNamedPorts(GCEModel):
    """Member entry returned when listing an instance group."""

    instance: str
    status: str | None = None


class TargetTcpProxy(GCEResource):
    """Global target TCP proxy."""

    service: str | None = None
    proxy_header: str | None = Field(None, alias="proxyHeader")


class ForwardingRule(GCEResource):
    """Global forwarding rule."""

    ip_address: str | None = Field(None, alias="IPAddress")
    ip_protocol: str | None = Field(None, alias="IPProtocol")
    load_balancing_scheme: str | None = Field(None, alias="loadBalancingScheme")
    port_range: str | None = Field(None, alias="portRange")
    target: str | None = None


# =============================================================================
# Compute Resources
# =============================================================================


class AccessConfig(GCEModel):
    """External NAT attached to a network interface."""

    name: str | None = None
    type: str | None = None
    nat_ip: str | None = Field(None, alias="natIP")


class NetworkInterface(GCEModel):
    """Instance network interface."""

    network: str | None = None
    subnetwork: str | None = None
    network_ip: str | None = Field(None, alias="networkIP")
    access_configs: list[AccessConfig] = Field(default_factory=list, alias="accessConfigs")


class MetadataItem(GCEModel):
    """Instance metadata key/value pair."""

    key: str
    value: str | None = None


class Metadata(GCEModel):
    """Instance metadata."""

    items: list[MetadataItem] = Field(default_factory=list)
    fingerprint: str | None = None


class AttachedDiskInitializeParams(GCEModel):
    """Boot disk creation parameters."""

    disk_size_gb: str | None = Field(None, alias="diskSizeGb")
    disk_type: str | None = Field(None, alias="diskType")
    source_image: str | None = Field(None, alias="sourceImage")


class AttachedDisk(GCEModel):
    """Disk attached to an instance."""

    auto_delete: bool | None = Field(None, alias="autoDelete")
    boot: bool | None = None
    initialize_params: AttachedDiskInitializeParams | None = Field(
        None, alias="initializeParams"
    )


class Tags(GCEModel):
    """Network tags of an instance."""

    items: list[str] = Field(default_factory=list)


class ServiceAccount(GCEModel):
    """Service account attached to an instance."""

    email: str
    scopes: list[str] = Field(default_factory=list)


class Instance(GCEResource):
    """Compute Engine VM instance."""

    zone: str | None = None
    machine_type: str | None = Field(None, alias="machineType")
    status: str | None = None
    tags: Tags | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    disks: list[AttachedDisk] = Field(default_factory=list)
    network_interfaces: list[NetworkInterface] = Field(
        default_factory=list, alias="networkInterfaces"
    )
    metadata: Metadata = Field(default_factory=Metadata)
    service_accounts: list[ServiceAccount] = Field(default_factory=list, alias="serviceAccounts")
    can_ip_forward: bool | None = Field(None, alias="canIpForward")


class Region(GCEResource):
    """Compute Engine region."""

    status: str | None = None


class Zone(GCEResource):
    """Compute Engine zone."""

    region: str | None = None
    status: str | None = None


# =============================================================================
# Cluster Definitions
# =============================================================================


class SubnetDefinition(BaseModel):
    """Declared subnet of the cluster network."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=MAX_RESOURCE_NAME_LENGTH)]
    cidr_block: str = Field(alias="cidrBlock")
    description: str | None = None
    region: str | None = None
    private_google_access: bool = Field(True, alias="privateGoogleAccess")
    # rangeName -> CIDR
    secondary_cidr_blocks: dict[str, str] = Field(
        default_factory=dict, alias="secondaryCidrBlocks"
    )

    @field_validator("cidr_block")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        return _validate_cidr(v)

    @field_validator("secondary_cidr_blocks")
    @classmethod
    def validate_secondary_cidrs(cls, v: dict[str, str]) -> dict[str, str]:
        for cidr in v.values():
            _validate_cidr(cidr)
        return v


class NetworkDefinition(BaseModel):
    """Declared cluster network.

    When ``name`` is omitted the project's ``default`` network is used; it is
    never owned by this controller, so no NAT router is attached to it.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    auto_create_subnetworks: bool | None = Field(None, alias="autoCreateSubnetworks")
    router_name: str | None = Field(None, alias="routerName")
    subnets: list[SubnetDefinition] = Field(default_factory=list)


class ClusterDefinition(BaseModel):
    """Desired state of one cluster's infrastructure."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=40)]
    project: Annotated[str, Field(min_length=1)]
    region: Annotated[str, Field(min_length=1)]
    failure_domains: list[str] = Field(default_factory=list, alias="failureDomains")
    network: NetworkDefinition = Field(default_factory=NetworkDefinition)
    additional_labels: dict[str, str] = Field(default_factory=dict, alias="additionalLabels")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(VALID_RESOURCE_NAME_PATTERN, v):
            raise ValueError(f"name must match {VALID_RESOURCE_NAME_PATTERN}: {v}")
        return v


class MachineDefinition(BaseModel):
    """Desired state of one cluster machine (VM instance)."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=MAX_RESOURCE_NAME_LENGTH)]
    zone: Annotated[str, Field(min_length=1)]
    instance_type: str = Field(alias="instanceType")
    image: str
    control_plane: bool = Field(False, alias="controlPlane")
    public_ip: bool = Field(False, alias="publicIP")
    root_device_size: Annotated[int, Field(ge=10, le=65536, alias="rootDeviceSize")] = 30
    subnet: str | None = None
    additional_network_tags: list[str] = Field(
        default_factory=list, alias="additionalNetworkTags"
    )
    additional_labels: dict[str, str] = Field(default_factory=dict, alias="additionalLabels")
    service_account: ServiceAccount | None = Field(None, alias="serviceAccount")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(VALID_RESOURCE_NAME_PATTERN, v):
            raise ValueError(f"name must match {VALID_RESOURCE_NAME_PATTERN}: {v}")
        return v
