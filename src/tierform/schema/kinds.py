"""Built-in resource kinds for a 3-tier cloud deployment.

Each kind is a pair of pydantic models: the inputs a declaration may set and the
outputs the provider returns. Inputs marked with :func:`replaces` cannot be
changed in place.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type
from pydantic import BaseModel, ConfigDict, Field


def replaces(default: Any = ..., **kwargs) -> Any:
    """Field whose change forces destroy-then-create."""
    return Field(default, json_schema_extra={"forces_replacement": True}, **kwargs)


def secret(default: Any = ..., **kwargs) -> Any:
    """Field whose value is redacted in plan output."""
    return Field(default, json_schema_extra={"sensitive": True}, **kwargs)


class KindInputs(BaseModel):
    """Base for input models: unknown attributes are rejected."""
    model_config = ConfigDict(extra="forbid")


class KindOutputs(BaseModel):
    """Base for output models."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Provider-assigned identifier")


@dataclass(frozen=True)
class ResourceKind:
    """A registered resource type."""
    type_name: str
    inputs_model: Type[KindInputs]
    outputs_model: Type[KindOutputs]
    description: str = ""


# Networking

class NetworkInputs(KindInputs):
    name: str = replaces(description="Network name")
    auto_create_subnetworks: bool = replaces(False)
    routing_mode: str = Field("REGIONAL", pattern="^(REGIONAL|GLOBAL)$")
    description: str = ""


class NetworkOutputs(KindOutputs):
    name: str
    self_link: str


class SubnetworkInputs(KindInputs):
    name: str = replaces()
    network: str = replaces(description="Self link of the parent network")
    region: str = replaces()
    ip_cidr_range: str = replaces()
    private_ip_google_access: bool = True


class SubnetworkOutputs(KindOutputs):
    name: str
    self_link: str
    gateway_address: str


class GlobalAddressInputs(KindInputs):
    name: str = replaces()
    network: str = replaces()
    purpose: str = replaces("VPC_PEERING")
    address_type: str = replaces("INTERNAL")
    prefix_length: int = replaces(16, ge=8, le=29)


class GlobalAddressOutputs(KindOutputs):
    name: str
    address: str


class ServiceNetworkingConnectionInputs(KindInputs):
    network: str = replaces()
    service: str = replaces("servicenetworking.googleapis.com")
    reserved_peering_ranges: List[str] = Field(..., min_length=1)


class ServiceNetworkingConnectionOutputs(KindOutputs):
    peering: str


class VpcAccessConnectorInputs(KindInputs):
    name: str = replaces()
    region: str = replaces()
    network: str = replaces()
    ip_cidr_range: str = replaces()
    min_instances: int = Field(2, ge=2)
    max_instances: int = Field(3, ge=3)


class VpcAccessConnectorOutputs(KindOutputs):
    name: str
    self_link: str


# Data tier

class SqlInstanceInputs(KindInputs):
    name: str = replaces()
    database_version: str = replaces("MYSQL_8_0")
    region: str = replaces()
    private_network: str = replaces(description="Network the private IP is allocated in")
    tier: str = "db-f1-micro"
    availability_type: str = Field("ZONAL", pattern="^(ZONAL|REGIONAL)$")
    backup_enabled: bool = True
    deletion_protection: bool = False


class SqlInstanceOutputs(KindOutputs):
    name: str
    connection_name: str
    private_ip_address: str
    self_link: str


class SqlDatabaseInputs(KindInputs):
    name: str = replaces()
    instance: str = replaces()
    charset: str = replaces("utf8mb4")


class SqlDatabaseOutputs(KindOutputs):
    name: str


class SqlUserInputs(KindInputs):
    name: str = replaces()
    instance: str = replaces()
    password: str = secret()


class SqlUserOutputs(KindOutputs):
    name: str


class CacheInstanceInputs(KindInputs):
    name: str = replaces()
    region: str = replaces()
    authorized_network: str = replaces()
    tier: str = replaces("BASIC", pattern="^(BASIC|STANDARD_HA)$")
    memory_size_gb: int = Field(1, ge=1)
    redis_version: str = replaces("REDIS_7_0")
    connect_mode: str = replaces("PRIVATE_SERVICE_ACCESS")
    eviction_policy: str = "allkeys-lru"


class CacheInstanceOutputs(KindOutputs):
    name: str
    host: str
    port: int


# Compute

class ServiceAccountInputs(KindInputs):
    account_id: str = replaces()
    display_name: str = ""


class ServiceAccountOutputs(KindOutputs):
    email: str
    name: str


class ContainerServiceInputs(KindInputs):
    name: str = replaces()
    region: str = replaces()
    image: str
    service_account: str = Field(..., description="Identity the service runs as")
    port: int = Field(8080, ge=1, le=65535)
    env: Dict[str, str] = Field(default_factory=dict)
    ingress: str = Field("all", pattern="^(all|internal|internal-and-cloud-load-balancing)$")
    min_instances: int = Field(0, ge=0)
    max_instances: int = Field(10, ge=1)
    vpc_connector: Optional[str] = None


class ContainerServiceOutputs(KindOutputs):
    name: str
    uri: str


class IamInvokerBindingInputs(KindInputs):
    service: str = replaces(description="Name of the service being invoked (callee)")
    region: str = replaces()
    member: str = replaces(description="Identity allowed to invoke the callee (caller)")
    role: str = replaces("roles/run.invoker")


class IamInvokerBindingOutputs(KindOutputs):
    etag: str


class LoadBalancerInputs(KindInputs):
    name: str = replaces()
    region: str = replaces()
    backend_service: str = Field(..., description="Name of the service traffic is routed to")
    domains: List[str] = Field(default_factory=list)
    enable_cdn: bool = False


class LoadBalancerOutputs(KindOutputs):
    name: str
    ip_address: str


BUILTIN_KINDS = [
    ResourceKind("network", NetworkInputs, NetworkOutputs, "VPC network"),
    ResourceKind("subnetwork", SubnetworkInputs, SubnetworkOutputs, "Regional subnetwork"),
    ResourceKind("global_address", GlobalAddressInputs, GlobalAddressOutputs, "Reserved internal range for private services"),
    ResourceKind(
        "service_networking_connection",
        ServiceNetworkingConnectionInputs,
        ServiceNetworkingConnectionOutputs,
        "Peering between the VPC and managed services",
    ),
    ResourceKind("vpc_access_connector", VpcAccessConnectorInputs, VpcAccessConnectorOutputs, "Serverless VPC connector"),
    ResourceKind("sql_instance", SqlInstanceInputs, SqlInstanceOutputs, "Managed SQL instance"),
    ResourceKind("sql_database", SqlDatabaseInputs, SqlDatabaseOutputs, "Database inside a SQL instance"),
    ResourceKind("sql_user", SqlUserInputs, SqlUserOutputs, "SQL login"),
    ResourceKind("cache_instance", CacheInstanceInputs, CacheInstanceOutputs, "Managed in-memory cache"),
    ResourceKind("service_account", ServiceAccountInputs, ServiceAccountOutputs, "Workload identity"),
    ResourceKind("container_service", ContainerServiceInputs, ContainerServiceOutputs, "Serverless container service"),
    ResourceKind("iam_invoker_binding", IamInvokerBindingInputs, IamInvokerBindingOutputs, "Grants a caller permission to invoke a service"),
    ResourceKind("load_balancer", LoadBalancerInputs, LoadBalancerOutputs, "External HTTP(S) load balancer"),
]
