import ipaddress
from dataclasses import dataclass
from typing import NamedTuple

import msgspec


class NodeIdentity(NamedTuple):
    name: str
    cluster: str


@dataclass(frozen=True, slots=True)
class MonitoredNode:
    name: str
    address: str
    port: int
    cluster: str
    scheme: str = "http"

    @property
    def identity(self) -> NodeIdentity:
        return NodeIdentity(self.name, self.cluster)

    @property
    def host(self) -> str:
        try:
            address = ipaddress.ip_address(self.address)

        except ValueError:
            return self.address

        if address.version == 6:
            return f"[{self.address}]"

        return self.address

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class MonitoredCluster:
    name: str
    service_name: str
    scheme: str = "http"
    version: str = ""
    endpoint: str | None = None


class CatalogEntry(msgspec.Struct, rename="pascal"):
    """One instance of a service as listed by the Consul catalog."""

    node: str
    address: str = ""
    service_address: str = ""
    service_port: int = 0
    service_tags: list[str] | None = None


class HealthNode(msgspec.Struct, rename="pascal"):
    datacenter: str = ""


class HealthService(msgspec.Struct, rename="pascal"):
    port: int = 0


class HealthEntry(msgspec.Struct, rename="pascal"):
    """One instance of a service as returned by the Consul health endpoint."""

    node: HealthNode
    service: HealthService
