"""
In-memory collaborators for unit tests.

FakeRegistry stands in for Consul behind the ServiceRegistry protocol.
FakeSearchCluster is an httpx.MockTransport handler answering the subset of
the Elasticsearch/OpenSearch and Kibana HTTP APIs the probes call.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple

import httpx
import orjson

from espoke.config import ProbingConfig
from espoke.discovery.models import CatalogEntry, MonitoredCluster
from espoke.errors import RegistryError


# =============================================================================
# Registry
# =============================================================================


class FakeRegistry:
    """Consul stand-in holding services, their instances and health entries."""

    def __init__(self) -> None:
        self.services: Dict[str, List[str]] = {}
        self.instances: Dict[str, List[CatalogEntry]] = {}
        self.health: Dict[str, Tuple[int, str]] = {}
        self.fail_listing = False
        self.failing_services: Set[str] = set()
        self.resolve_calls: List[str] = []
        self.closed = False

    def add_cluster(
        self,
        service_name: str,
        cluster_name: str,
        tag: str,
        nodes: List[str],
        version: str = "7.10.2",
        port: int = 9200,
        datacenter: str = "dc1",
        extra_tags: List[str] | None = None,
    ):
        tags = [tag, f"cluster_name-{cluster_name}", f"version-{version}"]
        tags.extend(extra_tags or [])

        self.services[service_name] = tags
        self.set_nodes(service_name, nodes, tags, port=port)
        self.health[service_name] = (port, datacenter)

    def set_nodes(
        self,
        service_name: str,
        nodes: List[str],
        tags: List[str] | None = None,
        port: int = 9200,
    ):
        if tags is None:
            tags = self.services.get(service_name, [])

        self.instances[service_name] = [
            CatalogEntry(
                node=node,
                address=f"10.0.0.{position + 1}",
                service_address="",
                service_port=port,
                service_tags=list(tags),
            )
            for position, node in enumerate(nodes)
        ]

    def remove_service(self, service_name: str):
        self.services.pop(service_name, None)
        self.instances.pop(service_name, None)
        self.health.pop(service_name, None)

    async def resolve_service(self, service_name: str) -> List[CatalogEntry]:
        self.resolve_calls.append(service_name)

        if service_name in self.failing_services:
            raise RegistryError(f"Consul unreachable for {service_name}")

        return list(self.instances.get(service_name, []))

    async def list_all_services(self) -> Dict[str, List[str]]:
        if self.fail_listing:
            raise RegistryError("Consul unreachable")

        return {name: list(tags) for name, tags in self.services.items()}

    async def resolve_healthy_instance(self, service_name: str) -> Tuple[int, str]:
        if service_name in self.failing_services or service_name not in self.health:
            raise RegistryError(f"Consul service {service_name} is empty")

        return self.health[service_name]

    async def close(self):
        self.closed = True


# =============================================================================
# Search cluster
# =============================================================================


@dataclass
class FakeSearchCluster:
    """
    Answers cluster-level and node-level requests for any number of hosts.

    `failures` maps a route kind (e.g. "count", "get_doc", "restore") to the
    HTTP status returned instead of the normal answer. Hosts listed in
    `unreachable_hosts` fail at the transport level.
    """

    legacy_hits: bool = False
    indices: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    index_status: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, int] = field(default_factory=dict)
    unreachable_hosts: Set[str] = field(default_factory=set)
    slm_policies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    repositories: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    dashboard_status: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    requests: List[Tuple[str, str, str]] = field(default_factory=list)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def seed_documents(self, index: str, count: int):
        documents = self.indices.setdefault(index, {})
        for counter in range(1, count + 1):
            documents[str(counter)] = {
                "Name": f"document-{counter}",
                "EventTye": "durability",
                "Team": "nosql",
                "Counter": counter,
                "Data": "seeded",
            }

    def calls(self, kind: str) -> int:
        return len([request for request in self.requests if request[2] == kind])

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        method = request.method

        if host in self.unreachable_hosts:
            raise httpx.ConnectError("connection refused", request=request)

        kind, handler, args = self._route(method, path)
        self.requests.append((method, path, kind))

        if status := self.failures.get(kind):
            return httpx.Response(status, json={"error": f"{kind} failed"})

        return handler(request, *args)

    def _route(self, method: str, path: str):
        segments = [segment for segment in path.split("/") if segment]

        if path == "/_cat/health":
            return "cat_health", self._cat_health, ()

        if path == "/api/status":
            return "dashboard_status", self._dashboard, ()

        if path == "/_bulk":
            return "bulk", self._bulk, ()

        if segments[:2] == ["_cluster", "health"]:
            return "cluster_health", self._cluster_health, (segments[2],)

        if segments[:2] == ["_slm", "policy"]:
            return "slm", self._slm_policy, (segments[2],)

        if segments[0] == "_snapshot" and segments[-1] == "_all":
            return "snapshots", self._list_snapshots, (segments[1],)

        if segments[0] == "_snapshot" and segments[-1] == "_restore":
            return "restore", self._restore, (segments[1], segments[2])

        if len(segments) == 1:
            kinds = {
                "HEAD": "index_exists",
                "PUT": "create_index",
                "DELETE": "delete_index",
            }
            return kinds[method], self._index, (segments[0],)

        if len(segments) == 3 and segments[1] == "_doc":
            kinds = {
                "PUT": "index_doc",
                "GET": "get_doc",
                "DELETE": "delete_doc",
            }
            return kinds[method], self._document, (segments[0], segments[2])

        if len(segments) == 2 and segments[1] == "_count":
            return "count", self._count, (segments[0],)

        if len(segments) == 2 and segments[1] == "_search":
            return "search", self._search, (segments[0],)

        return "unknown", self._not_found, ()

    def _not_found(self, request: httpx.Request):
        return httpx.Response(404, json={"error": "not found"})

    def _cat_health(self, request: httpx.Request):
        return httpx.Response(200, text="epoch timestamp cluster status\n0 00:00:00 test green\n")

    def _dashboard(self, request: httpx.Request):
        body = self.dashboard_status.get(
            request.url.host,
            {"status": {"overall": {"state": "green", "level": "available"}}},
        )
        return httpx.Response(200, json=body)

    def _bulk(self, request: httpx.Request):
        lines = [line for line in request.content.split(b"\n") if line]
        items = []
        for action_line, document_line in zip(lines[::2], lines[1::2]):
            action = orjson.loads(action_line)["index"]
            self.indices.setdefault(action["_index"], {})[action["_id"]] = orjson.loads(
                document_line
            )
            items.append({"index": {"_id": action["_id"], "status": 201}})

        return httpx.Response(200, json={"errors": False, "items": items})

    def _cluster_health(self, request: httpx.Request, index: str):
        if index not in self.indices:
            return httpx.Response(404, json={"error": "index_not_found_exception"})

        return httpx.Response(
            200,
            json={
                "status": "green",
                "indices": {
                    index: {"status": self.index_status.get(index, "green")},
                },
            },
        )

    def _slm_policy(self, request: httpx.Request, policy: str):
        if policy not in self.slm_policies:
            return httpx.Response(404, json={"error": "resource_not_found_exception"})

        return httpx.Response(200, json={policy: self.slm_policies[policy]})

    def _list_snapshots(self, request: httpx.Request, repository: str):
        if repository not in self.repositories:
            return httpx.Response(404, json={"error": "repository_missing_exception"})

        return httpx.Response(200, json={"snapshots": self.repositories[repository]})

    def _restore(self, request: httpx.Request, repository: str, snapshot: str):
        body = orjson.loads(request.content)
        source = body["indices"]
        target = re.sub(body["rename_pattern"], body["rename_replacement"], source)

        if target in self.indices:
            return httpx.Response(500, json={"error": "index already exists"})

        self.indices[target] = dict(self.indices.get(source, {}))
        return httpx.Response(
            200,
            json={"snapshot": {"snapshot": snapshot, "indices": [target]}},
        )

    def _index(self, request: httpx.Request, index: str):
        exists = index in self.indices

        if request.method == "HEAD":
            return httpx.Response(200 if exists else 404)

        if request.method == "PUT":
            if exists:
                return httpx.Response(400, json={"error": "resource_already_exists_exception"})

            self.indices[index] = {}
            return httpx.Response(200, json={"acknowledged": True, "index": index})

        if not exists:
            return httpx.Response(404, json={"error": "index_not_found_exception"})

        del self.indices[index]
        return httpx.Response(200, json={"acknowledged": True})

    def _document(self, request: httpx.Request, index: str, document_id: str):
        documents = self.indices.setdefault(index, {})

        if request.method == "PUT":
            documents[document_id] = orjson.loads(request.content)
            return httpx.Response(201, json={"_id": document_id, "result": "created"})

        if document_id not in documents:
            return httpx.Response(404, json={"_id": document_id, "found": False})

        if request.method == "GET":
            return httpx.Response(
                200,
                json={"_id": document_id, "found": True, "_source": documents[document_id]},
            )

        del documents[document_id]
        return httpx.Response(200, json={"_id": document_id, "result": "deleted"})

    def _count(self, request: httpx.Request, index: str):
        if index not in self.indices:
            return httpx.Response(404, json={"error": "index_not_found_exception"})

        return httpx.Response(200, json={"count": len(self.indices[index])})

    def _search(self, request: httpx.Request, index: str):
        query = orjson.loads(request.content)
        bounds = query["query"]["range"]["Counter"]

        total = len([
            document
            for document in self.indices.get(index, {}).values()
            if bounds["gte"] <= document.get("Counter", 0) <= bounds["lte"]
        ])

        hits_total: Any = total if self.legacy_hits else {"value": total, "relation": "eq"}
        return httpx.Response(200, json={"hits": {"total": hits_total, "hits": []}})


# =============================================================================
# Builders
# =============================================================================


def make_config(**overrides) -> ProbingConfig:
    values = {
        "consul_period_seconds": 60.0,
        "probe_period_seconds": 30.0,
        "restore_period_seconds": 3600.0,
        "cleaning_period_seconds": 600.0,
        "elasticsearch_number_of_durability_documents": 100,
        "elasticsearch_durability_bulk_size": 30,
    }
    values.update(overrides)

    return ProbingConfig(**values)


def make_cluster(
    name: str = "prod-search",
    service_name: str = "es-prod",
    version: str = "7.10.2",
    endpoint: str | None = "es-prod.service.dc1.foo.bar:9200",
) -> MonitoredCluster:
    return MonitoredCluster(
        name=name,
        service_name=service_name,
        scheme="http",
        version=version,
        endpoint=endpoint,
    )
