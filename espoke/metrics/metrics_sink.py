"""
Prometheus metric families produced by the probes.

Every family lives on a private `CollectorRegistry` owned by one
`MetricsSink`, so the process (and each test) gets an isolated set of series
that can be retracted by label when nodes or clusters go away.
"""

import threading
from typing import Iterable
from wsgiref.simple_server import WSGIServer

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Summary,
    start_http_server,
)
from prometheus_client.metrics import MetricWrapperBase


LATENCY_BUCKETS_MS = (
    1,
    2.5,
    5,
    7.5,
    10,
    15,
    20,
    35,
    50,
    75,
    100,
    250,
    500,
    1000,
    5000,
    10000,
)

CLUSTER_OPERATIONS = (
    "count",
    "index",
    "get",
    "search",
    "delete",
    "restore",
)


class MetricsSink:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()

        self.registry = registry
        self._server: WSGIServer | None = None
        self._server_thread: threading.Thread | None = None

        # Node level
        self.es_node_availability = Gauge(
            "es_node_availability",
            "Reflects elasticsearch node availability : 1 is OK, 0 means node unavailable",
            ["cluster", "node_name"],
            registry=registry,
        )
        self.kibana_node_availability = Gauge(
            "kibana_node_availability",
            "Reflects kibana node availability : 1 is OK, 0 means node unavailable",
            ["cluster", "node_name"],
            registry=registry,
        )
        self.es_node_cat_latency = Summary(
            "es_node_cat_latency",
            "Measure latency to query cat api for every node (ms)",
            ["cluster", "node_name"],
            registry=registry,
        )

        # Cluster level
        self.es_index_probe_status = Gauge(
            "es_index_probe_status",
            "Indicate index probe status (green is 0, yellow is 1 and red is 2)",
            ["cluster", "index"],
            registry=registry,
        )
        self.es_cluster_durability_documents_count = Gauge(
            "es_cluster_durability_documents_count",
            "Reports number of documents count in durability index",
            ["cluster"],
            registry=registry,
        )
        self.es_cluster_durability_search_documents_hits = Gauge(
            "es_cluster_durability_search_documents_hits",
            "Reports number of documents hits from the search on durability index",
            ["cluster", "index"],
            registry=registry,
        )
        self.es_cluster_restore_documents_count = Gauge(
            "es_cluster_restore_documents_count",
            "Reports number of documents count in restore index",
            ["cluster"],
            registry=registry,
        )
        self.es_cluster_restore_count = Gauge(
            "es_cluster_restore_count",
            "Reports number of restore launched",
            ["cluster"],
            registry=registry,
        )
        self.es_cluster_latency_ms = Summary(
            "es_cluster_latency_ms",
            "Measure latency to do operation",
            ["cluster", "index", "operation"],
            registry=registry,
        )
        self.es_cluster_latency_histogram_ms = Histogram(
            "es_cluster_latency_histogram_ms",
            "Measure latency to do operation",
            ["cluster", "index", "operation"],
            buckets=LATENCY_BUCKETS_MS,
            registry=registry,
        )
        self.es_cluster_errors_count = Counter(
            "es_cluster_errors_count",
            "Reports Espoke errors doing action with a cluster",
            ["cluster"],
            registry=registry,
        )
        self.es_cluster_restore_errors_count = Counter(
            "es_cluster_restore_errors_count",
            "Reports errors doing restore with a cluster",
            ["cluster"],
            registry=registry,
        )

        # Process level
        self.es_probe_errors_count = Counter(
            "es_probe_errors_count",
            "Reports Espoke internal errors absolute counter since start",
            registry=registry,
        )
        self.es_cluster_discovered_nodes = Gauge(
            "es_cluster_discovered_nodes",
            "Number of nodes returned by the last successful discovery of a service",
            ["service"],
            registry=registry,
        )
        self.es_discovery_latency_ms = Summary(
            "es_discovery_latency_ms",
            "Measure latency to discover the nodes of a service",
            ["service"],
            registry=registry,
        )

    def set_node_availability(
        self,
        cluster: str,
        node_name: str,
        available: bool,
        dashboard: bool = False,
    ):
        gauge = self.kibana_node_availability if dashboard else self.es_node_availability
        gauge.labels(cluster, node_name).set(1 if available else 0)

    def observe_node_latency(self, cluster: str, node_name: str, latency_ms: float):
        self.es_node_cat_latency.labels(cluster, node_name).observe(latency_ms)

    def observe_latency(
        self,
        cluster: str,
        index: str,
        operation: str,
        latency_ms: float,
    ):
        self.es_cluster_latency_ms.labels(cluster, index, operation).observe(latency_ms)
        self.es_cluster_latency_histogram_ms.labels(cluster, index, operation).observe(
            latency_ms
        )

    def increment_cluster_errors(self, cluster: str):
        self.es_cluster_errors_count.labels(cluster).inc()

    def increment_restore_errors(self, cluster: str):
        self.es_cluster_restore_errors_count.labels(cluster).inc()

    def increment_probe_errors(self):
        self.es_probe_errors_count.inc()

    def clean_node_metrics(self, cluster: str, node_name: str):
        self._remove(self.es_node_availability, cluster, node_name)
        self._remove(self.es_node_cat_latency, cluster, node_name)
        self._remove(self.kibana_node_availability, cluster, node_name)

    def clean_discovery_metrics(self, service: str):
        self._remove(self.es_cluster_discovered_nodes, service)
        self._remove(self.es_discovery_latency_ms, service)

    def clean_cluster_metrics(self, cluster: str, indexes: Iterable[str]):
        self._remove(self.es_cluster_durability_documents_count, cluster)
        self._remove(self.es_cluster_errors_count, cluster)
        self._remove(self.es_cluster_restore_count, cluster)
        self._remove(self.es_cluster_restore_errors_count, cluster)
        self._remove(self.es_cluster_restore_documents_count, cluster)

        for index in indexes:
            self._remove(self.es_index_probe_status, cluster, index)
            self._remove(self.es_cluster_durability_search_documents_hits, cluster, index)

            for operation in CLUSTER_OPERATIONS:
                self._remove(self.es_cluster_latency_ms, cluster, index, operation)
                self._remove(
                    self.es_cluster_latency_histogram_ms,
                    cluster,
                    index,
                    operation,
                )

    def start_endpoint(self, port: int, address: str = "0.0.0.0"):
        self._server, self._server_thread = start_http_server(
            port,
            addr=address,
            registry=self.registry,
        )

    def close(self):
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

        if self._server_thread is not None:
            self._server_thread.join(timeout=5)
            self._server_thread = None

    def _remove(self, metric: MetricWrapperBase, *labels: str):
        try:
            metric.remove(*labels)

        except KeyError:
            pass
