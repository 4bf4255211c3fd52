import time
from typing import Dict, List

from espoke.errors import RegistryError
from espoke.logging import Logger
from espoke.logging.espoke_logging_models import DiscoveryDebug, DiscoveryError
from espoke.metrics import MetricsSink

from .models import MonitoredCluster, MonitoredNode
from .registry import ServiceRegistry
from .tags import cluster_name_from_tags, scheme_from_tags, value_from_tags


async def discover_nodes(
    registry: ServiceRegistry,
    service_name: str,
    metrics: MetricsSink,
    logger: Logger | None = None,
) -> List[MonitoredNode]:
    """
    List the current nodes of a service from the registry catalog.

    The result is never partial: any registry failure is counted on the
    global error counter and re-raised.
    """
    start = time.monotonic()

    try:
        entries = await registry.resolve_service(service_name)

    except RegistryError as err:
        metrics.increment_probe_errors()

        if logger:
            await logger.log(
                DiscoveryError(
                    message=f"Consul discovery failed: {err}",
                    service=service_name,
                )
            )

        raise

    latency_ms = (time.monotonic() - start) * 1000

    nodes: List[MonitoredNode] = []
    for entry in entries:
        tags = entry.service_tags or []
        address = entry.service_address or entry.address

        nodes.append(
            MonitoredNode(
                name=entry.node,
                address=address,
                port=entry.service_port,
                cluster=cluster_name_from_tags(tags),
                scheme=scheme_from_tags(tags),
            )
        )

    metrics.es_discovery_latency_ms.labels(service_name).observe(latency_ms)
    metrics.es_cluster_discovered_nodes.labels(service_name).set(len(nodes))

    if logger:
        await logger.log(
            DiscoveryDebug(
                message=f"{len(nodes)} nodes found in {latency_ms:.2f}ms",
                service=service_name,
            )
        )

    return nodes


async def discover_clusters(
    registry: ServiceRegistry,
    tag: str,
) -> Dict[str, MonitoredCluster]:
    """
    Map cluster name to cluster for every registry service carrying `tag`.

    When several services advertise the same cluster name, the first one in
    registry listing order is kept.
    """
    services = await registry.list_all_services()

    clusters: Dict[str, MonitoredCluster] = {}
    for service_name, tags in services.items():
        if tag not in tags:
            continue

        cluster_name = cluster_name_from_tags(tags)
        if cluster_name in clusters:
            continue

        clusters[cluster_name] = MonitoredCluster(
            name=cluster_name,
            service_name=service_name,
            scheme=scheme_from_tags(tags),
            version=value_from_tags("version", tags),
        )

    return clusters


async def resolve_cluster_endpoint(
    registry: ServiceRegistry,
    service_name: str,
    endpoint_suffix: str,
    port_override: int = 0,
) -> str:
    port, datacenter = await registry.resolve_healthy_instance(service_name)

    if port_override:
        port = port_override

    suffix = endpoint_suffix.replace("{dc}", datacenter)
    return f"{service_name}{suffix}:{port}"
