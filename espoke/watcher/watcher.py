"""
Cluster lifecycle orchestration.

The watcher keeps exactly one running probe per cluster advertised in the
registry, for the search system (Elasticsearch/OpenSearch) and the
dashboard system (Kibana) independently.
"""

import asyncio
import dataclasses
import functools
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Set, Tuple

from espoke.config import ProbingConfig
from espoke.discovery import discover_clusters, resolve_cluster_endpoint
from espoke.discovery.models import MonitoredCluster
from espoke.discovery.registry import ServiceRegistry
from espoke.errors import RegistryError
from espoke.logging import Logger
from espoke.logging.espoke_logging_models import (
    WatcherDebug,
    WatcherError,
    WatcherInfo,
)
from espoke.metrics import MetricsSink
from espoke.probes import ClusterProbe, DashboardProbe, SearchClusterProbe


SEARCH_SYSTEM = "elasticsearch"
DASHBOARD_SYSTEM = "kibana"

ProbeFactory = Callable[[MonitoredCluster], ClusterProbe]


@dataclass(slots=True)
class ProbeHandle:
    system: str
    probe: ClusterProbe
    task: asyncio.Task


def diff_clusters(
    discovered: Mapping[str, MonitoredCluster],
    running: Iterable[str],
) -> Tuple[List[str], List[str]]:
    """
    Compare discovered cluster names against running ones.

    Returns:
        (to_add, to_remove), each sorted by cluster name.
    """
    running_names = set(running)
    discovered_names = set(discovered)

    return (
        sorted(discovered_names - running_names),
        sorted(running_names - discovered_names),
    )


class Watcher:
    def __init__(
        self,
        config: ProbingConfig,
        registry: ServiceRegistry,
        metrics: MetricsSink,
        logger: Logger,
        search_probe_factory: ProbeFactory | None = None,
        dashboard_probe_factory: ProbeFactory | None = None,
    ) -> None:
        self.config = config
        self._registry = registry
        self._metrics = metrics
        self._logger = logger

        if search_probe_factory is None:
            search_probe_factory = functools.partial(
                SearchClusterProbe,
                config=config,
                registry=registry,
                metrics=metrics,
                logger=logger,
            )

        if dashboard_probe_factory is None:
            dashboard_probe_factory = functools.partial(
                DashboardProbe,
                config=config,
                registry=registry,
                metrics=metrics,
                logger=logger,
            )

        self._factories: Dict[str, ProbeFactory] = {
            SEARCH_SYSTEM: search_probe_factory,
            DASHBOARD_SYSTEM: dashboard_probe_factory,
        }
        self._tags: Dict[str, str] = {
            SEARCH_SYSTEM: config.elasticsearch_consul_tag,
            DASHBOARD_SYSTEM: config.kibana_consul_tag,
        }
        self._probes: Dict[str, Dict[str, ProbeHandle]] = {
            SEARCH_SYSTEM: {},
            DASHBOARD_SYSTEM: {},
        }
        self._draining: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

    def probes(self, system: str) -> Dict[str, ProbeHandle]:
        return self._probes[system]

    @property
    def search_probes(self) -> Dict[str, ProbeHandle]:
        return self._probes[SEARCH_SYSTEM]

    @property
    def dashboard_probes(self) -> Dict[str, ProbeHandle]:
        return self._probes[DASHBOARD_SYSTEM]

    async def bootstrap(self):
        """
        Check the registry is reachable before any probe is started.

        Raises:
            RegistryError: the registry cannot list its services.
        """
        services = await self._registry.list_all_services()

        await self._logger.log(
            WatcherInfo(
                message=f"Registry lists {len(services)} services",
                system="registry",
            )
        )

    async def reconcile_once(self):
        for system in (SEARCH_SYSTEM, DASHBOARD_SYSTEM):
            await self._reconcile_system(system)

        await self._log_running()

    async def watch_forever(self):
        while True:
            await self.reconcile_once()
            await asyncio.sleep(self.config.consul_period_seconds)

    async def shutdown(self):
        for system, handles in self._probes.items():
            for name in list(handles):
                self._flush(system, name)

        if len(self._draining) > 0:
            await asyncio.gather(*list(self._draining), return_exceptions=True)

        if len(self._background) > 0:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _reconcile_system(self, system: str):
        try:
            discovered = await discover_clusters(self._registry, self._tags[system])

        except RegistryError as err:
            self._metrics.increment_probe_errors()

            await self._logger.log(
                WatcherError(
                    message=f"Failed to list clusters, keeping current probes: {err}",
                    system=system,
                )
            )
            return

        to_add, to_remove = diff_clusters(discovered, self._probes[system])

        for name in to_remove:
            await self._logger.log(
                WatcherInfo(
                    message=f"Removing old probe for: {name}",
                    system=system,
                )
            )
            self._flush(system, name)

        for name in to_add:
            await self._create_probe(system, discovered[name])

    async def _create_probe(self, system: str, cluster: MonitoredCluster):
        await self._logger.log(
            WatcherInfo(
                message=f"Creating new probe for: {cluster.name}",
                system=system,
            )
        )

        try:
            if system == SEARCH_SYSTEM:
                endpoint = await resolve_cluster_endpoint(
                    self._registry,
                    cluster.service_name,
                    self.config.elasticsearch_endpoint_suffix,
                    port_override=self.config.elasticsearch_endpoint_port,
                )
                cluster = dataclasses.replace(cluster, endpoint=endpoint)

            probe = self._factories[system](cluster)
            await probe.prepare()

        except Exception as err:
            self._metrics.increment_probe_errors()

            await self._logger.log(
                WatcherError(
                    message=f"Error while preparing probe for {cluster.name}: {err}",
                    system=system,
                )
            )
            return

        task = asyncio.create_task(
            probe.run(),
            name=f"probe-{system}-{cluster.name}",
        )
        handle = ProbeHandle(system, probe, task)
        self._probes[system][cluster.name] = handle

        task.add_done_callback(
            functools.partial(self._on_probe_done, handle)
        )

    def _flush(self, system: str, name: str):
        handle = self._probes[system].pop(name, None)
        if handle is None:
            return

        handle.probe.cancel()
        if not handle.task.done():
            self._draining.add(handle.task)

    def _on_probe_done(self, handle: ProbeHandle, task: asyncio.Task):
        self._draining.discard(task)

        reason = "cancelled" if task.cancelled() else repr(task.exception())

        if handle.probe.cancelled:
            return

        if self._probes[handle.system].get(handle.probe.name) is handle:
            del self._probes[handle.system][handle.probe.name]

        self._metrics.increment_probe_errors()

        log_task = asyncio.get_running_loop().create_task(
            self._logger.log(
                WatcherError(
                    message=f"Probe for {handle.probe.name} stopped unexpectedly ({reason}), it will be recreated",
                    system=handle.system,
                )
            )
        )
        self._background.add(log_task)
        log_task.add_done_callback(self._background.discard)

    async def _log_running(self):
        for system, handles in self._probes.items():
            await self._logger.log(
                WatcherDebug(
                    message=f"{len(handles)} probes running: {', '.join(sorted(handles))}",
                    system=system,
                )
            )
