"""
Shared lifecycle of a per-cluster probe.

A probe owns the node list of one cluster, the set of node identities it has
ever seen, its tick timers and its HTTP clients. It is driven by the watcher:

    probe = SearchClusterProbe(cluster, config, registry, metrics, logger)
    await probe.prepare()           # INITIALIZING -> RUNNING or STOPPED
    task = asyncio.create_task(probe.run())
    ...
    probe.cancel()                  # RUNNING -> DRAINING -> STOPPED
    await task

Ticks are serviced one at a time. Work inside a tick may fan out
concurrently but is joined before the next tick is taken, and the
cancellation signal is only checked between ticks.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List

import httpx

from espoke.clients import NodeClient
from espoke.config import ProbingConfig
from espoke.discovery import discover_nodes
from espoke.discovery.models import MonitoredCluster, MonitoredNode
from espoke.discovery.registry import ServiceRegistry
from espoke.errors import (
    EspokeError,
    InvalidProbeTransition,
    ProbePreparationError,
    RegistryError,
)
from espoke.logging import Logger
from espoke.logging.espoke_logging_models import (
    ProbeDebug,
    ProbeError,
    ProbeInfo,
    ProbeWarning,
)
from espoke.metrics import MetricsSink
from espoke.reconciler import KnownNodes

from .signals import CancellationSignal
from .state import ProbeState, is_valid_transition
from .timers import ProbeTimers


TickHandler = Callable[[], Awaitable[None]]


class ClusterProbe:
    dashboard: bool = False
    node_probe_path: str = "/"

    def __init__(
        self,
        cluster: MonitoredCluster,
        config: ProbingConfig,
        registry: ServiceRegistry,
        metrics: MetricsSink,
        logger: Logger,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cluster = cluster
        self.name = cluster.name
        self.config = config
        self.state = ProbeState.INITIALIZING
        self.nodes: List[MonitoredNode] = []
        self.known_nodes = KnownNodes(cluster.name)

        self._registry = registry
        self._metrics = metrics
        self._logger = logger
        self._transport = transport
        self._signal = CancellationSignal()
        self._timers = ProbeTimers()
        self._node_client = NodeClient(
            cluster.name,
            credentials=None if self.dashboard else config.credentials,
            timeout=config.request_timeout_seconds,
            transport=transport,
        )

    @property
    def cancelled(self) -> bool:
        return self._signal.is_set()

    def timer_periods(self) -> Dict[str, float]:
        return {
            "discovery": self.config.consul_period_seconds,
            "nodes": self.config.probe_period_seconds,
            "pruning": self.config.cleaning_period_seconds,
        }

    def tick_handlers(self) -> Dict[str, TickHandler]:
        return {
            "discovery": self.refresh_nodes,
            "nodes": self.probe_nodes,
            "pruning": self.prune_metrics,
        }

    async def prepare(self):
        """
        Run the first discovery and create whatever fixtures the probe needs.

        Raises:
            ProbePreparationError: the probe cannot start. It is left STOPPED
                with its clients closed.
        """
        try:
            self.nodes = await discover_nodes(
                self._registry,
                self.cluster.service_name,
                self._metrics,
                logger=self._logger,
            )
            self.known_nodes.update(self.nodes)

            await self._prepare_fixtures()

        except Exception as err:
            self._transition(ProbeState.STOPPED)
            await self._close_clients()
            self._metrics.clean_discovery_metrics(self.cluster.service_name)

            raise ProbePreparationError(
                f"Impossible to prepare probe for cluster {self.name}: {err}"
            ) from err

        self._transition(ProbeState.RUNNING)

    async def run(self):
        if self.state != ProbeState.RUNNING:
            raise InvalidProbeTransition(
                f"Probe for cluster {self.name} cannot run from state {self.state.value}"
            )

        handlers = self.tick_handlers()
        for name, period in self.timer_periods().items():
            self._timers.start(name, period)

        cancelled = asyncio.create_task(self._signal.wait())

        try:
            while not self._signal.is_set():
                tick = asyncio.create_task(self._timers.next_tick())

                done, _ = await asyncio.wait(
                    {cancelled, tick},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if cancelled in done:
                    tick.cancel()
                    break

                await self._dispatch(tick.result(), handlers)

        finally:
            cancelled.cancel()
            await self.drain()

    def cancel(self) -> bool:
        return self._signal.send()

    async def refresh_nodes(self):
        try:
            nodes = await discover_nodes(
                self._registry,
                self.cluster.service_name,
                self._metrics,
            )

        except RegistryError as err:
            await self._logger.log(
                ProbeWarning(
                    message=f"Unable to update nodes, using last known state: {err}",
                    cluster=self.name,
                )
            )
            return

        self.known_nodes.update(nodes)
        self.nodes = nodes

        await self._logger.log(
            ProbeDebug(
                message=f"Updated nodes list ({len(nodes)} nodes)",
                cluster=self.name,
            )
        )

    async def probe_nodes(self):
        await asyncio.gather(*[
            self._probe_node_availability(node) for node in list(self.nodes)
        ])

    async def prune_metrics(self):
        await self.known_nodes.prune(
            self.nodes,
            self._metrics,
            logger=self._logger,
        )

    async def drain(self):
        self._transition(ProbeState.DRAINING)

        await self._logger.log(
            ProbeInfo(
                message="Terminating probe",
                cluster=self.name,
            )
        )

        await self._timers.stop()
        await self.known_nodes.prune([], self._metrics, logger=self._logger)
        self._metrics.clean_discovery_metrics(self.cluster.service_name)
        self._clean_cluster_metrics()
        await self._close_clients()

        self._transition(ProbeState.STOPPED)

    async def _probe_node_availability(self, node: MonitoredNode):
        start = time.monotonic()

        try:
            await self._check_node(node)

        except EspokeError as err:
            self._metrics.set_node_availability(
                node.cluster,
                node.name,
                False,
                dashboard=self.dashboard,
            )
            self._record_node_failure()

            await self._logger.log(
                ProbeError(
                    message=f"Probing failed for node {node.name}: {err}",
                    cluster=self.name,
                    operation="node_probe",
                )
            )
            return

        latency_ms = (time.monotonic() - start) * 1000

        self._metrics.set_node_availability(
            node.cluster,
            node.name,
            True,
            dashboard=self.dashboard,
        )
        self._observe_node_latency(node, latency_ms)

    async def _check_node(self, node: MonitoredNode):
        await self._node_client.get(node, self.node_probe_path, "node_probe")

    def _observe_node_latency(self, node: MonitoredNode, latency_ms: float):
        pass

    def _record_node_failure(self):
        self._metrics.increment_cluster_errors(self.name)

    async def _prepare_fixtures(self):
        pass

    def _clean_cluster_metrics(self):
        pass

    async def _close_clients(self):
        await self._node_client.close()

    async def _dispatch(self, name: str, handlers: Dict[str, TickHandler]):
        handler = handlers.get(name)
        if handler is None:
            return

        try:
            await handler()

        except Exception as err:
            self._metrics.increment_probe_errors()

            await self._logger.log(
                ProbeError(
                    message=f"Unexpected failure handling {name} tick: {err!r}",
                    cluster=self.name,
                    operation=name,
                )
            )

    def _transition(self, target: ProbeState):
        if not is_valid_transition(self.state, target):
            raise InvalidProbeTransition(
                f"Invalid probe transition {self.state.value} -> {target.value} for cluster {self.name}"
            )

        self.state = target
