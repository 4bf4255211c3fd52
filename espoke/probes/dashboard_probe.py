import httpx

from espoke.config import ProbingConfig
from espoke.discovery.models import MonitoredCluster, MonitoredNode
from espoke.discovery.registry import ServiceRegistry
from espoke.errors import ResponseParseError
from espoke.logging import Logger
from espoke.metrics import MetricsSink

from .cluster_probe import ClusterProbe
from .versions import DashboardStatusSchema


class DashboardProbe(ClusterProbe):
    """
    Light probe for Kibana front-ends: discovery, node status and pruning.
    """

    dashboard = True
    node_probe_path = "/api/status"

    def __init__(
        self,
        cluster: MonitoredCluster,
        config: ProbingConfig,
        registry: ServiceRegistry,
        metrics: MetricsSink,
        logger: Logger,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            cluster,
            config,
            registry,
            metrics,
            logger,
            transport=transport,
        )

        self.schema = DashboardStatusSchema.for_version(cluster.version)

    async def _check_node(self, node: MonitoredNode):
        body = await self._node_client.get_json(
            node,
            self.node_probe_path,
            "node_probe",
        )

        if not self.schema.is_healthy(body):
            raise ResponseParseError(
                f"Node {node.name} not in a healthy state",
                operation="node_probe",
                cluster=self.name,
            )

    def _record_node_failure(self):
        self._metrics.increment_probe_errors()
