from typing import Iterable, List, Set

from espoke.discovery.models import MonitoredNode, NodeIdentity
from espoke.logging import Logger
from espoke.logging.espoke_logging_models import ProbeDebug, ProbeInfo
from espoke.metrics import MetricsSink


class KnownNodes:
    """
    Every node identity a probe has ever seen, plus the subset whose
    metrics are currently retracted.

    The known set only grows. An identity seen again after being retracted
    leaves the retracted subset, so it can be retracted again later.
    """

    def __init__(self, cluster: str) -> None:
        self.cluster = cluster
        self._known: Set[NodeIdentity] = set()
        self._retracted: Set[NodeIdentity] = set()

    def __len__(self) -> int:
        return len(self._known)

    def __contains__(self, identity: NodeIdentity) -> bool:
        return identity in self._known

    @property
    def known(self) -> List[NodeIdentity]:
        return sorted(self._known)

    @property
    def retracted(self) -> List[NodeIdentity]:
        return sorted(self._retracted)

    def update(self, nodes: Iterable[MonitoredNode]) -> List[NodeIdentity]:
        for node in nodes:
            identity = node.identity
            self._known.add(identity)
            self._retracted.discard(identity)

        return self.known

    async def prune(
        self,
        nodes: Iterable[MonitoredNode],
        metrics: MetricsSink,
        logger: Logger | None = None,
    ) -> List[NodeIdentity]:
        live = {node.identity for node in nodes}
        vanished = sorted(self._known - live - self._retracted)

        for identity in vanished:
            metrics.clean_node_metrics(identity.cluster, identity.name)
            self._retracted.add(identity)

            if logger:
                await logger.log(
                    ProbeInfo(
                        message=f"Metrics removed for vanished node {identity.name}",
                        cluster=identity.cluster,
                    )
                )

        if logger and len(vanished) == 0:
            await logger.log(
                ProbeDebug(
                    message=f"Metrics are live for all {len(live)} nodes - keeping them",
                    cluster=self.cluster,
                )
            )

        return vanished
