import asyncio
import re
import time
import uuid
from typing import Any, Dict, List

import httpx

from espoke.clients import SearchClusterClient
from espoke.config import ProbingConfig
from espoke.discovery.models import MonitoredCluster, MonitoredNode
from espoke.discovery.registry import ServiceRegistry
from espoke.errors import (
    ClusterRequestError,
    EspokeError,
    ResponseParseError,
    RestoreError,
)
from espoke.logging import Logger
from espoke.logging.espoke_logging_models import (
    ProbeDebug,
    ProbeError,
    ProbeInfo,
)
from espoke.metrics import MetricsSink

from .cluster_probe import ClusterProbe, TickHandler
from .documents import durability_document, latency_document
from .versions import SearchResponseSchema, restore_supported


INDEX_STATUS_CODES = {
    "green": 0,
    "yellow": 1,
}
RED_STATUS_CODE = 2

DURABILITY_SEARCH_QUERY: Dict[str, Any] = {
    "query": {
        "range": {
            "Counter": {
                "gte": 10,
                "lte": 80,
            },
        },
    },
}


class SearchClusterProbe(ClusterProbe):
    """
    Full probe for an Elasticsearch or OpenSearch cluster.

    Besides node availability it checks the durability index (document
    count, range search), measures index/get/delete latency on the latency
    index and, where the cluster supports it, verifies that the newest
    snapshot of the durability index can be restored.
    """

    node_probe_path = "/_cat/health?v"

    def __init__(
        self,
        cluster: MonitoredCluster,
        config: ProbingConfig,
        registry: ServiceRegistry,
        metrics: MetricsSink,
        logger: Logger,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if cluster.endpoint is None:
            raise ValueError(f"Cluster {cluster.name} has no resolved endpoint")

        super().__init__(
            cluster,
            config,
            registry,
            metrics,
            logger,
            transport=transport,
        )

        self.schema = SearchResponseSchema.for_version(cluster.version)
        self.restore_enabled = config.elasticsearch_restore and restore_supported(
            cluster.version
        )

        self.durability_index = config.elasticsearch_durability_index
        self.latency_index = config.elasticsearch_latency_index
        self.restore_index = config.elasticsearch_restore_index

        self._client = SearchClusterClient(
            cluster.name,
            cluster.scheme,
            cluster.endpoint,
            credentials=config.credentials,
            timeout=config.request_timeout_seconds,
            transport=transport,
        )

    def timer_periods(self) -> Dict[str, float]:
        periods = super().timer_periods()
        periods.update({
            "durability": self.config.probe_period_seconds,
            "latency": self.config.latency_period_seconds,
        })

        if self.restore_enabled:
            periods["restore"] = self.config.restore_period_seconds

        return periods

    def tick_handlers(self) -> Dict[str, TickHandler]:
        handlers = super().tick_handlers()
        handlers.update({
            "durability": self.probe_durability,
            "latency": self.probe_latency,
            "restore": self.restore_snapshot,
        })

        return handlers

    async def _prepare_fixtures(self):
        for index in (self.durability_index, self.latency_index):
            if not await self._client.index_exists(index):
                await self._client.create_index(index)

                await self._logger.log(
                    ProbeInfo(
                        message=f"Created missing index {index}",
                        cluster=self.name,
                    )
                )

        count = await self._client.count(self.durability_index)
        await self.replenish_durability_documents(count)

    async def replenish_durability_documents(self, count: int) -> int:
        """
        Index the durability documents missing above `count`.

        Documents are numbered from 1, so ids `count + 1` up to the
        configured target are written, in bulk batches.

        Returns:
            The number of documents written.
        """
        target = self.config.elasticsearch_number_of_durability_documents
        if count >= target:
            return 0

        batch_size = max(self.config.elasticsearch_durability_bulk_size, 1)
        missing = range(count + 1, target + 1)

        written = 0
        for batch_start in range(0, len(missing), batch_size):
            batch = missing[batch_start:batch_start + batch_size]
            written += await self._client.bulk_index(
                self.durability_index,
                [(str(counter), durability_document(counter)) for counter in batch],
            )

        await self._logger.log(
            ProbeInfo(
                message=f"Indexed {written} missing durability documents",
                cluster=self.name,
            )
        )

        return written

    def _observe_node_latency(self, node: MonitoredNode, latency_ms: float):
        self._metrics.observe_node_latency(node.cluster, node.name, latency_ms)

    async def probe_durability(self):
        await asyncio.gather(
            self._record_index_status(self.durability_index),
            self._count_durability_documents(),
            self._search_durability_documents(),
        )

    async def probe_latency(self):
        await asyncio.gather(
            self._record_index_status(self.latency_index),
            self._probe_document_round_trip(),
        )

    async def restore_snapshot(self):
        if not self.restore_enabled:
            return

        try:
            snapshot = await self._find_latest_snapshot()
            if snapshot is None:
                await self._logger.log(
                    ProbeDebug(
                        message=f"No successful snapshot found for policy {self.config.elasticsearch_restore_snapshot_policy}",
                        cluster=self.name,
                    )
                )
                return

            await self._run_restore(snapshot)

        except EspokeError as err:
            self._metrics.increment_restore_errors(self.name)

            await self._logger.log(
                ProbeError(
                    message=f"Snapshot restore failed: {err}",
                    cluster=self.name,
                    operation="restore",
                    index=self.restore_index,
                )
            )

    async def _find_latest_snapshot(self) -> str | None:
        policy = self.config.elasticsearch_restore_snapshot_policy

        if self.config.opensearch:
            snapshots = await self._client.list_snapshots(
                self.config.elasticsearch_restore_snapshot_repository
            )

            # Entries missing a name, policy metadata or start time are skipped.
            candidates = [
                snapshot
                for snapshot in snapshots or []
                if isinstance(snapshot, dict)
                and snapshot.get("state") == "SUCCESS"
                and isinstance(snapshot.get("snapshot"), str)
                and isinstance(snapshot.get("metadata"), dict)
                and snapshot["metadata"].get("sm_policy") == policy
                and isinstance(snapshot.get("start_time_in_millis"), int)
            ]

            if len(candidates) == 0:
                return None

            latest = max(
                candidates,
                key=lambda snapshot: snapshot["start_time_in_millis"],
            )
            return latest["snapshot"]

        body = await self._client.get_slm_policy(policy)
        if body is None:
            return None

        policy_body = body.get(policy)
        if not isinstance(policy_body, dict):
            raise ResponseParseError(
                f"SLM response doesn't describe policy {policy}",
                operation="restore",
                cluster=self.name,
            )

        last_success = policy_body.get("last_success")
        if last_success is None:
            return None

        snapshot_name = (
            last_success.get("snapshot_name")
            if isinstance(last_success, dict)
            else None
        )
        if not isinstance(snapshot_name, str):
            raise ResponseParseError(
                f"SLM policy {policy} has a malformed last_success field",
                operation="restore",
                cluster=self.name,
            )

        return snapshot_name

    async def _run_restore(self, snapshot: str):
        repository = self.config.elasticsearch_restore_snapshot_repository

        try:
            await self._client.delete_index(self.restore_index, missing_ok=True)

            start = time.monotonic()
            await self._client.restore_snapshot(
                repository,
                snapshot,
                {
                    "indices": self.durability_index,
                    "rename_pattern": re.escape(self.durability_index),
                    "rename_replacement": self.restore_index,
                    "include_global_state": False,
                    "include_aliases": False,
                },
                timeout=self.config.restore_timeout_seconds,
            )
            latency_ms = (time.monotonic() - start) * 1000

            count = await self._client.count(self.restore_index)

        except ClusterRequestError as err:
            raise RestoreError(
                f"Restore of snapshot {snapshot} from repository {repository} failed at {err.operation}: {err}"
            ) from err

        self._metrics.observe_latency(self.name, self.restore_index, "restore", latency_ms)
        self._metrics.es_cluster_restore_documents_count.labels(self.name).set(count)
        self._metrics.es_cluster_restore_count.labels(self.name).inc()

        await self._logger.log(
            ProbeInfo(
                message=f"Restored snapshot {snapshot} with {count} documents",
                cluster=self.name,
            )
        )

    async def _record_index_status(self, index: str):
        try:
            status = await self._client.index_health(index)

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "index_status", index)
            return

        self._metrics.es_index_probe_status.labels(self.name, index).set(
            INDEX_STATUS_CODES.get(status, RED_STATUS_CODE)
        )

    async def _count_durability_documents(self):
        index = self.durability_index

        try:
            start = time.monotonic()
            count = await self._client.count(index)
            latency_ms = (time.monotonic() - start) * 1000

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "count", index)
            return

        self._metrics.observe_latency(self.name, index, "count", latency_ms)
        self._metrics.es_cluster_durability_documents_count.labels(self.name).set(count)

        try:
            await self.replenish_durability_documents(count)

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "bulk", index)

    async def _search_durability_documents(self):
        index = self.durability_index

        try:
            start = time.monotonic()
            body = await self._client.search(index, DURABILITY_SEARCH_QUERY)
            latency_ms = (time.monotonic() - start) * 1000

            total = self.schema.total_hits(body, self.name, index)

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "search", index)
            return

        self._metrics.observe_latency(self.name, index, "search", latency_ms)
        self._metrics.es_cluster_durability_search_documents_hits.labels(
            self.name,
            index,
        ).set(total)

    async def _probe_document_round_trip(self):
        index = self.latency_index
        document_id = f"search-document-{uuid.uuid4()}"

        try:
            start = time.monotonic()
            await self._client.index_document(
                index,
                document_id,
                latency_document(document_id),
            )
            self._metrics.observe_latency(
                self.name,
                index,
                "index",
                (time.monotonic() - start) * 1000,
            )

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "index", index, document_id)
            return

        try:
            start = time.monotonic()
            await self._client.get_document(index, document_id)
            self._metrics.observe_latency(
                self.name,
                index,
                "get",
                (time.monotonic() - start) * 1000,
            )

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "get", index, document_id)

        try:
            start = time.monotonic()
            await self._client.delete_document(index, document_id)
            self._metrics.observe_latency(
                self.name,
                index,
                "delete",
                (time.monotonic() - start) * 1000,
            )

        except ClusterRequestError as err:
            await self._record_cluster_failure(err, "delete", index, document_id)

    async def _record_cluster_failure(
        self,
        err: ClusterRequestError,
        operation: str,
        index: str,
        document_id: str | None = None,
    ):
        self._metrics.increment_cluster_errors(self.name)

        await self._logger.log(
            ProbeError(
                message=str(err),
                cluster=self.name,
                operation=operation,
                index=index,
                document_id=document_id,
            )
        )

    def _clean_cluster_metrics(self):
        indexes: List[str] = [
            self.durability_index,
            self.latency_index,
            self.restore_index,
        ]
        self._metrics.clean_cluster_metrics(self.name, indexes)

    async def _close_clients(self):
        await super()._close_clients()
        await self._client.close()
