"""
Tests for the search cluster REST client against an in-memory cluster.
"""

import pytest

from espoke.clients import NodeClient, SearchClusterClient
from espoke.discovery.models import MonitoredNode
from espoke.errors import ClusterRequestError, ResponseParseError
from espoke.probes import durability_document, latency_document
from tests.unit.mocks import FakeSearchCluster


ENDPOINT = "es-prod.service.dc1.foo.bar:9200"


@pytest.fixture
def client(search_cluster: FakeSearchCluster):
    return SearchClusterClient(
        "prod-search",
        "http",
        ENDPOINT,
        credentials=("probe", "secret"),
        transport=search_cluster.transport(),
    )


# =============================================================================
# Index management
# =============================================================================


class TestIndexManagement:
    """Tests for index existence, creation and deletion."""

    @pytest.mark.asyncio
    async def test_create_then_exists(self, client: SearchClusterClient):
        assert await client.index_exists(".espoke.durability") is False

        await client.create_index(".espoke.durability")

        assert await client.index_exists(".espoke.durability") is True
        await client.close()

    @pytest.mark.asyncio
    async def test_delete_missing_index_is_accepted(self, client: SearchClusterClient):
        await client.delete_index(".espoke.restore")
        await client.close()

    @pytest.mark.asyncio
    async def test_delete_missing_index_strict(self, client: SearchClusterClient):
        with pytest.raises(ClusterRequestError) as raised:
            await client.delete_index(".espoke.restore", missing_ok=False)

        assert raised.value.status == 404
        assert raised.value.operation == "delete_index"
        await client.close()

    @pytest.mark.asyncio
    async def test_index_health(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        search_cluster.indices[".espoke.latency"] = {}
        search_cluster.index_status[".espoke.latency"] = "yellow"

        assert await client.index_health(".espoke.latency") == "yellow"
        await client.close()


# =============================================================================
# Documents
# =============================================================================


class TestDocuments:
    """Tests for document round trips, bulk indexing, count and search."""

    @pytest.mark.asyncio
    async def test_document_round_trip(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        await client.index_document(".espoke.latency", "doc-1", latency_document("doc-1"))
        body = await client.get_document(".espoke.latency", "doc-1")

        assert body["_source"]["Name"] == "doc-1"
        assert body["_source"]["EventTye"] == "search"

        await client.delete_document(".espoke.latency", "doc-1")
        assert search_cluster.indices[".espoke.latency"] == {}
        await client.close()

    @pytest.mark.asyncio
    async def test_get_missing_document_carries_context(self, client: SearchClusterClient):
        with pytest.raises(ClusterRequestError) as raised:
            await client.get_document(".espoke.latency", "missing")

        err = raised.value
        assert err.operation == "get"
        assert err.index == ".espoke.latency"
        assert err.document_id == "missing"
        assert err.cluster == "prod-search"
        assert "document_id=missing" in str(err)
        await client.close()

    @pytest.mark.asyncio
    async def test_bulk_index_and_count(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        written = await client.bulk_index(
            ".espoke.durability",
            [(str(counter), durability_document(counter)) for counter in range(1, 6)],
        )

        assert written == 5
        assert await client.count(".espoke.durability") == 5
        assert search_cluster.indices[".espoke.durability"]["3"]["Counter"] == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_bulk_sends_nothing(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        assert await client.bulk_index(".espoke.durability", []) == 0
        assert search_cluster.calls("bulk") == 0
        await client.close()

    @pytest.mark.asyncio
    async def test_search_sends_range_query(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        search_cluster.seed_documents(".espoke.durability", 100)

        body = await client.search(
            ".espoke.durability",
            {"query": {"range": {"Counter": {"gte": 10, "lte": 80}}}},
        )

        assert body["hits"]["total"]["value"] == 71
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_wrapped(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        search_cluster.indices[".espoke.durability"] = {}
        search_cluster.failures["count"] = 503

        with pytest.raises(ClusterRequestError) as raised:
            await client.count(".espoke.durability")

        assert raised.value.status == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        search_cluster.unreachable_hosts.add("es-prod.service.dc1.foo.bar")

        with pytest.raises(ClusterRequestError) as raised:
            await client.count(".espoke.durability")

        assert raised.value.status is None
        await client.close()


# =============================================================================
# Snapshots
# =============================================================================


class TestSnapshots:
    """Tests for SLM policies, snapshot listings and restore."""

    @pytest.mark.asyncio
    async def test_missing_policy_and_repository(self, client: SearchClusterClient):
        assert await client.get_slm_policy("daily") is None
        assert await client.list_snapshots("backups") is None
        await client.close()

    @pytest.mark.asyncio
    async def test_restore(
        self,
        client: SearchClusterClient,
        search_cluster: FakeSearchCluster,
    ):
        search_cluster.seed_documents(".espoke.durability", 10)

        await client.restore_snapshot(
            "backups",
            "snap-1",
            {
                "indices": ".espoke.durability",
                "rename_pattern": "\\.espoke\\.durability",
                "rename_replacement": ".espoke.restore",
            },
            timeout=5.0,
        )

        assert await client.count(".espoke.restore") == 10
        await client.close()


# =============================================================================
# Node client
# =============================================================================


class TestNodeClient:
    """Tests for per-node requests."""

    @pytest.mark.asyncio
    async def test_get_and_get_json(self, search_cluster: FakeSearchCluster):
        node_client = NodeClient("front", transport=search_cluster.transport())
        node = MonitoredNode(name="kb-1", address="10.0.0.1", port=5601, cluster="front")

        response = await node_client.get(node, "/_cat/health?v", "node_probe")
        body = await node_client.get_json(node, "/api/status", "node_probe")

        assert response.status_code == 200
        assert body["status"]["overall"]["state"] == "green"
        await node_client.close()

    @pytest.mark.asyncio
    async def test_non_json_body(self, search_cluster: FakeSearchCluster):
        node_client = NodeClient("front", transport=search_cluster.transport())
        node = MonitoredNode(name="es-1", address="10.0.0.1", port=9200, cluster="front")

        with pytest.raises(ResponseParseError):
            await node_client.get_json(node, "/_cat/health", "node_probe")

        await node_client.close()

    @pytest.mark.asyncio
    async def test_unreachable_node(self, search_cluster: FakeSearchCluster):
        search_cluster.unreachable_hosts.add("10.0.0.1")
        node_client = NodeClient("front", transport=search_cluster.transport())
        node = MonitoredNode(name="es-1", address="10.0.0.1", port=9200, cluster="front")

        with pytest.raises(ClusterRequestError):
            await node_client.get(node, "/_cat/health?v", "node_probe")

        await node_client.close()
