import asyncio

import pytest

from espoke.logging import Logger
from espoke.metrics import MetricsSink
from espoke.probes import DashboardProbe, DashboardStatusSchema, ProbeState
from tests.unit.mocks import FakeRegistry, FakeSearchCluster, make_cluster, make_config


DEGRADED = {"status": {"overall": {"state": "green", "level": "degraded"}}}


@pytest.fixture
def build_probe(
    registry: FakeRegistry,
    search_cluster: FakeSearchCluster,
    metrics: MetricsSink,
    logger: Logger,
):
    def build(version: str) -> DashboardProbe:
        registry.add_cluster(
            "kb-front",
            "front",
            "maintenance-kibana",
            ["kb-1", "kb-2"],
            version=version,
            port=5601,
        )

        return DashboardProbe(
            make_cluster(name="front", service_name="kb-front", version=version, endpoint=None),
            make_config(),
            registry,
            metrics,
            logger,
            transport=search_cluster.transport(),
        )

    return build


def availability(metrics: MetricsSink, node_name: str):
    return metrics.registry.get_sample_value(
        "kibana_node_availability", {"cluster": "front", "node_name": node_name}
    )


class TestDashboardProbe:
    """Tests for the Kibana node status probe."""

    @pytest.mark.asyncio
    async def test_state_schema_before_eight(
        self,
        build_probe,
        search_cluster: FakeSearchCluster,
        metrics: MetricsSink,
    ):
        search_cluster.dashboard_status["10.0.0.2"] = DEGRADED
        probe = build_probe("7.17.0")
        await probe.prepare()

        assert probe.schema == DashboardStatusSchema.STATE
        await probe.probe_nodes()

        assert availability(metrics, "kb-1") == 1
        assert availability(metrics, "kb-2") == 1
        await probe.drain()

    @pytest.mark.asyncio
    async def test_level_schema_from_eight(
        self,
        build_probe,
        search_cluster: FakeSearchCluster,
        metrics: MetricsSink,
    ):
        search_cluster.dashboard_status["10.0.0.2"] = DEGRADED
        probe = build_probe("8.11.0")
        await probe.prepare()

        await probe.probe_nodes()

        assert availability(metrics, "kb-1") == 1
        assert availability(metrics, "kb-2") == 0
        assert metrics.registry.get_sample_value("es_probe_errors_count_total") == 1
        assert metrics.registry.get_sample_value(
            "es_cluster_errors_count_total", {"cluster": "front"}
        ) is None
        await probe.drain()

    @pytest.mark.asyncio
    async def test_unreachable_node(
        self,
        build_probe,
        search_cluster: FakeSearchCluster,
        metrics: MetricsSink,
    ):
        search_cluster.unreachable_hosts.add("10.0.0.1")
        probe = build_probe("8.11.0")
        await probe.prepare()

        await probe.probe_nodes()

        assert availability(metrics, "kb-1") == 0
        assert availability(metrics, "kb-2") == 1
        await probe.drain()

    @pytest.mark.asyncio
    async def test_only_node_and_discovery_timers(self, build_probe):
        probe = build_probe("8.11.0")

        assert sorted(probe.timer_periods()) == ["discovery", "nodes", "pruning"]
        await probe._close_clients()

    @pytest.mark.asyncio
    async def test_cancel_retracts_node_metrics(
        self,
        build_probe,
        metrics: MetricsSink,
    ):
        probe = build_probe("8.11.0")
        await probe.prepare()
        await probe.probe_nodes()

        task = asyncio.create_task(probe.run())
        await asyncio.sleep(0)
        probe.cancel()
        await asyncio.wait_for(task, timeout=5)

        assert probe.state == ProbeState.STOPPED
        assert availability(metrics, "kb-1") is None
        assert metrics.registry.get_sample_value(
            "es_cluster_discovered_nodes", {"service": "kb-front"}
        ) is None
