"""
Shared fixtures for the espoke unit tests.
"""

import pytest

from espoke.logging import Logger, LoggingConfig
from espoke.metrics import MetricsSink

from tests.unit.mocks import FakeRegistry, FakeSearchCluster


@pytest.fixture(autouse=True)
def quiet_logging():
    """Only errors reach the console while tests run."""
    config = LoggingConfig()
    config.update(log_level="error", log_output="stderr")
    yield
    config.update(log_level="info", log_output="stdout")


@pytest.fixture
def metrics() -> MetricsSink:
    return MetricsSink()


@pytest.fixture
def logger() -> Logger:
    return Logger()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def search_cluster() -> FakeSearchCluster:
    return FakeSearchCluster()
