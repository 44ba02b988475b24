"""Pytest configuration for the barcache test suite."""

from __future__ import annotations

from collections.abc import Iterator

import duckdb
import pytest
from helpers import FixedClock, RecordingSleep
from prometheus_client import CollectorRegistry

from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.monitoring import MetricsCollector


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--barcache-run-integration",
        action="store_true",
        default=False,
        help="Run barcache integration tests that call real vendor APIs.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: marks barcache tests requiring network or vendor credentials",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--barcache-run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="integration tests require --barcache-run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def connection() -> Iterator[duckdb.DuckDBPyConnection]:
    conn = duckdb.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def store(connection, clock, sleep) -> CacheStore:
    return CacheStore(connection, clock=clock, sleep=sleep)
