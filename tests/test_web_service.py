"""Tests for the HTTP API."""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
from helpers import StubVendor, make_bars
from httpx import ASGITransport, AsyncClient

from barcache.core.config.settings import BarCacheConfig
from barcache.core.exceptions import (
    AllVendorsExhaustedError,
    BarCacheError,
    DataValidationError,
    StaleOrMissingError,
    SymbolInactiveError,
)
from barcache.core.models.granularity import Granularity
from barcache.core.runtime import BarCacheRuntime
from barcache.web.app import create_app, status_for

SESSION_START = datetime(2024, 3, 6, 14, 30, tzinfo=UTC)


def _bars(symbols, granularity):
    return {symbol: make_bars(SESSION_START, 30) for symbol in symbols}


def _known(symbol: str) -> bool:
    return symbol != "ZZZZ"


@pytest.fixture
def vendor() -> StubVendor:
    return StubVendor("primary", _bars, valid=_known)


@pytest.fixture
def runtime(vendor, connection, metrics, clock) -> BarCacheRuntime:
    return BarCacheRuntime.build(BarCacheConfig(), vendors=[vendor], connection=connection, metrics=metrics, clock=clock)


@pytest_asyncio.fixture
async def client(runtime):
    app = create_app(runtime=runtime)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    await runtime.bars.wait_background()


async def _seed(runtime, symbol="AAPL"):
    record = runtime.store.insert_symbol(symbol)
    await runtime.store.upsert_bars(record.symbol_id, Granularity.MINUTE_1, make_bars(SESSION_START, 30), "seed")
    return record


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["vendors"] == ["primary"]
        assert data["scheduled_jobs"] == 0
        assert data["queue_depth"] == 0

    @pytest.mark.asyncio
    async def test_stats(self, client, runtime):
        await _seed(runtime)

        response = await client.get("/stats")

        data = response.json()["data"]
        assert data["symbols"] == {"total": 1, "active": 1}
        assert data["bars"][0]["granularity"] == "1m"
        assert data["bars"][0]["count"] == 30

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.get("/bars/AAPL")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "barcache_read_misses_total" in response.text


class TestBars:
    @pytest.mark.asyncio
    async def test_cached_bars(self, client, runtime):
        await _seed(runtime)

        response = await client.get("/bars/AAPL", params={"granularity": "1m", "limit": 5})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["count"] == 5
        assert data["bars"][-1]["ts"] == "2024-03-06T14:59:00+00:00"
        assert data["metadata"]["freshness"] == "within_threshold"

    @pytest.mark.asyncio
    async def test_derived_bars(self, client, runtime):
        await _seed(runtime)

        response = await client.get("/bars/AAPL", params={"granularity": "3m"})

        data = response.json()["data"]
        assert (data["source_granularity"], data["multiplier"], data["count"]) == ("1m", 3, 10)

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_registered_and_retried(self, client, runtime, vendor):
        response = await client.get("/bars/msft", params={"granularity": "1d"})

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "15"
        body = response.json()
        assert body["error"] == "STALE_OR_MISSING"
        assert body["retryable"] is True
        assert vendor.validated == ["MSFT"]
        assert runtime.store.get_symbol("MSFT").is_active
        assert "MSFT" in runtime.queue

    @pytest.mark.asyncio
    async def test_missing_data_is_collected_in_background(self, client, runtime, vendor):
        runtime.store.insert_symbol("AAPL")

        first = await client.get("/bars/AAPL", params={"granularity": "1m"})
        await runtime.bars.wait_background()
        second = await client.get("/bars/AAPL", params={"granularity": "1m"})

        assert first.status_code == 503
        assert second.status_code == 200
        assert vendor.calls == [(["AAPL"], Granularity.MINUTE_1)]

    @pytest.mark.asyncio
    async def test_symbol_rejected_by_vendors(self, client):
        response = await client.get("/bars/ZZZZ")

        assert response.status_code == 404
        assert response.json()["error"] == "SYMBOL_INVALID"

    @pytest.mark.asyncio
    async def test_unsupported_granularity(self, client, runtime):
        await _seed(runtime)

        response = await client.get("/bars/AAPL", params={"granularity": "7m"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestSymbolsAndQueue:
    @pytest.mark.asyncio
    async def test_register_and_list(self, client):
        created = await client.post("/symbols", json={"symbol": "brk-b"})
        listed = await client.get("/symbols")

        assert created.status_code == 201
        assert created.json()["data"]["symbol"] == "BRK.B"
        assert listed.json()["data"] == {"symbols": ["BRK.B"], "count": 1}

    @pytest.mark.asyncio
    async def test_register_invalid(self, client):
        response = await client.post("/symbols", json={"symbol": "ZZZZ"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_register_requires_symbol(self, client):
        response = await client.post("/symbols", json={"symbol": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_collect_queues_once(self, client, runtime):
        runtime.store.insert_symbol("AAPL")

        first = await client.post("/collect/AAPL", params={"granularity": "1d"})
        second = await client.post("/collect/AAPL", params={"granularity": "1d"})

        assert first.status_code == 202
        assert first.json()["data"] == {"queued": True, "depth": 1}
        assert second.json()["message"] == "already queued"

    @pytest.mark.asyncio
    async def test_collect_unknown_symbol(self, client):
        response = await client.post("/collect/ZZZZ")
        assert response.status_code == 404


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (StaleOrMissingError("old", "AAPL", "1d"), 503),
        (SymbolInactiveError("AAPL"), 404),
        (DataValidationError("bad"), 400),
        (AllVendorsExhaustedError("nothing"), 502),
        (BarCacheError("boom"), 500),
    ],
)
def test_status_for(error, status):
    assert status_for(error) == status
