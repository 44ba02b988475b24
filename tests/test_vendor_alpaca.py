"""Wire-level tests for the primary vendor client."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest
from helpers import RecordingSleep, StubVendor, make_bars

from barcache.core.data.providers import AlpacaVendor, FallbackClient, RollingWindowRateLimiter
from barcache.core.exceptions import AuthenticationError, DataValidationError, NetworkError, RateLimitError
from barcache.core.models.granularity import Granularity

START = datetime(2024, 3, 6, 14, 30, tzinfo=UTC)
END = START + timedelta(hours=1)
BASE_URL = "https://data.alpaca.markets"


def _row(minute: int, close: float = 101.0) -> dict:
    return {
        "t": f"2024-03-06T14:{30 + minute:02d}:00Z",
        "o": 100.0,
        "h": 102.0,
        "l": 99.5,
        "c": close,
        "v": 1200,
        "vw": 100.7,
        "n": 42,
    }


def _vendor(handler, *, sleep=None, key="key") -> AlpacaVendor:
    sleep = sleep or RecordingSleep()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    limiter = RollingWindowRateLimiter(100, 60, sleep=sleep, name="alpaca")
    return AlpacaVendor(key, "secret", client=client, rate_limiter=limiter, rate_limit_cooldown=60, sleep=sleep)


@pytest.mark.asyncio
async def test_batch_request_and_response_keyed_by_symbol():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bars": {"AAPL": [_row(0), _row(1)], "MSFT": [_row(0)]}, "next_page_token": None})

    vendor = _vendor(handler)
    bars = await vendor.fetch_bars(["AAPL", "MSFT"], Granularity.MINUTE_5, START, END)

    params = seen[0].url.params
    assert seen[0].url.path == "/v2/stocks/bars"
    assert params["symbols"] == "AAPL,MSFT"
    assert params["timeframe"] == "5Min"
    assert params["start"] == "2024-03-06T14:30:00Z"
    assert seen[0].headers["APCA-API-KEY-ID"] == "key"
    assert [len(bars["AAPL"]), len(bars["MSFT"])] == [2, 1]
    first = bars["AAPL"][0]
    assert (first.ts, first.close, first.vwap, first.trade_count, first.source) == (START, 101.0, 100.7, 42, "alpaca")


@pytest.mark.asyncio
async def test_single_symbol_still_returns_a_map():
    def handler(request):
        return httpx.Response(200, json={"bars": {"AAPL": [_row(0)]}})

    bars = await _vendor(handler).fetch_bars(["AAPL"], Granularity.DAY_1, START, END)
    assert list(bars) == ["AAPL"]


@pytest.mark.asyncio
async def test_pagination_follows_next_page_token():
    pages = iter(
        [
            {"bars": {"AAPL": [_row(0)]}, "next_page_token": "p2"},
            {"bars": {"AAPL": [_row(1)], "MSFT": [_row(1)]}, "next_page_token": None},
        ]
    )
    tokens: list[str | None] = []

    def handler(request):
        tokens.append(request.url.params.get("page_token"))
        return httpx.Response(200, json=next(pages))

    bars = await _vendor(handler).fetch_bars(["AAPL", "MSFT"], Granularity.MINUTE_1, START, END)

    assert tokens == [None, "p2"]
    assert len(bars["AAPL"]) == 2
    assert len(bars["MSFT"]) == 1


@pytest.mark.asyncio
async def test_unrequested_key_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"bars": {"0": [_row(0)], "1": [_row(0)]}})

    with pytest.raises(DataValidationError):
        await _vendor(handler).fetch_bars(["AAPL", "MSFT"], Granularity.MINUTE_1, START, END)


@pytest.mark.asyncio
async def test_invalid_rows_are_dropped():
    bad = {**_row(1), "h": 1.0}

    def handler(request):
        return httpx.Response(200, json={"bars": {"AAPL": [_row(0), bad]}})

    bars = await _vendor(handler).fetch_bars(["AAPL"], Granularity.MINUTE_1, START, END)
    assert len(bars["AAPL"]) == 1


@pytest.mark.asyncio
async def test_server_rate_limit_cools_down_and_retries_once():
    sleep = RecordingSleep()
    responses = iter([httpx.Response(429), httpx.Response(200, json={"bars": {"AAPL": [_row(0)]}})])

    vendor = _vendor(lambda request: next(responses), sleep=sleep)
    bars = await vendor.fetch_bars(["AAPL"], Granularity.MINUTE_1, START, END)

    assert len(bars["AAPL"]) == 1
    assert sleep.delays == [60]


@pytest.mark.asyncio
async def test_second_rate_limit_is_raised():
    sleep = RecordingSleep()
    vendor = _vendor(lambda request: httpx.Response(429), sleep=sleep)

    with pytest.raises(RateLimitError) as info:
        await vendor.fetch_bars(["AAPL"], Granularity.MINUTE_1, START, END)
    assert info.value.vendor_name == "alpaca"
    assert sleep.delays == [60]


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "error"), [(401, AuthenticationError), (403, AuthenticationError), (500, NetworkError)])
async def test_http_errors(status, error):
    vendor = _vendor(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(error):
        await vendor.fetch_bars(["AAPL"], Granularity.MINUTE_1, START, END)


@pytest.mark.asyncio
async def test_transport_error_becomes_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkError):
        await _vendor(handler).fetch_bars(["AAPL"], Granularity.MINUTE_1, START, END)


@pytest.mark.asyncio
async def test_validate_symbol():
    def handler(request):
        symbol = request.url.params["symbols"]
        assert request.url.params["limit"] == "1"
        if symbol == "AAPL":
            return httpx.Response(200, json={"bars": {"AAPL": [_row(0)]}})
        return httpx.Response(200, json={"bars": {}})

    vendor = _vendor(handler)
    assert await vendor.validate_symbol("AAPL")
    assert not await vendor.validate_symbol("ZZZZ")


def test_unavailable_without_credentials():
    vendor = AlpacaVendor(None, None, client=httpx.AsyncClient(base_url=BASE_URL))
    assert not vendor.is_available()


@pytest.mark.asyncio
async def test_non_json_body_is_a_network_error_and_falls_back(metrics):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    vendor = _vendor(handler)
    with pytest.raises(NetworkError, match="not JSON"):
        await vendor.fetch_bars(["AAPL"], Granularity.MINUTE_5, START, END)

    backup = StubVendor("backup", {"AAPL": make_bars(START, 2, source="backup")})
    result = await FallbackClient([vendor, backup], metrics=metrics).fetch_bars(["AAPL"], Granularity.MINUTE_5, START, END)
    assert result.source == "backup"
