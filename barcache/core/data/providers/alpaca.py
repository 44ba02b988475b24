"""Primary vendor: batch bars endpoint keyed by symbol."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from barcache.core.data.providers.base import (
    VendorBars,
    VendorClient,
    check_response_keys,
    parse_bars,
    read_json,
    to_vendor_time,
)
from barcache.core.data.providers.rate_limiter import RollingWindowRateLimiter
from barcache.core.exceptions import AuthenticationError, NetworkError, RateLimitError
from barcache.core.logging import logger
from barcache.core.models.granularity import Granularity
from barcache.core.patterns.retry import Sleeper

ALPACA_TIMEFRAMES: dict[Granularity, str] = {
    Granularity.MINUTE_1: "1Min",
    Granularity.MINUTE_2: "2Min",
    Granularity.MINUTE_5: "5Min",
    Granularity.MINUTE_15: "15Min",
    Granularity.MINUTE_30: "30Min",
    Granularity.HOUR_1: "1Hour",
    Granularity.HOUR_2: "2Hour",
    Granularity.HOUR_4: "4Hour",
    Granularity.DAY_1: "1Day",
    Granularity.WEEK_1: "1Week",
    Granularity.MONTH_1: "1Month",
}

_BAR_FIELDS = {
    "ts": "t",
    "open": "o",
    "high": "h",
    "low": "l",
    "close": "c",
    "volume": "v",
    "vwap": "vw",
    "trade_count": "n",
}

PAGE_LIMIT = 10000


class AlpacaVendor(VendorClient):
    """Market-data API authenticated with a key pair and limited per minute.

    A server-side 429 triggers one cooldown-and-retry; the second 429 is
    raised as :class:`RateLimitError`.
    """

    name = "alpaca"

    def __init__(
        self,
        api_key: str | None,
        api_secret: str | None,
        *,
        base_url: str = "https://data.alpaca.markets",
        feed: str = "iex",
        timeout: float = 30.0,
        rate_limiter: RollingWindowRateLimiter | None = None,
        rate_limit_cooldown: float = 60.0,
        client: httpx.AsyncClient | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._feed = feed
        self._rate_limiter = rate_limiter or RollingWindowRateLimiter(100, 60.0, name=self.name)
        self._cooldown = rate_limit_cooldown
        self._sleep = sleep or asyncio.sleep
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout))

    def is_available(self) -> bool:
        return bool(self._api_key and self._api_secret)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_bars(
        self,
        symbols: Sequence[str],
        granularity: Granularity,
        start: datetime,
        end: datetime,
        *,
        limit: int = PAGE_LIMIT,
    ) -> VendorBars:
        requested = list(symbols)
        params: dict[str, Any] = {
            "symbols": ",".join(requested),
            "timeframe": ALPACA_TIMEFRAMES[granularity],
            "start": to_vendor_time(start),
            "end": to_vendor_time(end),
            "limit": limit,
            "adjustment": "split",
            "feed": self._feed,
        }
        result: VendorBars = {}
        while True:
            payload = await self._get("/v2/stocks/bars", params)
            keyed = payload.get("bars") or {}
            check_response_keys(self.name, requested, keyed.keys())
            for symbol, rows in keyed.items():
                bars = parse_bars(self.name, symbol, rows or [], _BAR_FIELDS)
                if bars:
                    result.setdefault(symbol, []).extend(bars)
            page_token = payload.get("next_page_token")
            if not page_token or limit < PAGE_LIMIT:
                break
            params["page_token"] = page_token

        logger.debug(
            "vendor_bars_fetched",
            vendor=self.name,
            granularity=granularity.value,
            requested=len(requested),
            returned=len(result),
        )
        return result

    async def validate_symbol(self, symbol: str) -> bool:
        end = datetime.now(UTC)
        bars = await self.fetch_bars([symbol], Granularity.DAY_1, end - timedelta(days=10), end, limit=1)
        return bool(bars.get(symbol))

    def _headers(self) -> dict[str, str]:
        if not self.is_available():
            raise AuthenticationError("Alpaca credentials are not configured", self.name, auth_method="api_key")
        return {"APCA-API-KEY-ID": self._api_key or "", "APCA-API-SECRET-KEY": self._api_secret or ""}

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        headers = self._headers()
        for attempt in range(2):
            await self._rate_limiter.acquire()
            try:
                response = await self._client.get(path, params=params, headers=headers)
            except httpx.HTTPError as exc:
                raise NetworkError(f"Alpaca request failed: {exc}", self.name) from exc

            if response.status_code == 429:
                if attempt == 0:
                    logger.warning("vendor_rate_limited", vendor=self.name, cooldown_seconds=self._cooldown)
                    await self._sleep(self._cooldown)
                    self._rate_limiter.reset()
                    continue
                raise RateLimitError("Alpaca rate limit exceeded after cooldown", self.name, retry_after=self._cooldown)
            if response.status_code in (401, 403):
                raise AuthenticationError(
                    f"Alpaca rejected credentials ({response.status_code})", self.name, auth_method="api_key"
                )
            if response.status_code >= 400:
                raise NetworkError(
                    f"Alpaca API error {response.status_code}: {response.text[:200]}",
                    self.name,
                    status_code=response.status_code,
                )
            return read_json(self.name, response)
        raise RateLimitError("Alpaca rate limit exceeded after cooldown", self.name, retry_after=self._cooldown)


__all__ = ["ALPACA_TIMEFRAMES", "AlpacaVendor"]
