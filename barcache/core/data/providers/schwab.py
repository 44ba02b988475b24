"""Secondary vendor: per-symbol price history behind an OAuth bearer token."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from barcache.core.data.providers.base import VendorBars, VendorClient, parse_bars, read_json
from barcache.core.data.providers.oauth import SchwabTokenManager
from barcache.core.exceptions import AuthenticationError, NetworkError, RateLimitError
from barcache.core.logging import logger
from barcache.core.models.granularity import Granularity

# granularity -> (periodType, frequencyType, frequency)
SCHWAB_INTERVALS: dict[Granularity, tuple[str, str, int]] = {
    Granularity.MINUTE_1: ("day", "minute", 1),
    Granularity.MINUTE_2: ("day", "minute", 2),
    Granularity.MINUTE_5: ("day", "minute", 5),
    Granularity.MINUTE_15: ("day", "minute", 15),
    Granularity.MINUTE_30: ("day", "minute", 30),
    Granularity.HOUR_1: ("month", "minute", 60),
    Granularity.HOUR_2: ("month", "minute", 120),
    Granularity.HOUR_4: ("month", "minute", 240),
    Granularity.DAY_1: ("year", "daily", 1),
    Granularity.WEEK_1: ("year", "weekly", 1),
    Granularity.MONTH_1: ("year", "monthly", 1),
}

_CANDLE_FIELDS = {
    "ts": "datetime",
    "open": "open",
    "high": "high",
    "low": "low",
    "close": "close",
    "volume": "volume",
}


def _epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def _normalize_candles(candles: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    rows = []
    for candle in candles:
        row = dict(candle)
        if isinstance(row.get("datetime"), (int, float)):
            row["datetime"] = datetime.fromtimestamp(row["datetime"] / 1000, tz=UTC)
        rows.append(row)
    return rows


class SchwabVendor(VendorClient):
    """Fetches one symbol per request; a 401 triggers exactly one token refresh."""

    name = "schwab"

    def __init__(
        self,
        tokens: SchwabTokenManager,
        *,
        base_url: str = "https://api.schwabapi.com/marketdata/v1",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._tokens = tokens
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    def is_available(self) -> bool:
        return self._tokens.has_credentials()

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._tokens.aclose()

    async def fetch_bars(
        self,
        symbols: Sequence[str],
        granularity: Granularity,
        start: datetime,
        end: datetime,
    ) -> VendorBars:
        period_type, frequency_type, frequency = SCHWAB_INTERVALS[granularity]
        result: VendorBars = {}
        for symbol in symbols:
            payload = await self._get(
                "/pricehistory",
                {
                    "symbol": symbol,
                    "periodType": period_type,
                    "frequencyType": frequency_type,
                    "frequency": frequency,
                    "startDate": _epoch_ms(start),
                    "endDate": _epoch_ms(end),
                    "needExtendedHoursData": "false",
                },
            )
            candles = _normalize_candles(payload.get("candles") or [])
            bars = parse_bars(self.name, symbol, candles, _CANDLE_FIELDS)
            if bars:
                result[symbol] = bars
        logger.debug(
            "vendor_bars_fetched",
            vendor=self.name,
            granularity=granularity.value,
            requested=len(symbols),
            returned=len(result),
        )
        return result

    async def validate_symbol(self, symbol: str) -> bool:
        payload = await self._get("/quotes", {"symbols": symbol})
        return symbol in payload

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        token = await self._tokens.get_access_token()
        for attempt in range(2):
            try:
                response = await self._client.get(
                    f"{self._base_url}{path}",
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.HTTPError as exc:
                raise NetworkError(f"Schwab request failed: {exc}", self.name) from exc

            if response.status_code == 401:
                if attempt == 0:
                    logger.info("vendor_token_rejected", vendor=self.name)
                    token = (await self._tokens.refresh(force=True)).access_token
                    continue
                raise AuthenticationError("Schwab rejected the refreshed token", self.name, auth_method="oauth2")
            if response.status_code == 429:
                raise RateLimitError("Schwab rate limit exceeded", self.name)
            if response.status_code >= 400:
                raise NetworkError(
                    f"Schwab API error {response.status_code}: {response.text[:200]}",
                    self.name,
                    status_code=response.status_code,
                )
            return read_json(self.name, response)
        raise AuthenticationError("Schwab rejected the refreshed token", self.name, auth_method="oauth2")


__all__ = ["SCHWAB_INTERVALS", "SchwabVendor"]
