"""Priority-ordered fallback across vendor clients."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from barcache.core.data.providers.base import VendorBars, VendorClient
from barcache.core.exceptions import AllVendorsExhaustedError, BarCacheError, ConfigurationError, RateLimitError
from barcache.core.logging import logger
from barcache.core.models.granularity import Granularity
from barcache.core.monitoring import MetricsCollector, get_metrics_collector


@dataclass(frozen=True)
class FetchResult:
    bars: VendorBars
    source: str


class FallbackClient:
    """Tries vendors in order until one returns non-empty data.

    An empty result is a soft miss and moves on to the next vendor. When every
    vendor fails the reasons are aggregated into one error; if all of them were
    rate limits the aggregate is raised as :class:`RateLimitError` so that run
    loops stop instead of hammering the next batch.
    """

    def __init__(self, vendors: Sequence[VendorClient], *, metrics: MetricsCollector | None = None) -> None:
        if not vendors:
            raise ConfigurationError("At least one vendor is required", field="vendors.provider_priority")
        self._vendors = list(vendors)
        self._metrics = metrics or get_metrics_collector()

    @classmethod
    def ordered(
        cls,
        vendors: Sequence[VendorClient],
        priority: Sequence[str],
        *,
        metrics: MetricsCollector | None = None,
    ) -> "FallbackClient":
        by_name = {vendor.name: vendor for vendor in vendors}
        unknown = [name for name in priority if name not in by_name]
        if unknown:
            raise ConfigurationError(f"Unknown vendor(s) in priority: {', '.join(unknown)}", field="provider_priority")
        return cls([by_name[name] for name in priority], metrics=metrics)

    @property
    def vendor_names(self) -> list[str]:
        return [vendor.name for vendor in self._vendors]

    async def fetch_bars(
        self,
        symbols: Sequence[str],
        granularity: Granularity,
        start: datetime,
        end: datetime,
    ) -> FetchResult:
        failures: list[dict[str, Any]] = []
        for vendor in self._vendors:
            if not vendor.is_available():
                failures.append({"vendor": vendor.name, "reason": "not configured"})
                continue

            started = time.perf_counter()
            try:
                bars = await vendor.fetch_bars(symbols, granularity, start, end)
            except BarCacheError as exc:
                self._metrics.observe_vendor_call(vendor.name, time.perf_counter() - started, success=False)
                failures.append({"vendor": vendor.name, "reason": exc.message, "error_code": exc.error_code})
                logger.warning(
                    "vendor_fetch_failed",
                    vendor=vendor.name,
                    granularity=granularity.value,
                    error_code=exc.error_code,
                    error=exc.message,
                )
                continue
            self._metrics.observe_vendor_call(vendor.name, time.perf_counter() - started, success=True)

            non_empty = {symbol: rows for symbol, rows in bars.items() if rows}
            if non_empty:
                return FetchResult(non_empty, vendor.name)
            failures.append({"vendor": vendor.name, "reason": "no data"})
            logger.info("vendor_soft_miss", vendor=vendor.name, granularity=granularity.value, symbols=len(symbols))

        message = "All providers failed: " + ", ".join(f"{f['vendor']} ({f['reason']})" for f in failures)
        attempted = [f for f in failures if f["reason"] != "not configured"]
        if attempted and all(f.get("error_code") == "RATE_LIMIT_ERROR" for f in attempted):
            raise RateLimitError(message, ",".join(f["vendor"] for f in attempted), details={"failures": failures})
        raise AllVendorsExhaustedError(message, failures)

    async def validate_symbol(self, symbol: str) -> bool:
        """True on the first vendor that confirms ``symbol``.

        False only when every available vendor explicitly rejected it; if any
        vendor errored instead, the symbol cannot be judged and the aggregate
        error is raised.
        """

        failures: list[dict[str, Any]] = []
        rejected = 0
        for vendor in self._vendors:
            if not vendor.is_available():
                continue
            try:
                if await vendor.validate_symbol(symbol):
                    logger.info("symbol_validated", vendor=vendor.name, symbol=symbol)
                    return True
            except BarCacheError as exc:
                failures.append({"vendor": vendor.name, "reason": exc.message, "error_code": exc.error_code})
                logger.warning("vendor_validate_failed", vendor=vendor.name, symbol=symbol, error=exc.message)
                continue
            rejected += 1

        if failures or rejected == 0:
            reasons = ", ".join(f"{f['vendor']} ({f['reason']})" for f in failures) or "no vendor available"
            raise AllVendorsExhaustedError(f"All providers failed: {reasons}", failures)
        return False

    async def aclose(self) -> None:
        for vendor in self._vendors:
            await vendor.aclose()


__all__ = ["FallbackClient", "FetchResult"]
