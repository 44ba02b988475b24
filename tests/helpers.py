"""Test doubles shared across the barcache test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from barcache.core.data.providers.base import VendorBars, VendorClient
from barcache.core.data.providers.fallback import FallbackClient
from barcache.core.models.bars import Bar
from barcache.core.models.granularity import Granularity
from barcache.core.services.batch import BatchProcessor
from barcache.core.services.ingestion import IngestionService

# Wednesday 2024-03-06 10:00 America/New_York, regular session open.
SESSION_OPEN_NOW = datetime(2024, 3, 6, 15, 0, tzinfo=UTC)
# Saturday 2024-03-09 12:00 America/New_York.
WEEKEND_NOW = datetime(2024, 3, 9, 17, 0, tzinfo=UTC)


class FixedClock:
    """Settable clock returning an aware UTC datetime."""

    def __init__(self, now: datetime = SESSION_OPEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class StubVendor(VendorClient):
    """Vendor double returning canned bars, or raising a configured error."""

    def __init__(
        self,
        name: str,
        bars: VendorBars | Callable[[Sequence[str], Granularity], VendorBars] | None = None,
        *,
        error: Exception | None = None,
        valid: bool | Exception | Callable[[str], bool] = True,
        available: bool = True,
    ) -> None:
        self.name = name
        self._bars = bars or {}
        self._error = error
        self._valid = valid
        self._available = available
        self.calls: list[tuple[list[str], Granularity]] = []
        self.validated: list[str] = []
        self.closed = False

    def is_available(self) -> bool:
        return self._available

    async def fetch_bars(self, symbols, granularity, start, end) -> VendorBars:
        self.calls.append((list(symbols), granularity))
        if self._error is not None:
            raise self._error
        if callable(self._bars):
            return self._bars(symbols, granularity)
        return {symbol: list(rows) for symbol, rows in self._bars.items() if symbol in symbols}

    async def validate_symbol(self, symbol: str) -> bool:
        self.validated.append(symbol)
        if isinstance(self._valid, Exception):
            raise self._valid
        if callable(self._valid):
            return self._valid(symbol)
        return self._valid

    async def aclose(self) -> None:
        self.closed = True


def make_bars(
    start: datetime,
    count: int,
    step: timedelta = timedelta(minutes=1),
    *,
    price: float = 100.0,
    source: str = "stub",
) -> list[Bar]:
    bars = []
    for i in range(count):
        o = price + i
        bars.append(Bar(ts=start + step * i, open=o, high=o + 2, low=o - 1, close=o + 1, volume=10 + i, source=source))
    return bars


def build_ingestion(store, vendors, *, metrics, clock, sleep, batch_size: int = 2, recent=None):
    """Ingestion service over ``vendors`` with an injected clock and sleep."""

    client = FallbackClient(list(vendors), metrics=metrics)
    processor = BatchProcessor(batch_size=batch_size, inter_batch_delay=0.5, sleep=sleep)
    return IngestionService(store, client, processor, recent=recent, metrics=metrics, clock=clock)


def register(store, *symbols: str):
    return [store.insert_symbol(symbol) for symbol in symbols]
