"""Stored and derived bar granularities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from barcache.core.exceptions import DataValidationError


class Granularity(str, Enum):
    """Bar widths that are ingested and stored directly."""

    MINUTE_1 = "1m"
    MINUTE_2 = "2m"
    MINUTE_5 = "5m"
    MINUTE_15 = "15m"
    MINUTE_30 = "30m"
    HOUR_1 = "1h"
    HOUR_2 = "2h"
    HOUR_4 = "4h"
    DAY_1 = "1d"
    WEEK_1 = "1w"
    MONTH_1 = "1mo"

    @property
    def spec(self) -> "GranularitySpec":
        return GRANULARITY_SPECS[self]

    @property
    def is_intraday(self) -> bool:
        return self not in _SESSION_FAMILIES

    @property
    def lookback_days(self) -> int:
        return self.spec.lookback_days

    @property
    def expected_bars(self) -> int:
        return self.spec.expected_bars

    def period_end(self, start: datetime, periods: int = 1) -> datetime:
        """End of the bar window opening at ``start``; monthly windows follow the calendar."""

        if self is Granularity.MONTH_1:
            years, month = divmod(start.month - 1 + periods, 12)
            return start.replace(year=start.year + years, month=month + 1)
        return start + _PERIODS[self] * periods


@dataclass(frozen=True)
class GranularitySpec:
    """Scheduling cadence, ingestion lookback and gap heuristic for one stored granularity.

    Cron expressions use six fields (second minute hour day month day_of_week)
    and are evaluated in the exchange time zone.
    """

    lookback_days: int
    expected_bars: int
    primary_cron: str
    retry_cron: str | None = None


GRANULARITY_SPECS: dict[Granularity, GranularitySpec] = {
    Granularity.MINUTE_1: GranularitySpec(5, 390, "15 * * * * *"),
    Granularity.MINUTE_2: GranularitySpec(5, 195, "15 */2 * * * *"),
    Granularity.MINUTE_5: GranularitySpec(30, 78, "15 */5 * * * *", "15 1-59/5 * * * *"),
    Granularity.MINUTE_15: GranularitySpec(60, 26, "15 */15 * * * *", "15 1-59/15 * * * *"),
    Granularity.MINUTE_30: GranularitySpec(60, 13, "15 */30 * * * *", "15 1-59/30 * * * *"),
    Granularity.HOUR_1: GranularitySpec(180, 100, "15 0 * * * *", "15 1 * * * *"),
    Granularity.HOUR_2: GranularitySpec(180, 50, "15 0 */2 * * *", "15 1 */2 * * *"),
    Granularity.HOUR_4: GranularitySpec(180, 25, "15 0 */4 * * *", "15 1 */4 * * *"),
    Granularity.DAY_1: GranularitySpec(int(365 * 2.5), 250, "0 0 16 * * mon-fri"),
    Granularity.WEEK_1: GranularitySpec(365 * 5, 52, "0 0 16 * * fri"),
    Granularity.MONTH_1: GranularitySpec(365 * 10, 24, "0 0 16 28-31 * *"),
}

_SESSION_FAMILIES = frozenset({Granularity.DAY_1, Granularity.WEEK_1, Granularity.MONTH_1})

_PERIODS: dict[Granularity, timedelta] = {
    Granularity.MINUTE_1: timedelta(minutes=1),
    Granularity.MINUTE_2: timedelta(minutes=2),
    Granularity.MINUTE_5: timedelta(minutes=5),
    Granularity.MINUTE_15: timedelta(minutes=15),
    Granularity.MINUTE_30: timedelta(minutes=30),
    Granularity.HOUR_1: timedelta(hours=1),
    Granularity.HOUR_2: timedelta(hours=2),
    Granularity.HOUR_4: timedelta(hours=4),
    Granularity.DAY_1: timedelta(days=1),
    Granularity.WEEK_1: timedelta(weeks=1),
}

# Coarse data is cheaper to fetch and more valuable to have complete.
GAP_PRIORITY: tuple[Granularity, ...] = (
    Granularity.DAY_1,
    Granularity.WEEK_1,
    Granularity.MONTH_1,
    Granularity.HOUR_4,
    Granularity.HOUR_2,
    Granularity.HOUR_1,
    Granularity.MINUTE_30,
    Granularity.MINUTE_15,
    Granularity.MINUTE_5,
    Granularity.MINUTE_2,
    Granularity.MINUTE_1,
)

DERIVED_GRANULARITIES: dict[str, tuple[Granularity, int]] = {
    "3m": (Granularity.MINUTE_1, 3),
    "6m": (Granularity.MINUTE_2, 3),
    "10m": (Granularity.MINUTE_5, 2),
    "12m": (Granularity.MINUTE_2, 6),
    "20m": (Granularity.MINUTE_5, 4),
    "45m": (Granularity.MINUTE_15, 3),
    "3h": (Granularity.HOUR_1, 3),
    "6h": (Granularity.HOUR_2, 3),
    "8h": (Granularity.HOUR_4, 2),
    "12h": (Granularity.HOUR_4, 3),
    "2d": (Granularity.DAY_1, 2),
    "3d": (Granularity.DAY_1, 3),
    "4d": (Granularity.DAY_1, 4),
    "5d": (Granularity.DAY_1, 5),
    "2w": (Granularity.WEEK_1, 2),
    "3w": (Granularity.WEEK_1, 3),
    "2mo": (Granularity.MONTH_1, 2),
    "3mo": (Granularity.MONTH_1, 3),
    "4mo": (Granularity.MONTH_1, 4),
    "6mo": (Granularity.MONTH_1, 6),
    "12mo": (Granularity.MONTH_1, 12),
}

READ_WINDOW_DAYS: dict[str, int] = {
    "1m": 1,
    "2m": 1,
    "3m": 1,
    "6m": 1,
    "5m": 5,
    "10m": 5,
    "12m": 5,
    "20m": 10,
    "15m": 30,
    "30m": 30,
    "45m": 30,
    "1h": 90,
    "2h": 90,
    "3h": 90,
    "4h": 180,
    "6h": 180,
    "8h": 180,
    "12h": 180,
}


@dataclass(frozen=True)
class ResolvedGranularity:
    """A requested code mapped onto the stored granularity it is built from."""

    code: str
    source: Granularity
    multiplier: int

    @property
    def is_derived(self) -> bool:
        return self.multiplier > 1

    @property
    def is_intraday(self) -> bool:
        return self.source.is_intraday

    @property
    def read_window_days(self) -> int:
        if self.code in READ_WINDOW_DAYS:
            return READ_WINDOW_DAYS[self.code]
        return self.source.lookback_days


def resolve_granularity(code: str) -> ResolvedGranularity:
    """Map a stored or derived code to ``(source, multiplier)``."""

    normalized = code.strip().lower()
    try:
        stored = Granularity(normalized)
    except ValueError:
        if normalized not in DERIVED_GRANULARITIES:
            allowed = sorted([g.value for g in Granularity] + list(DERIVED_GRANULARITIES))
            raise DataValidationError(
                f"Unsupported granularity '{code}'",
                validation_errors={"granularity": code, "allowed": allowed},
            ) from None
        source, multiplier = DERIVED_GRANULARITIES[normalized]
        return ResolvedGranularity(normalized, source, multiplier)
    return ResolvedGranularity(normalized, stored, 1)


def parse_granularity(code: str) -> Granularity:
    """Parse a stored granularity code, rejecting derived ones."""

    try:
        return Granularity(code.strip().lower())
    except ValueError:
        raise DataValidationError(
            f"'{code}' is not a stored granularity",
            validation_errors={"granularity": code, "allowed": [g.value for g in Granularity]},
        ) from None


__all__ = [
    "DERIVED_GRANULARITIES",
    "GAP_PRIORITY",
    "GRANULARITY_SPECS",
    "READ_WINDOW_DAYS",
    "Granularity",
    "GranularitySpec",
    "ResolvedGranularity",
    "parse_granularity",
    "resolve_granularity",
]
