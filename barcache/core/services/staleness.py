"""Freshness policy for cached bars."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from barcache.core.models.granularity import resolve_granularity
from barcache.core.services.sessions import MarketSession


@dataclass(frozen=True)
class StalenessDecision:
    age_minutes: float
    threshold_minutes: float
    stale: bool
    reason: str


class StalenessPolicy:
    """Decides whether the newest cached bar is recent enough to serve.

    Intraday age runs from the bar's open time to ``now``, or to the last
    session close while the exchange is shut. Daily, weekly and monthly age
    runs from the end of the bar's window and is compared with a multi-day
    threshold. While the session is closed the threshold is raised to at least
    ``closed_session_floor_minutes``.
    """

    def __init__(
        self,
        *,
        intraday_threshold_minutes: float = 1440,
        daily_threshold_minutes: float = 4 * 24 * 60,
        closed_session_floor_minutes: float = 24 * 60,
        recent_override: timedelta = timedelta(minutes=2),
        session: MarketSession | None = None,
    ) -> None:
        self.intraday_threshold_minutes = intraday_threshold_minutes
        self.daily_threshold_minutes = daily_threshold_minutes
        self.closed_session_floor_minutes = closed_session_floor_minutes
        self.recent_override = recent_override
        self.session = session or MarketSession()

    def threshold_for(self, granularity: str, *, session_open: bool) -> float:
        resolved = resolve_granularity(granularity)
        threshold = self.intraday_threshold_minutes if resolved.is_intraday else self.daily_threshold_minutes
        if not session_open:
            threshold = max(threshold, self.closed_session_floor_minutes)
        return threshold

    def age_minutes(self, granularity: str, latest_ts: datetime, now: datetime, *, session_open: bool) -> float:
        """Minutes the cache has been missing data it could already have.

        ``latest_ts`` is the open time of the newest stored bar of the source
        granularity.
        """

        resolved = resolve_granularity(granularity)
        if resolved.is_intraday:
            since = latest_ts
            until = now if session_open else min(now, self.session.last_close(now))
        else:
            since = min(resolved.source.period_end(latest_ts), now)
            until = now
        return max(0.0, (until - since).total_seconds() / 60)

    def evaluate(
        self,
        granularity: str,
        latest_ts: datetime,
        now: datetime,
        *,
        session_open: bool,
        recently_collected_at: datetime | None = None,
    ) -> StalenessDecision:
        age_minutes = self.age_minutes(granularity, latest_ts, now, session_open=session_open)
        threshold = self.threshold_for(granularity, session_open=session_open)

        if recently_collected_at is not None and now - recently_collected_at < self.recent_override:
            return StalenessDecision(age_minutes, threshold, False, "recently_collected")
        if age_minutes > threshold:
            return StalenessDecision(age_minutes, threshold, True, "age_exceeds_threshold")
        return StalenessDecision(age_minutes, threshold, False, "within_threshold")


class RecentCollections:
    """Remembers when each symbol was last ingested successfully."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None, retention: timedelta = timedelta(hours=1)) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._retention = retention
        self._seen: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def mark(self, symbol: str) -> None:
        now = self._clock()
        with self._lock:
            self._seen[symbol] = now
            cutoff = now - self._retention
            for stale_symbol in [s for s, at in self._seen.items() if at < cutoff]:
                del self._seen[stale_symbol]

    def last_collected(self, symbol: str) -> datetime | None:
        with self._lock:
            return self._seen.get(symbol)


__all__ = ["RecentCollections", "StalenessDecision", "StalenessPolicy"]
