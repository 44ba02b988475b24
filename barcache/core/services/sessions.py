"""Exchange regular-session clock."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

DEFAULT_WEEKDAYS = frozenset({0, 1, 2, 3, 4})


@dataclass(frozen=True)
class MarketSession:
    """Fixed weekday/time-of-day trading window in the exchange time zone.

    Bounds are inclusive and checked to the minute, so any time from 09:30:00
    through 16:00:59 counts as open.
    """

    timezone: str = "America/New_York"
    open_time: time = time(9, 30)
    close_time: time = time(16, 0)
    weekdays: frozenset[int] = DEFAULT_WEEKDAYS

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def to_local(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self.zone)

    def is_open(self, now: datetime) -> bool:
        local = self.to_local(now)
        if local.weekday() not in self.weekdays:
            return False
        minute = local.time().replace(second=0, microsecond=0)
        return self.open_time <= minute <= self.close_time

    def is_regular_hours(self, ts: datetime) -> bool:
        """Whether a bar starting at ``ts`` falls inside the regular session window."""

        local = self.to_local(ts)
        return self.open_time <= local.time() <= self.close_time

    def last_close(self, now: datetime) -> datetime:
        """Most recent session close at or before ``now``, in UTC."""

        local = self.to_local(now)
        candidate = datetime.combine(local.date(), self.close_time, tzinfo=self.zone)
        if local.weekday() in self.weekdays and local >= candidate:
            return candidate.astimezone(UTC)
        day = local.date() - timedelta(days=1)
        while day.weekday() not in self.weekdays:
            day -= timedelta(days=1)
        return datetime.combine(day, self.close_time, tzinfo=self.zone).astimezone(UTC)


__all__ = ["MarketSession"]
