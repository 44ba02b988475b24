"""Bar models shared by vendors, the store and readers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class Bar(BaseModel):
    """One OHLCV bar; ``ts`` is the bar open time in UTC."""

    model_config = ConfigDict(frozen=True)

    ts: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(ge=0)
    vwap: float | None = None
    trade_count: int | None = None
    source: str | None = None

    @field_validator("ts")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @model_validator(mode="after")
    def _check_range(self) -> "Bar":
        if self.high < max(self.open, self.close):
            raise ValueError("high must be >= max(open, close)")
        if self.low > min(self.open, self.close):
            raise ValueError("low must be <= min(open, close)")
        return self

    @field_serializer("ts", when_used="json")
    def _serialize_ts(self, value: datetime) -> str:
        return value.isoformat()


@dataclass(frozen=True)
class BarSeries:
    """Bars returned to readers for one symbol and requested granularity."""

    symbol: str
    granularity: str
    bars: tuple[Bar, ...]
    source_granularity: str
    multiplier: int = 1
    metadata: dict[str, object] = field(default_factory=dict)

    @property
    def latest(self) -> Bar | None:
        return self.bars[-1] if self.bars else None


__all__ = ["Bar", "BarSeries"]
