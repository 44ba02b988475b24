"""Combine consecutive stored bars into coarser derived bars."""

from __future__ import annotations

import math
from collections.abc import Sequence

from barcache.core.logging import logger
from barcache.core.models.bars import Bar


def _extreme(chunk: Sequence[Bar], field: str, pick) -> float:
    values = [getattr(bar, field) for bar in chunk]
    if all(math.isfinite(value) for value in values):
        return pick(values)
    fallback = getattr(chunk[0], field)
    logger.warning("aggregation_value_fallback", field=field, ts=chunk[0].ts, fallback=fallback)
    return fallback


def _combine(chunk: Sequence[Bar]) -> Bar:
    first, last = chunk[0], chunk[-1]
    trade_counts = [bar.trade_count for bar in chunk]
    return Bar.model_construct(
        ts=first.ts,
        open=first.open,
        high=_extreme(chunk, "high", max),
        low=_extreme(chunk, "low", min),
        close=last.close,
        volume=sum(bar.volume for bar in chunk),
        vwap=None,
        trade_count=sum(trade_counts) if all(count is not None for count in trade_counts) else None,
        source=first.source,
    )


def aggregate_bars(bars: Sequence[Bar], multiplier: int) -> list[Bar]:
    """Fold time-ordered ``bars`` into chunks of ``multiplier``.

    A trailing partial chunk is still emitted. ``multiplier == 1`` returns the
    bars unchanged. A non-finite high or low inside a chunk falls back to the
    chunk's first bar value and logs ``aggregation_value_fallback``.
    """

    if multiplier < 1:
        raise ValueError("multiplier must be >= 1")
    if multiplier == 1:
        return list(bars)
    return [_combine(bars[index : index + multiplier]) for index in range(0, len(bars), multiplier)]


__all__ = ["aggregate_bars"]
