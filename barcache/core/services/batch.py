"""Sequential batch execution over large symbol sets."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from barcache.core.logging import logger
from barcache.core.patterns.retry import Sleeper

T = TypeVar("T")
R = TypeVar("R")

BatchAction = Callable[[list[T], int], Awaitable[R]]
BatchCallback = Callable[["BatchOutcome[R]"], Awaitable[None] | None]


def split_into_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``items`` into ordered chunks of ``batch_size``; the last may be shorter."""

    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [list(items[index : index + batch_size]) for index in range(0, len(items), batch_size)]


@dataclass(frozen=True)
class BatchError:
    batch_index: int
    items: tuple[Any, ...]
    error: BaseException


@dataclass(frozen=True)
class BatchOutcome(Generic[R]):
    batch_index: int
    total_batches: int
    items: tuple[Any, ...]
    result: R | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary(Generic[R]):
    """Per-run accounting returned by :meth:`BatchProcessor.process`."""

    total_batches: int = 0
    successful_batches: int = 0
    failed_batches: int = 0
    processed_items: int = 0
    errors: list[BatchError] = field(default_factory=list)
    results: list[R] = field(default_factory=list)
    aborted: bool = False


class BatchProcessor:
    """Runs an async action over fixed-size chunks strictly one after another.

    A delay is inserted between chunks but not after the last one. A failed
    chunk is recorded and the next chunk still runs unless ``stop_on_error``
    is set, in which case the failure is re-raised.
    """

    def __init__(
        self,
        *,
        batch_size: int = 50,
        inter_batch_delay: float = 0.5,
        sleep: Sleeper | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep or asyncio.sleep

    async def process(
        self,
        items: Sequence[T],
        action: BatchAction[T, R],
        *,
        stop_on_error: bool = False,
        on_batch_complete: BatchCallback[R] | None = None,
        abort_on: tuple[type[BaseException], ...] = (),
    ) -> BatchSummary[R]:
        """Run ``action(batch, index)`` for every chunk.

        ``abort_on`` lets the caller end the run early (without raising) when a
        chunk fails with one of the given exception types.
        """
        batches = split_into_batches(items, self.batch_size)
        summary: BatchSummary[R] = BatchSummary(total_batches=len(batches))
        logger.debug("batch_run_started", items=len(items), batches=len(batches), batch_size=self.batch_size)

        for index, batch in enumerate(batches):
            try:
                result = await action(batch, index)
            except Exception as exc:
                summary.failed_batches += 1
                summary.errors.append(BatchError(index, tuple(batch), exc))
                logger.warning("batch_failed", batch_index=index, size=len(batch), error=str(exc))
                outcome: BatchOutcome[R] = BatchOutcome(index, len(batches), tuple(batch), error=exc)
                await self._notify(on_batch_complete, outcome)
                if stop_on_error:
                    raise
                if abort_on and isinstance(exc, abort_on):
                    summary.aborted = True
                    logger.warning("batch_run_aborted", batch_index=index, remaining=len(batches) - index - 1)
                    break
            else:
                summary.successful_batches += 1
                summary.processed_items += len(batch)
                summary.results.append(result)
                await self._notify(on_batch_complete, BatchOutcome(index, len(batches), tuple(batch), result=result))

            if index < len(batches) - 1 and self.inter_batch_delay > 0:
                await self._sleep(self.inter_batch_delay)

        return summary

    @staticmethod
    async def _notify(callback: BatchCallback[R] | None, outcome: BatchOutcome[R]) -> None:
        if callback is None:
            return
        maybe_awaitable = callback(outcome)
        if asyncio.iscoroutine(maybe_awaitable):
            await maybe_awaitable


__all__ = [
    "BatchError",
    "BatchOutcome",
    "BatchProcessor",
    "BatchSummary",
    "split_into_batches",
]
