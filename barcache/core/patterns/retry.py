"""Exponential backoff retry for short local contention failures."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from barcache.core.exceptions import RateLimitError, StorageLockError
from barcache.core.logging import logger

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


class RetryState(Enum):
    """Lifecycle of one retry execution."""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """Retry configuration."""

    max_attempts: int = 3
    base_delay: float = 0.1  # seconds
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = False
    retry_on_exceptions: list[type] = field(default_factory=lambda: [StorageLockError])
    skip_on_exceptions: list[type] = field(default_factory=lambda: [RateLimitError])


class ExponentialBackoffRetry:
    """Runs an awaitable factory, sleeping ``base_delay * base**i`` between attempts."""

    def __init__(self, config: RetryConfig, *, sleep: Sleeper | None = None):
        self.config = config
        self._sleep = sleep or asyncio.sleep
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception: Exception | None = None

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` applying the retry policy.

        Raises:
            Exception: the last failure once attempts are exhausted, or any
                failure that is not retryable.
        """
        self.state = RetryState.RUNNING
        self.attempt_count = 0
        self.total_delay = 0.0

        while True:
            self.attempt_count += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                self.last_exception = exc
                if any(isinstance(exc, exc_type) for exc_type in self.config.skip_on_exceptions):
                    self.state = RetryState.FAILED
                    raise
                should_retry = any(isinstance(exc, exc_type) for exc_type in self.config.retry_on_exceptions)
                if not should_retry or self.attempt_count >= self.config.max_attempts:
                    self.state = RetryState.FAILED
                    raise

                delay = self._calculate_delay(self.attempt_count - 1)
                logger.warning(
                    "retry_scheduled",
                    attempt=self.attempt_count,
                    delay_seconds=delay,
                    error=str(exc),
                )
                await self._sleep(delay)
                self.total_delay += delay
            else:
                self.state = RetryState.COMPLETED
                return result

    def _calculate_delay(self, attempt_number: int) -> float:
        if attempt_number < 0:
            return 0.0
        delay = self.config.base_delay * (self.config.exponential_base**attempt_number)
        if self.config.jitter:
            jitter_range = min(delay * 0.1, 1.0)
            delay += random.uniform(-jitter_range, jitter_range)
        return min(delay, self.config.max_delay)

    def get_stats(self) -> dict[str, Any]:
        return {
            "attempts": self.attempt_count,
            "max_attempts": self.config.max_attempts,
            "total_delay": self.total_delay,
            "state": self.state.value,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }


__all__ = ["ExponentialBackoffRetry", "RetryConfig", "RetryState", "Sleeper"]
