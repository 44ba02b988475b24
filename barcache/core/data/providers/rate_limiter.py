"""Rolling one-minute request window with hard reset."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable

from barcache.core.logging import logger
from barcache.core.patterns.retry import Sleeper


class RollingWindowRateLimiter:
    """Records request timestamps inside a rolling window.

    When the window is full the caller waits until the oldest timestamp
    leaves the window (plus ``padding``) and the whole window is then cleared,
    so consecutive calls do not stall one by one near the limit.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        *,
        padding_seconds: float = 1.0,
        clock: Callable[[], float] | None = None,
        sleep: Sleeper | None = None,
        name: str = "vendor",
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.padding_seconds = padding_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._name = name
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def in_window(self) -> int:
        return len(self._timestamps)

    def _expire(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def acquire(self) -> float:
        """Wait for a slot and record the request; returns seconds waited."""

        async with self._lock:
            now = self._clock()
            self._expire(now)
            waited = 0.0
            if len(self._timestamps) >= self.max_requests:
                waited = self.window_seconds - (now - self._timestamps[0]) + self.padding_seconds
                logger.info("rate_limit_window_full", vendor=self._name, wait_seconds=round(waited, 2))
                await self._sleep(waited)
                self._timestamps.clear()
            self._timestamps.append(self._clock())
            return waited

    def reset(self) -> None:
        self._timestamps.clear()


__all__ = ["RollingWindowRateLimiter"]
