"""Tests for the rolling-window rate limiter."""

import pytest
from helpers import RecordingSleep

from barcache.core.data.providers import RollingWindowRateLimiter


class ManualClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def monotonic() -> ManualClock:
    return ManualClock()


@pytest.mark.asyncio
async def test_calls_under_limit_do_not_wait(monotonic):
    sleep = RecordingSleep()
    limiter = RollingWindowRateLimiter(3, 60, clock=monotonic, sleep=sleep)

    for _ in range(3):
        assert await limiter.acquire() == 0.0

    assert limiter.in_window == 3
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_full_window_waits_for_oldest_then_clears(monotonic):
    sleep = RecordingSleep()
    limiter = RollingWindowRateLimiter(2, 60, padding_seconds=1, clock=monotonic, sleep=sleep)
    await limiter.acquire()
    monotonic.now += 10
    await limiter.acquire()
    monotonic.now += 5

    waited = await limiter.acquire()

    assert waited == pytest.approx(60 - 15 + 1)
    assert sleep.delays == [pytest.approx(46)]
    # Hard reset: only the call that just went through remains.
    assert limiter.in_window == 1


@pytest.mark.asyncio
async def test_old_timestamps_expire(monotonic):
    sleep = RecordingSleep()
    limiter = RollingWindowRateLimiter(2, 60, clock=monotonic, sleep=sleep)
    await limiter.acquire()
    await limiter.acquire()
    monotonic.now += 61

    assert await limiter.acquire() == 0.0
    assert limiter.in_window == 1


def test_reset_and_validation():
    limiter = RollingWindowRateLimiter(1, 60)
    limiter.reset()
    assert limiter.in_window == 0
    with pytest.raises(ValueError):
        RollingWindowRateLimiter(0, 60)
