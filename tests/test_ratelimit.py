import asyncio

import httpx
import pytest

from latex_review.errors import RetryExhausted, TokenBudgetExceeded
from latex_review.ratelimit import MAX_BACKOFF_SECONDS, RateLimiter, RequestWrapper, TokenUsageTracker, is_retryable


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.github.com/x")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def _wrapper(clock: FakeClock, max_retries: int = 3) -> RequestWrapper:
    limiter = RateLimiter(100, 1.0, clock=clock, sleep=clock.sleep)
    return RequestWrapper(limiter, max_retries=max_retries, sleep=clock.sleep)


def test_rate_limiter_waits_when_bucket_is_empty() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 1.0, clock=clock, sleep=clock.sleep)

    async def _run() -> None:
        for _ in range(3):
            await limiter.acquire()

    asyncio.run(_run())
    assert clock.sleeps == [0.5]


def test_rate_limiter_refills_over_time() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 1.0, clock=clock, sleep=clock.sleep)

    async def _run() -> None:
        await limiter.acquire()
        await limiter.acquire()
        clock.now += 10
        await limiter.acquire()

    asyncio.run(_run())
    assert clock.sleeps == []
    assert limiter.tokens == pytest.approx(1.0)


def test_rate_limiter_survives_separate_event_loops() -> None:
    limiter = RateLimiter(10, 1.0)
    asyncio.run(limiter.acquire())
    asyncio.run(limiter.acquire())


def test_rate_limiter_rejects_bad_parameters() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0, 1.0)


def test_retryable_errors() -> None:
    assert is_retryable(httpx.ConnectError("refused"))
    assert is_retryable(_status_error(429))
    assert is_retryable(_status_error(502))
    assert not is_retryable(_status_error(404))
    assert not is_retryable(ValueError("nope"))


def test_with_retry_recovers_from_transient_errors() -> None:
    clock = FakeClock()
    calls = []

    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ConnectError("refused")
        return "ok"

    assert asyncio.run(_wrapper(clock).with_retry(flaky)) == "ok"
    assert len(calls) == 3
    assert len(clock.sleeps) == 2
    assert 0 <= clock.sleeps[0] <= 1.0
    assert 0 <= clock.sleeps[1] <= 2.0


def test_with_retry_does_not_retry_other_errors() -> None:
    clock = FakeClock()
    calls = []

    async def broken() -> str:
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        asyncio.run(_wrapper(clock).with_retry(broken))
    assert len(calls) == 1
    assert clock.sleeps == []


def test_with_retry_exhausts() -> None:
    clock = FakeClock()
    calls = []

    async def down() -> str:
        calls.append(1)
        raise _status_error(503)

    with pytest.raises(RetryExhausted) as excinfo:
        asyncio.run(_wrapper(clock, max_retries=2).with_retry(down))

    assert len(calls) == 3
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


def test_backoff_is_capped() -> None:
    clock = FakeClock()
    limiter = RateLimiter(100, 1.0, clock=clock, sleep=clock.sleep)
    wrapper = RequestWrapper(limiter, max_retries=4, base_delay=100.0, sleep=clock.sleep)

    async def down() -> str:
        raise httpx.ConnectError("refused")

    with pytest.raises(RetryExhausted):
        asyncio.run(wrapper.with_retry(down))
    assert len(clock.sleeps) == 4
    assert all(0 <= s <= MAX_BACKOFF_SECONDS for s in clock.sleeps)


def test_tracker_counts_tokens() -> None:
    tracker = TokenUsageTracker(max_total=1000)
    tracker.record_usage(300)
    tracker.record_usage(200)
    assert tracker.stats() == {"used": 500, "remaining": 500, "requests_last_minute": 2}


def test_tracker_enforces_budget() -> None:
    tracker = TokenUsageTracker(max_total=100)
    tracker.record_usage(100)
    with pytest.raises(TokenBudgetExceeded, match="Token limit exceeded"):
        tracker.record_usage(1)


def test_throttled_requests_never_trip_the_tracker() -> None:
    clock = FakeClock()
    limiter = RateLimiter(10, 60.0, clock=clock, sleep=clock.sleep)
    tracker = TokenUsageTracker(max_total=10**9, clock=clock)

    async def _run() -> None:
        for _ in range(25):
            await limiter.acquire()
            tracker.record_usage(1)

    asyncio.run(_run())
    assert tracker.stats()["used"] == 25
    assert clock.sleeps


def test_tracker_window_slides() -> None:
    clock = FakeClock()
    tracker = TokenUsageTracker(max_total=10_000, clock=clock)
    tracker.record_usage(1)
    tracker.record_usage(1)
    clock.now = 61.0
    tracker.record_usage(1)
    assert tracker.stats()["requests_last_minute"] == 1
