"""
Throttling for outbound calls: a token bucket, a tenacity retry wrapper with
jittered exponential backoff, and a running tally of LLM token usage.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anthropic
import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from latex_review.errors import RetryExhausted, TokenBudgetExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 30.0


class RateLimiter:
    """Token bucket refilled continuously at tokens_per_interval per interval seconds."""

    def __init__(
        self,
        tokens_per_interval: int,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if tokens_per_interval <= 0 or interval <= 0:
            raise ValueError("tokens_per_interval and interval must be positive")
        self.tokens_per_interval = tokens_per_interval
        self.interval = interval
        self.tokens = float(tokens_per_interval)
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self.tokens = min(
            float(self.tokens_per_interval),
            self.tokens + elapsed / self.interval * self.tokens_per_interval,
        )
        self._last_refill = now

    async def acquire(self) -> None:
        # asyncio.Lock is bound to the loop it first waits on
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                await self._sleep(self.interval / self.tokens_per_interval)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or 500 <= status < 600
    if isinstance(exc, (anthropic.RateLimitError, anthropic.APIConnectionError)):
        return True
    if isinstance(exc, anthropic.APIStatusError):
        return 500 <= exc.status_code < 600
    return False


class RequestWrapper:
    """Rate-limited calls with tenacity retries on transient failures."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.max_retries = max_retries
        self.wait = wait_random_exponential(multiplier=base_delay, max=MAX_BACKOFF_SECONDS)
        self._sleep = sleep

    async def with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Call fn() under the rate limiter, retrying transient failures."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self.wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self.rate_limiter.acquire()
                    return await fn()
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            raise RetryExhausted(self.max_retries + 1, last_error) from last_error


class TokenUsageTracker:
    """Running token total against a budget; request pacing is the RateLimiter's job."""

    def __init__(self, max_total: int = 16000, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_total = max_total
        self.used = 0
        self._clock = clock
        self._requests: list[float] = []

    def record_usage(self, tokens: int) -> None:
        now = self._clock()
        self.used += tokens
        self._requests = [t for t in self._requests if t > now - 60] + [now]

        if self.used > self.max_total:
            raise TokenBudgetExceeded(f"Token limit exceeded: {self.used} > {self.max_total}")

    def stats(self) -> dict[str, int]:
        return {
            "used": self.used,
            "remaining": self.max_total - self.used,
            "requests_last_minute": len(self._requests),
        }
