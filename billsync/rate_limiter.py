"""
Rate Limiters

Bounds how fast we call provider APIs (TokenBucketRateLimiter) and how
hard one client can drive the HTTP API (RequestThrottle).

DESIGN DECISION: The bucket starts full with `rate` tokens and refills
`rate` tokens per `interval_seconds`, in whole tokens only. Fractional
refill keeps accumulating until at least one whole token is due.

CRITICAL: When the bucket is empty the waiter sleeps WHILE HOLDING the
lock. Concurrent callers therefore queue behind it and are released one
at a time, which is what keeps the effective call rate at or below
`rate / interval_seconds`.
"""

import asyncio
import math
import time
from typing import Awaitable, Callable


class TokenBucketRateLimiter:
    """
    Async token bucket shared by the fetch and refresh orchestrators.

    `clock` and `sleep` are injectable so tests can drive time.
    """

    def __init__(
        self,
        rate: int,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._rate = rate
        self._interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._tokens = rate
        self._last_update = clock()

    @property
    def rate(self) -> int:
        return self._rate

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def available_tokens(self) -> int:
        """Tokens in the bucket as of the last refill. Read-only."""
        return self._tokens

    @property
    def wait_interval(self) -> float:
        """How long an empty bucket makes the next caller wait."""
        return self._interval / self._rate

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_update
        to_add = math.floor(elapsed * self._rate / self._interval)
        if to_add > 0:
            self._tokens = min(self._rate, self._tokens + to_add)
            self._last_update = now

    async def wait(self) -> None:
        """
        Block until a token is available, then consume it.

        Cancelling the caller during the wait raises
        asyncio.CancelledError with no token consumed.
        """
        async with self._lock:
            self._refill()

            if self._tokens >= 1:
                self._tokens -= 1
                return

            await self._sleep(self.wait_interval)

            # The waiter is granted exactly the one token it waited for
            self._tokens = 0
            self._last_update = self._clock()


class RequestRateLimitExceeded(Exception):
    """A client sent more requests than its window allows."""

    def __init__(self, client_key: str, limit: int, window_seconds: float):
        self.client_key = client_key
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(f"Rate limit exceeded: {limit} requests per {window_seconds:g}s")


class RequestThrottle:
    """
    Fixed-window request counter keyed by client, for the HTTP API.

    The first request of a client opens a window of `window_seconds`;
    requests past `limit` inside that window are rejected until it
    expires. Unlike the token bucket it never waits.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        # client key -> (count, window expiry)
        self._windows: dict[str, tuple[int, float]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def hit(self, client_key: str) -> int:
        """
        Count one request for a client.

        Returns:
            The client's request count in the current window

        Raises:
            RequestRateLimitExceeded: If the count is past the limit
        """
        now = self._clock()
        count, expires_at = self._windows.get(client_key, (0, now))
        if now >= expires_at:
            count, expires_at = 0, now + self._window

        count += 1
        self._windows[client_key] = (count, expires_at)

        if count > self._limit:
            raise RequestRateLimitExceeded(client_key, self._limit, self._window)
        return count
