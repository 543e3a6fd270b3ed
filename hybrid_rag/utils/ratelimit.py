"""
Token Bucket Rate Limiter

Gates outbound embedding calls during pending drains. The bucket starts
full, refills continuously at `rate` tokens per second up to `burst`, and
each acquire() takes one token, sleeping until one is available.

The clock and sleep function are injectable so tests can run on virtual
time.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

# Refill arithmetic can land a hair below a whole token
TOKEN_EPSILON = 1e-9


class TokenBucket:
    """
    Async token bucket.

    Args:
        rate: Tokens added per second (requests per second)
        burst: Bucket capacity
        clock: Monotonic time source in seconds
        sleep: Coroutine used to wait for a token
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now

    async def acquire(self) -> None:
        """Wait until a token is available and take it."""
        # Waiters queue on the lock so tokens are handed out in arrival order
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0 - TOKEN_EPSILON:
                    self._tokens = max(0.0, self._tokens - 1.0)
                    return
                await self._sleep((1.0 - self._tokens) / self.rate)

    @property
    def available(self) -> float:
        """Tokens available right now (after refill)."""
        self._refill()
        return self._tokens
