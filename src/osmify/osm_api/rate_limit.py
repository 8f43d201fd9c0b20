"""Client-side request pacing.

The public OSM API and Overpass instances both throttle aggressive clients,
so every request first takes a token from a bucket refilled at
``OsmifyConfig.rate_limit_rps``.  :class:`TokenBucket` blocks the calling
thread; :class:`AsyncTokenBucket` awaits.
"""

from __future__ import annotations

import asyncio
import threading
import time


class _Bucket:
    """Refill arithmetic shared by both buckets.  Not locked."""

    __slots__ = ("burst", "last_refill", "rate", "tokens")

    def __init__(self, rate_rps: float, burst: int) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")
        self.rate: float = rate_rps
        self.burst: int = burst
        self.tokens: float = float(burst)
        self.last_refill: float = time.monotonic()

    def _take(self, tokens: int) -> float:
        """Take *tokens* and return how long the caller must wait for them."""
        now = time.monotonic()
        self.tokens = min(self.burst, self.tokens + (now - self.last_refill) * self.rate)
        self.last_refill = now
        if self.tokens >= tokens:
            self.tokens -= tokens
            return 0.0
        wait = (tokens - self.tokens) / self.rate
        self.tokens = 0.0
        return wait


class TokenBucket(_Bucket):
    """Thread-safe token bucket.

    Parameters
    ----------
    rate_rps:
        Refill rate in tokens per second.
    burst:
        Bucket capacity.
    """

    __slots__ = ("_lock",)

    def __init__(self, rate_rps: float, burst: int = 4) -> None:
        super().__init__(rate_rps, burst)
        self._lock = threading.Lock()

    def acquire(self, tokens: int = 1) -> float:
        """Take *tokens*, sleeping if the bucket is empty.

        Returns the seconds slept (``0.0`` when no wait was needed).
        """
        with self._lock:
            wait = self._take(tokens)
        # Sleep outside the lock.
        if wait > 0:
            time.sleep(wait)
        return wait


class AsyncTokenBucket(_Bucket):
    """:class:`TokenBucket` for coroutines, guarded by an :class:`asyncio.Lock`."""

    __slots__ = ("_lock",)

    def __init__(self, rate_rps: float, burst: int = 4) -> None:
        super().__init__(rate_rps, burst)
        self._lock = asyncio.Lock()

    async def acquire(self, tokens: int = 1) -> float:
        async with self._lock:
            wait = self._take(tokens)
        if wait > 0:
            await asyncio.sleep(wait)
        return wait
