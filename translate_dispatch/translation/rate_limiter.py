"""
Per-provider sliding-window rate limiter.

Each provider id owns an independent bucket of request timestamps. A caller
for provider A never waits on provider B's bucket.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from translate_dispatch.ai.providers import is_finite_limit
from translate_dispatch.config import RATE_LIMIT_WINDOW_MS
from translate_dispatch.logger import get_logger

logger = get_logger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """Sliding 60 s window throttle keyed by provider id."""

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        window_ms: float = RATE_LIMIT_WINDOW_MS,
    ):
        """
        Args:
            clock: Returns the current time in milliseconds
            sleep: Awaitable sleep taking seconds (asyncio.sleep by default)
            window_ms: Window length
        """
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self.window_ms = window_ms
        self._buckets: Dict[str, Deque[float]] = {}

    def _bucket(self, provider_id: str) -> Deque[float]:
        bucket = self._buckets.get(provider_id)
        if bucket is None:
            bucket = deque()
            self._buckets[provider_id] = bucket
        return bucket

    def _evict(self, bucket: Deque[float], now: float) -> None:
        while bucket and now - bucket[0] >= self.window_ms:
            bucket.popleft()

    async def acquire(self, provider_id: str, rpm: float) -> None:
        """Wait until ``provider_id`` may send another request, then record it."""
        if not is_finite_limit(rpm):
            return

        bucket = self._bucket(provider_id)
        while True:
            now = self._clock()
            self._evict(bucket, now)
            if len(bucket) < rpm:
                break
            wait_ms = self.window_ms - (now - bucket[0])
            if wait_ms > 0:
                logger.debug(f"Provider '{provider_id}' throttled for {wait_ms:.0f} ms ({len(bucket)}/{rpm} in window)")
                await self._sleep(wait_ms / 1000)

        # Record the actual send time, read after any wait
        bucket.append(self._clock())

    def pending(self, provider_id: str) -> int:
        """Number of requests recorded for ``provider_id`` inside the current window."""
        bucket = self._buckets.get(provider_id)
        if not bucket:
            return 0
        self._evict(bucket, self._clock())
        return len(bucket)

    def timestamps(self, provider_id: str):
        return list(self._buckets.get(provider_id, ()))

    def reset(self, provider_id: Optional[str] = None) -> None:
        if provider_id is None:
            self._buckets.clear()
        else:
            self._buckets.pop(provider_id, None)
