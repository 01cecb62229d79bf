"""Rate limiting for asynchronous operation polling.

Mutating Compute Engine calls return a long-running operation that is
polled until done. Every poll waits a fixed minimum interval and then
passes a token bucket, so a reconcile that creates many resources cannot
hammer the operations endpoint. Callers must tolerate the added latency.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from .config import (
    DEFAULT_OPERATION_POLL_BURST,
    DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
    DEFAULT_OPERATION_POLL_QPS,
)

logger = logging.getLogger(__name__)


class OperationRateLimiter:
    """Minimum-interval plus token-bucket limiter for operation polls."""

    def __init__(
        self,
        qps: float = DEFAULT_OPERATION_POLL_QPS,
        burst: int = DEFAULT_OPERATION_POLL_BURST,
        minimum_interval: float = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if qps <= 0:
            raise ValueError("qps must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self._qps = qps
        self._burst = burst
        self._minimum_interval = minimum_interval
        self._clock = clock
        self._sleep = sleep

        self._tokens = float(burst)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self._burst), self._tokens + elapsed * self._qps)
        self._last_refill = now

    async def accept(self) -> None:
        """Block until one poll may be issued."""
        if self._minimum_interval > 0:
            await self._sleep(self._minimum_interval)

        async with self._lock:
            self._refill()
            if self._tokens < 1:
                wait = (1 - self._tokens) / self._qps
                logger.debug("Operation poll throttled", extra={"wait_seconds": wait})
                await self._sleep(wait)
                self._refill()
            self._tokens = max(0.0, self._tokens - 1)
