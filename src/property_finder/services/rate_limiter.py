"""Pacing primitive for outbound calls to one external service."""

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class RateLimiter:
    """Dispatch tasks at most `requests_per_second` times per second.

    All callers of one instance share a single FIFO queue, so concurrent
    callers cannot slip past the interval. Results are never cached.
    """

    def __init__(self, requests_per_second: float, clock: Callable[[], float] = time.monotonic):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.min_interval = 1.0 / requests_per_second
        self._clock = clock
        self._last_dispatch: float | None = None
        self._queue = asyncio.Lock()

    async def schedule(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run `task` once its dispatch slot comes up and return its result."""
        async with self._queue:
            if self._last_dispatch is not None:
                elapsed = self._clock() - self._last_dispatch
                if elapsed < self.min_interval:
                    await asyncio.sleep(self.min_interval - elapsed)
            self._last_dispatch = self._clock()
        # Only dispatch is serialized; a failing task does not hold the queue
        return await task()
