import asyncio
import time
from typing import Awaitable, Callable


class MinGapRateLimiter:
    """
    Enforces a minimum wall-clock gap between the starts of outbound calls.

    Callers queue on an asyncio lock and sleep off the remaining gap, so any
    number of workers sharing one limiter start their calls at least
    `min_gap` seconds apart.
    """

    min_gap: float
    _last_request_at: float | None

    def __init__(
        self,
        min_gap: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_gap = max(0.0, min_gap)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at = None

    async def wait(self):
        async with self._lock:
            if self._last_request_at is not None:
                wait_for = self.min_gap - (self._clock() - self._last_request_at)
                if wait_for > 0:
                    await self._sleep(wait_for)
            self._last_request_at = self._clock()
