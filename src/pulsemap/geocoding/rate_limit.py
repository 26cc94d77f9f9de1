"""Minimum-interval gate for outbound requests to a rate-limited service."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Self


class RateLimiter:
    """Serialize outbound requests and space them by a minimum interval.

    The interval is measured from the moment the previous request
    *finished*, so slow responses never let two requests land closer
    together than ``min_interval``. Use as an async context manager
    around the request::

        async with limiter:
            response = await client.get(...)

    ``clock`` and ``sleep`` are injectable so tests can drive a fake clock
    without waiting in real time.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_finished: float | None = None

    def delay_needed(self) -> float:
        """Seconds to wait before the next request may start."""
        if self._last_finished is None:
            return 0.0
        elapsed = self._clock() - self._last_finished
        return max(0.0, self.min_interval - elapsed)

    async def __aenter__(self) -> Self:
        await self._lock.acquire()
        try:
            wait = self.delay_needed()
            if wait > 0:
                await self._sleep(wait)
        except BaseException:
            self._lock.release()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._last_finished = self._clock()
        self._lock.release()
