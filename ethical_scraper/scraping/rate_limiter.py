"""
Politeness delay before navigation and per-client request limiting.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable


class PolitenessDelay:
    """
    Sleeps before every navigation; the longer of the configured delay and
    the robots.txt crawl-delay wins.
    """

    def __init__(self, *, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    @staticmethod
    def effective_delay(configured_ms: int, crawl_delay_seconds: float | None = None) -> float:
        delay_seconds = max(0.0, configured_ms / 1000)
        if crawl_delay_seconds is not None:
            delay_seconds = max(delay_seconds, max(0.0, crawl_delay_seconds))
        return delay_seconds

    async def wait(self, delay_seconds: float) -> None:
        if delay_seconds > 0:
            await self._sleep(delay_seconds)


class FixedWindowRateLimiter:
    """
    Allows at most `max_requests` per client key in each fixed window.
    """

    def __init__(
        self,
        *,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max(1, max_requests)
        self._window_seconds = max(0.001, window_seconds)
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, client_key: str) -> tuple[bool, int]:
        """
        Count one request and return `(allowed, retry_after_seconds)`.
        """

        with self._lock:
            now = self._clock()
            window_start, count = self._windows.get(client_key, (now, 0))
            if now - window_start >= self._window_seconds:
                window_start, count = now, 0

            if count >= self._max_requests:
                remaining = self._window_seconds - (now - window_start)
                return False, max(1, int(remaining + 0.999))

            self._windows[client_key] = (window_start, count + 1)
            return True, 0

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
