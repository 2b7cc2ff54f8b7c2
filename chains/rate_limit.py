"""
chains/rate_limit.py - Request-rate limiting for outbound RPC attempts.

Fixed one-second window: at most N attempts start per window, later
callers wait for the next window. Waiters are served in arrival order.
"""

import asyncio
import time
from typing import Callable, Optional

from core.constants import DEFAULT_REQUEST_WINDOW_MS


class RateLimiter:
    """Fixed-window limiter shared by every attempt an executor makes."""

    def __init__(
        self,
        max_requests: Optional[int],
        window_ms: int = DEFAULT_REQUEST_WINDOW_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_ms / 1000
        self._clock = clock
        self._window_start = clock()
        self._count = 0
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.max_requests and self.max_requests > 0)

    async def acquire(self) -> None:
        """Wait until a request slot is free in the current window."""
        if not self.enabled:
            return

        async with self._lock:
            while True:
                now = self._clock()
                elapsed = now - self._window_start
                if elapsed >= self.window_seconds:
                    self._window_start = now
                    self._count = 0
                    elapsed = 0.0
                if self._count < self.max_requests:
                    self._count += 1
                    return
                await asyncio.sleep(self.window_seconds - elapsed)
