"""Sliding-window rate limiting for outbound provider calls."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most ``max_requests`` calls per rolling ``window_ms`` milliseconds."""

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.name = name
        self._max_requests = max_requests
        self._window = window_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Block until a request slot is free, then claim it."""
        with self._lock:
            while True:
                now = self._clock()
                while self._timestamps and now - self._timestamps[0] >= self._window:
                    self._timestamps.popleft()

                if len(self._timestamps) < self._max_requests:
                    self._timestamps.append(now)
                    return

                wait = self._window - (now - self._timestamps[0])
                logger.info("Rate limiter '%s' full; sleeping %.2fs", self.name, wait)
                self._sleep(wait)

    def __len__(self) -> int:
        return len(self._timestamps)


# X API Pro tier: recent search 300 requests / 15 min, full archive 1 request / s.
recent_search_limiter = RateLimiter(300, 15 * 60 * 1000, name="recent_search")
full_archive_limiter = RateLimiter(1, 1000, name="full_archive")
