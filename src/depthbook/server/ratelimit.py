"""Sliding-window rate limiting per client."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable

from depthbook.config_loader import RateLimitConfig

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Allows at most max_requests per client within any window_seconds span.

    Each client keeps a deque of request times; entries older than the window
    fall off on the next check, and a client with no hits left in its window
    is forgotten.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def _prune(self, hits: deque[float], now: float) -> None:
        cutoff = now - self.config.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _window(self, key: str, now: float) -> deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        self._prune(hits, now)
        if not hits:
            del self._hits[key]
        return hits

    def _sweep(self, now: float) -> None:
        """Drop every client whose window has emptied, at most once per window."""
        if now - self._last_sweep < self.config.window_seconds:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._window(key, now)

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def hit(self, key: str) -> bool:
        """Record a request; False if the client is over its limit."""
        if not self.config.enabled:
            return True

        now = self._clock()
        self._sweep(now)
        hits = self._window(key, now)
        if len(hits) >= self.config.max_requests:
            logger.warning(f"Rate limit exceeded for {key}")
            return False

        hits.append(now)
        self._hits[key] = hits
        return True

    def remaining(self, key: str) -> int:
        if not self.config.enabled:
            return self.config.max_requests
        hits = self._window(key, self._clock())
        return max(self.config.max_requests - len(hits), 0)

    def retry_after(self, key: str) -> float:
        """Seconds until the client may send again (0 if it already may)."""
        now = self._clock()
        hits = self._window(key, now)
        if len(hits) < self.config.max_requests:
            return 0.0
        return max(hits[0] + self.config.window_seconds - now, 0.0)

    def reset(self) -> None:
        self._hits.clear()
