"""Fixed-window rate limiter keyed by client identity."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.stdlib.get_logger()

# Returns milliseconds.
Clock = Callable[[], float]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class RateWindow:
    """Request count for one identity within the current window."""

    count: int
    reset_at_ms: float

    def elapsed(self, now_ms: float) -> bool:
        return now_ms >= self.reset_at_ms


class FixedWindowRateLimiter:
    """Counts requests per identity in fixed windows.

    The first request from an identity opens a window of *window_ms*; up to
    *limit* requests are allowed within it. Once the window has elapsed the
    next request opens a fresh one. Stale windows are dropped by ``sweep``,
    which runs from a background task and is safe alongside ``allow``.

    Usage::

        limiter = FixedWindowRateLimiter()
        if not limiter.allow(client_ip, limit=100, window_ms=60_000):
            ...  # reject with 429
    """

    def __init__(
        self,
        default_limit: int = 100,
        default_window_ms: int = 60_000,
        clock: Clock = _monotonic_ms,
    ) -> None:
        self._default_limit = default_limit
        self._default_window_ms = default_window_ms
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def allow(
        self,
        identity: str,
        limit: int | None = None,
        window_ms: int | None = None,
    ) -> bool:
        """Record one request for *identity*. Returns False if over the limit."""
        limit = self._default_limit if limit is None else limit
        window_ms = self._default_window_ms if window_ms is None else window_ms
        with self._lock:
            now = self._clock()
            window = self._windows.get(identity)
            if window is None or window.elapsed(now):
                self._windows[identity] = RateWindow(count=1, reset_at_ms=now + window_ms)
                return limit >= 1
            if window.count >= limit:
                return False
            window.count += 1
            return True

    def remaining(self, identity: str, limit: int | None = None) -> int:
        """Requests left for *identity* in its current window."""
        limit = self._default_limit if limit is None else limit
        with self._lock:
            window = self._windows.get(identity)
            if window is None or window.elapsed(self._clock()):
                return limit
            return max(0, limit - window.count)

    def retry_after_ms(self, identity: str) -> float:
        """Milliseconds until *identity*'s window resets (0 if none is active)."""
        with self._lock:
            window = self._windows.get(identity)
            if window is None:
                return 0.0
            return max(0.0, window.reset_at_ms - self._clock())

    def sweep(self) -> int:
        """Discard every elapsed window. Returns the number removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, w in self._windows.items() if w.elapsed(now)]
            for k in stale:
                del self._windows[k]
        if stale:
            logger.debug("rate_limit_sweep", removed=len(stale))
        return len(stale)

    def reset(self, identity: str | None = None) -> None:
        with self._lock:
            if identity is None:
                self._windows.clear()
            else:
                self._windows.pop(identity, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
