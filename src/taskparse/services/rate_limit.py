"""Per-caller rate limiting for task extraction."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class RateLimitStore(Protocol):
    """Storage for per-caller request counters.

    The in-memory store is enough for a single process; a shared store (e.g.
    Redis) can implement the same methods for multi-process deployments.
    """

    def hit(self, key: str) -> bool:
        """Record a request for ``key``; return False if it is over the limit."""
        ...

    def remaining(self, key: str) -> int:
        """Requests ``key`` may still make in the current window."""
        ...

    def wait_time_seconds(self, key: str) -> float:
        """Seconds until ``key`` may call again (0 if it can call now)."""
        ...

    def reset(self, key: str | None = None) -> None:
        """Forget one caller's window, or every window when ``key`` is None."""
        ...


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimitStore:
    """Fixed-window counter keyed by caller identity."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._cleanup_expired(now)
            window = self._windows.get(key)
            if window is None:
                self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def remaining(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                return self.max_requests
            return max(0, self.max_requests - window.count)

    def wait_time_seconds(self, key: str) -> float:
        """Seconds until ``key``'s window resets (0 if it can call now)."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.count < self.max_requests:
                return 0.0
            return max(0.0, window.reset_at - now)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _cleanup_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]


def create_rate_limit_store() -> InMemoryRateLimitStore:
    """Build the in-memory store from settings."""
    from taskparse.config import settings

    return InMemoryRateLimitStore(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
