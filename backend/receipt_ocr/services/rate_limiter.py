"""
Sliding-window rate limiter for the external OCR provider.

Azure Document Intelligence enforces a hard per-window quota (F0: 1 request
per 60 seconds, S0: 15 requests per second). The limiter tracks when calls
were made and computes how long the next caller must wait so that no trailing
window ever contains more than ``max_requests`` calls.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque

# Absorbs clock and scheduling jitter between the local wait and the provider's own clock.
SAFETY_MARGIN_SECONDS = 0.1


class RateLimiter:
    """
    Sliding-window counter guarding calls to the OCR provider.

    compute_delay() and record_request() each take the lock, but not together:
    two callers may both see the same free slot. The limiter is only safe
    behind a single-call token such as AnalysisGateway's in-flight lock, which
    holds across delay, call and record.
    """

    def __init__(
        self,
        max_requests: int = 1,
        window_seconds: float = 60,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_requests: Calls allowed inside any trailing window (>= 1)
            window_seconds: Window length in seconds (>= 1)
            enabled: When False the limiter never delays and records nothing
            clock: Monotonic time source in seconds (injectable for tests)
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_seconds < 1:
            raise ValueError(f"window_seconds must be >= 1, got {window_seconds}")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        """Build a limiter from the application settings."""
        return cls(
            max_requests=settings.MAX_REQUESTS_PER_WINDOW,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            enabled=settings.RATE_LIMITING_ENABLED,
        )

    def _discard_expired(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] < cutoff:
            self._timestamps.popleft()

    def compute_delay(self) -> float:
        """
        Seconds to wait before the next call may start without breaching quota.

        Returns:
            0.0 when a slot is free, otherwise the time until the oldest call in
            the window expires plus a small safety margin.
        """
        if not self.enabled:
            return 0.0

        with self._lock:
            now = self._clock()
            self._discard_expired(now)

            if len(self._timestamps) < self.max_requests:
                return 0.0

            oldest = self._timestamps[0]
            delay = (oldest + self.window_seconds) - now + SAFETY_MARGIN_SECONDS

        return max(delay, 0.0)

    def record_request(self) -> None:
        """Record that a call to the provider was just made."""
        if not self.enabled:
            return

        with self._lock:
            self._timestamps.append(self._clock())
            while len(self._timestamps) > 2 * self.max_requests:
                self._timestamps.popleft()

    def in_window(self) -> int:
        """Number of recorded calls inside the current trailing window."""
        with self._lock:
            self._discard_expired(self._clock())
            return len(self._timestamps)
