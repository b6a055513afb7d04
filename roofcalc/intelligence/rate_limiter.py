"""Rate limiting for AI-backed endpoints.

Fixed-window counters per (bucket, client key), held in process memory.
Expired windows are swept lazily on access once the sweep interval has
passed, so idle clients do not accumulate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request limiter.

    Example:
        >>> limiter = RateLimiter()
        >>> limiter.check("ai", "10.0.0.1", max_requests=20, window_seconds=60)
        True
    """

    def __init__(
        self,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            sweep_interval_seconds: Minimum time between expired-window sweeps
            clock: Time source in seconds (injectable for tests)
        """
        self.sweep_interval = sweep_interval_seconds
        self.clock = clock
        self.windows: Dict[Tuple[str, str], _Window] = {}
        self._last_sweep = clock()

    def check(self, bucket: str, key: str, max_requests: int, window_seconds: float) -> bool:
        """Count a request and report whether it is allowed.

        Args:
            bucket: Limit family (e.g. "ai")
            key: Client identifier (usually the client IP)
            max_requests: Requests allowed per window
            window_seconds: Window length

        Returns:
            True if the request is within the limit
        """
        now = self.clock()
        self._maybe_sweep(now)

        window = self.windows.get((bucket, key))
        if window is None or now > window.reset_at:
            self.windows[(bucket, key)] = _Window(count=1, reset_at=now + window_seconds)
            return True

        if window.count >= max_requests:
            logger.debug(f"Rate limit hit for {bucket}:{key} ({window.count}/{max_requests})")
            return False

        window.count += 1
        return True

    def retry_after(self, bucket: str, key: str) -> float:
        """Seconds until the client's current window resets (0 if not limited)."""
        window = self.windows.get((bucket, key))
        if window is None:
            return 0.0
        return max(0.0, window.reset_at - self.clock())

    def sweep(self) -> int:
        """Drop expired windows. Returns the number removed."""
        now = self.clock()
        expired = [k for k, w in self.windows.items() if now > w.reset_at]
        for k in expired:
            del self.windows[k]
        self._last_sweep = now
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit windows")
        return len(expired)

    def reset(self) -> None:
        self.windows.clear()

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep()
