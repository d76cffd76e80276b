"""
Sliding-window rate limiter keyed by identity (route + user ID).
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict

from core import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter for per-user, per-endpoint throttling.

    Bounds inference cost by limiting requests per time window.
    Uses in-memory storage guarded by an asyncio lock, so the
    prune-count-append sequence is atomic within the process.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per window (0 disables limiting)
            window_seconds: Time window in seconds
            clock: Monotonic time source
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.disabled = max_requests == 0
        self._clock = clock

        # Admitted request timestamps per key; idle keys are swept once per window
        self._timestamps: Dict[str, Deque[float]] = {}
        self._last_sweep = float("-inf")
        self._lock = asyncio.Lock()

        logger.info(
            "Rate limiter initialized",
            max_requests=max_requests,
            window_seconds=window_seconds,
            enabled=not self.disabled,
        )

    async def check(self, identity_key: str) -> bool:
        """Return True if the request identified by ``identity_key`` may proceed."""
        allowed, _ = await self.check_rate_limit(identity_key)
        return allowed

    async def check_rate_limit(self, identity_key: str) -> tuple[bool, int]:
        """
        Check and count one request for ``identity_key``.

        Only admitted requests are counted. If the counter store fails the
        request is denied, keeping inference spend bounded.

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        if self.disabled:
            return True, self.max_requests

        try:
            async with self._lock:
                return self._admit(identity_key)
        except Exception as e:
            logger.error("Rate limiter unavailable, denying request", identity_key=identity_key, error=str(e))
            return False, 0

    def _admit(self, identity_key: str) -> tuple[bool, int]:
        now = self._clock()
        cutoff = now - self.window_seconds

        if now - self._last_sweep >= self.window_seconds:
            self._sweep(cutoff)
            self._last_sweep = now

        timestamps = self._timestamps.setdefault(identity_key, deque())

        # Remove timestamps outside the window (sliding window)
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

        current_count = len(timestamps)
        if current_count >= self.max_requests:
            logger.warning(
                "Rate limit exceeded",
                identity_key=identity_key,
                count=current_count,
                max_requests=self.max_requests,
                window_seconds=self.window_seconds,
            )
            return False, 0

        timestamps.append(now)
        return True, self.max_requests - current_count - 1

    def _sweep(self, cutoff: float) -> None:
        """Drop keys whose newest admitted request has left the window."""
        idle = [key for key, ts in self._timestamps.items() if not ts or ts[-1] <= cutoff]
        for key in idle:
            del self._timestamps[key]
        if idle:
            logger.debug("Swept idle rate limit keys", count=len(idle), tracked=len(self._timestamps))

    @property
    def tracked_keys(self) -> int:
        return len(self._timestamps)

    def reset(self, identity_key: str) -> None:
        """Reset rate limit for a specific key."""
        if self._timestamps.pop(identity_key, None) is not None:
            logger.info("Rate limit reset", identity_key=identity_key)
