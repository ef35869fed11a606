import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SlidingWindowRateLimiter:
    """Admission gate that allows at most ``max_requests`` inside any trailing window.

    Callers are never rejected: ``admit()`` suspends until a slot frees up.
    The check-and-append path has no await between reading the window and
    recording the admission, so concurrent coroutines on one event loop cannot
    both take the last slot.
    """

    def __init__(
        self,
        max_requests: int = 3,
        window_ms: float = 1000.0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._timestamps: Deque[float] = deque()
        self.logger = logging.getLogger(__name__)

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_ms:
            self._timestamps.popleft()

    async def admit(self) -> None:
        """Wait until a request may be sent, then record it."""
        while True:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) < self.max_requests:
                self._timestamps.append(now)
                return

            wait_ms = self.window_ms - (now - self._timestamps[0])
            self.logger.debug(f"[ratelimit] Window full, waiting {wait_ms:.0f}ms")
            # seconds; sleep is asyncio.sleep compatible
            await self._sleep(max(wait_ms, 0.0) / 1000.0)

    def status(self) -> Dict[str, float]:
        now = self._clock()
        self._prune(now)
        recent = len(self._timestamps)
        if recent < self.max_requests or not self._timestamps:
            next_available = now
        else:
            next_available = self._timestamps[0] + self.window_ms
        return {
            "recent_requests": recent,
            "max_requests_per_second": self.max_requests,
            "remaining_requests": max(0, self.max_requests - recent),
            "next_available_at_ms": next_available,
        }
