"""Sliding-window rate limiting for anonymous signup callers."""
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from hubrota.errors import ErrorCode, RotaError

PRUNE_THRESHOLD = 100


class SlidingWindowRateLimiter:
    """
    Allow at most ``max_requests`` per key within any ``window_seconds`` span.

    Keys are usually client addresses. Stale keys are pruned once more than
    ``PRUNE_THRESHOLD`` are tracked.
    """

    def __init__(self, max_requests: int = 5, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _prune(self, now: float) -> None:
        for key in list(self._hits):
            hits = self._hits[key]
            self._expire(hits, now)
            if not hits:
                del self._hits[key]

    def check(self, key: str) -> bool:
        """Record a request for ``key``; False when it is over the limit."""
        with self._lock:
            now = self._clock()
            if len(self._hits) > PRUNE_THRESHOLD:
                self._prune(now)
            hits = self._hits.setdefault(key, deque())
            self._expire(hits, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def hit(self, key: str) -> None:
        """Like ``check`` but raises RATE_LIMITED."""
        if not self.check(key):
            raise RotaError(
                ErrorCode.RATE_LIMITED,
                "Too many requests. Please try again later.",
                details={"retryAfterSeconds": self.retry_after(key)},
            )

    def retry_after(self, key: str) -> float:
        with self._lock:
            hits = self._hits.get(key)
            if not hits or len(hits) < self.max_requests:
                return 0.0
            return max(self.window_seconds - (self._clock() - hits[0]), 0.0)

    def reset(self, key: str = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
