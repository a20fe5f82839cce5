"""In-memory sliding window tracker for failed sign-in attempts."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, DefaultDict


class FailedAttemptTracker:
    """Thread-safe sliding window counter that locks a key after repeated failures."""

    def __init__(self, max_failures: int, window_seconds: int) -> None:
        """Initialise lockout parameters and per-key storage."""
        self._max_failures = max_failures
        self._window = window_seconds
        self._events: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def _trim(self, queue: Deque[float], now: float) -> None:
        while queue and now - queue[0] > self._window:
            queue.popleft()

    def is_locked_out(self, key: str) -> bool:
        """Return ``True`` when the key reached the failure threshold inside the window."""
        now = time.time()
        with self._lock:
            queue = self._events.get(key)
            if queue is None:
                return False
            self._trim(queue, now)
            if not queue:
                del self._events[key]
                return False
            return len(queue) >= self._max_failures

    def register_failure(self, key: str) -> bool:
        """Record a failed attempt and return ``True`` if the key is now locked out."""
        now = time.time()
        with self._lock:
            queue = self._events[key]
            self._trim(queue, now)
            queue.append(now)
            return len(queue) >= self._max_failures

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)
