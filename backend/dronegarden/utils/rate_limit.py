"""In-memory sliding-window limiter for the unauthenticated auth endpoints."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Optional


class SlidingWindowLimiter:
    """Allow at most `max_hits` per key inside a rolling window.

    Used to throttle password-reset emails per client address so the
    forgot-password endpoint cannot be turned into a mail cannon.
    """

    def __init__(self, max_hits: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> Optional[int]:
        """Record a hit; return None when allowed, else seconds to wait."""
        now = self._clock()
        with self._lock:
            window = self._hits[key]
            while window and window[0] <= now - self.window_seconds:
                window.popleft()
            if len(window) >= self.max_hits:
                return max(1, int(self.window_seconds - (now - window[0])))
            window.append(now)
        return None

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
