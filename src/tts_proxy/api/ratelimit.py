"""
Fixed-window request limiter for /v1/audio/speech.

Each client (by IP) gets ``max_requests`` per ``window_s`` seconds; the
window starts with the client's first request and resets once it has
elapsed. State is in memory and per process.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started_at: float
    count: int


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after_s: float


class FixedWindowRateLimiter:
    def __init__(self, max_requests: int, window_s: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = int(max_requests)
        self.window_s = float(window_s)
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, client: str) -> RateDecision:
        """Count one request for ``client`` and say whether it may proceed."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(client)
            if window is None or now - window.started_at >= self.window_s:
                window = _Window(started_at=now, count=0)
                self._windows[client] = window
                self._prune(now)
            window.count += 1
            allowed = window.count <= self.max_requests
            return RateDecision(
                allowed=allowed,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - window.count),
                reset_after_s=max(0.0, window.started_at + self.window_s - now),
            )

    def _prune(self, now: float) -> None:
        # called with the lock held
        stale = [k for k, w in self._windows.items() if now - w.started_at >= self.window_s]
        for k in stale:
            del self._windows[k]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
