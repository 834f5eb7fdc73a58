# Overview: In-memory sliding-window rate limiter shared by all request threads.

"""
Request Rate Limiting

WHY: Throttle brute-force logins and runaway bulk operations.

Each identifier (e.g. "login:127.0.0.1", "product_create:7") keeps the
timestamps of its requests inside the current window. All reads and
writes go through one lock, so concurrent requests cannot both slip past
the limit. Keys whose window has fully elapsed are dropped on access and
by periodic sweeps.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass

from ..validation import RateLimitError


SWEEP_EVERY = 500  # hits between full sweeps of stale keys


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimiter:
    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, tuple[deque, float]] = {}
        self._calls = 0

    def hit(self, identifier: str, max_requests: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._calls += 1
            if self._calls % SWEEP_EVERY == 0:
                self._sweep(now)

            timestamps, _ = self._hits.get(identifier, (deque(), 0.0))
            cutoff = now - window_seconds
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= max_requests:
                retry_after = max(1, int(timestamps[0] + window_seconds - now + 0.999))
                self._hits[identifier] = (timestamps, now + window_seconds)
                return RateLimitDecision(False, 0, retry_after)

            timestamps.append(now)
            self._hits[identifier] = (timestamps, now + window_seconds)
            return RateLimitDecision(True, max_requests - len(timestamps), 0)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def _sweep(self, now: float) -> None:
        stale = [key for key, (_, expires) in self._hits.items() if expires <= now]
        for key in stale:
            del self._hits[key]


def enforce(limiter: RateLimiter, identifier: str, max_requests: int, window_seconds: int) -> None:
    """Record a hit and raise RateLimitError once the window is exhausted."""
    decision = limiter.hit(identifier, max_requests, window_seconds)
    if not decision.allowed:
        raise RateLimitError(
            "Rate limit exceeded",
            {
                "max_requests": max_requests,
                "window_seconds": window_seconds,
                "retry_after": decision.retry_after,
            },
        )
