"""Fixed-window request limiting per client address."""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started_at: float
    hits: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int


class FixedWindowRateLimiter:
    """Allow ``limit`` hits per ``window`` seconds for each key."""

    def __init__(self, limit: int, window: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window <= 0:
            raise ValueError("window must be positive")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            record = self._windows.get(key)
            if record is None:
                record = _Window(started_at=now, hits=0)
                self._windows[key] = record
            record.hits += 1
            hits = record.hits
            reset_after = max(0, math.ceil(record.started_at + self.window - now))

        return RateLimitDecision(
            allowed=hits <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - hits),
            reset_after=reset_after,
        )

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, record in self._windows.items() if now - record.started_at >= self.window]
        for key in expired:
            del self._windows[key]


__all__ = ["FixedWindowRateLimiter", "RateLimitDecision"]
