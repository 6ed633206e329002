"""
Simple in-process rate limiting utilities.

Paid routing providers (Google, Mapbox) bill per request; a per-provider token bucket
keeps ETA traffic under a configured budget. The ETA path never waits for tokens: it
asks with `try_acquire` and uses the local estimate when the budget is spent.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class TokenBucketRateLimiter:
    """Token bucket limiter for N events per minute (best-effort, thread-safe)."""

    max_per_minute: float
    burst: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        rpm = float(self.max_per_minute)
        if rpm <= 0:
            raise ValueError("max_per_minute must be > 0")
        self._capacity = float(self.burst) if self.burst is not None else float(rpm)
        self._tokens = self._capacity
        self._refill_per_sec = rpm / 60.0
        self._last = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last
        if elapsed <= 0:
            return
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_sec)
        self._last = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take `tokens` if available right now; never blocks."""
        need = float(tokens)
        if need <= 0:
            return True
        with self._lock:
            self._refill()
            if self._tokens >= need:
                self._tokens -= need
                return True
            return False
