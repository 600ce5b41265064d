import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict

from app.core.config import get_settings


@dataclass
class _Bucket:
    count: int
    expires_at: float


class RateLimiter:
    """Fixed-window counter per key, kept in process memory."""

    def __init__(self, max_hits: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._next_sweep = clock() + window_seconds

    def hit(self, key: str) -> bool:
        """Record one hit for `key`; returns False when the window is already full."""
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        bucket = self._buckets.get(key)
        if bucket is None or bucket.expires_at < now:
            self._buckets[key] = _Bucket(count=1, expires_at=now + self.window_seconds)
            return True
        if bucket.count >= self.max_hits:
            return False
        bucket.count += 1
        return True

    def _sweep(self, now: float) -> None:
        # At most once per window, drop keys whose window has passed
        self._buckets = {key: b for key, b in self._buckets.items() if b.expires_at >= now}
        self._next_sweep = now + self.window_seconds

    @property
    def tracked_keys(self) -> int:
        return len(self._buckets)

    def reset(self) -> None:
        self._buckets.clear()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS)
