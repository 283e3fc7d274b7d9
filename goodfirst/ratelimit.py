"""Per-caller token bucket limiter."""
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional


class RateLimited(Exception):
    """Raised when a caller has used up its tokens."""
    def __init__(self, message: str, retry_after_seconds: int):
        super().__init__(message)
        self.message = message
        self.retry_after_seconds = retry_after_seconds


@dataclass
class Bucket:
    tokens: float
    updated_at: float


class TokenBucketLimiter:
    """
    Token buckets keyed by caller.

    Each key starts with `tokens_per_interval` tokens and regains them
    linearly over `interval_seconds`. State lives on the instance; `clock`
    returns seconds and can be replaced in tests.
    """

    def __init__(self, tokens_per_interval: int = 30, interval_seconds: float = 60.0,
                 clock: Optional[Callable[[], float]] = None):
        if tokens_per_interval <= 0 or interval_seconds <= 0:
            raise ValueError("tokens_per_interval and interval_seconds must be positive")
        self.tokens_per_interval = tokens_per_interval
        self.interval_seconds = interval_seconds
        self.clock = clock or time.monotonic
        self._buckets: Dict[Hashable, Bucket] = {}
        self._lock = threading.Lock()
        self._last_prune = self.clock()

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.interval_seconds)

    def _refill(self, bucket: Bucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.updated_at)
        refill = (elapsed / self.interval_seconds) * self.tokens_per_interval
        bucket.tokens = min(float(self.tokens_per_interval), bucket.tokens + refill)
        bucket.updated_at = now

    def _prune_idle(self, now: float) -> None:
        # A refilled bucket is the same as a missing one, so dropping it loses nothing.
        if now - self._last_prune < self.interval_seconds:
            return
        self._last_prune = now
        for key in list(self._buckets):
            bucket = self._buckets[key]
            self._refill(bucket, now)
            if bucket.tokens >= self.tokens_per_interval:
                del self._buckets[key]

    def try_acquire(self, key: Hashable) -> bool:
        """Take one token for `key`. Returns False when none is left."""
        with self._lock:
            now = self.clock()
            self._prune_idle(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = Bucket(tokens=float(self.tokens_per_interval), updated_at=now)
                self._buckets[key] = bucket
            else:
                self._refill(bucket, now)
            if bucket.tokens < 1:
                return False
            bucket.tokens -= 1
            return True

    def acquire(self, key: Hashable) -> None:
        if not self.try_acquire(key):
            raise RateLimited("Rate limit exceeded. Please retry shortly.", self.retry_after_seconds)

    def remaining(self, key: Hashable) -> int:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return self.tokens_per_interval
            self._refill(bucket, self.clock())
            return int(bucket.tokens)

    def reset(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)
