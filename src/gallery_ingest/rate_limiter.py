"""Process-local token bucket limiter keyed by actor."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "rate_limiter"})


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class _Bucket:
    tokens: float
    last_ms: float
    lock: Lock = field(default_factory=Lock)


class TokenBucketLimiter:
    """Non-blocking token buckets, one per key.

    A new bucket starts full. Each check refills
    ``elapsed / refill_per_ms * capacity`` tokens (capped at ``capacity``) and
    admits when at least one whole token is available. The limiter never waits
    or retries; callers map a ``False`` result to ``rate_limited``.

    State lives in memory only, so limits are per process.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or _monotonic_ms
        self._buckets: dict[str, _Bucket] = {}
        self._registry_lock = Lock()

    def _bucket_for(self, key: str, capacity: int, now_ms: float) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket
        with self._registry_lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=float(capacity), last_ms=now_ms)
                self._buckets[key] = bucket
            return bucket

    def allow(self, key: str, capacity: int, refill_per_ms: int) -> bool:
        """Consume one token for ``key`` and report whether the call is admitted."""

        if capacity <= 0:
            return False
        if refill_per_ms <= 0:
            raise ValueError("refill_per_ms must be positive")

        now_ms = self._clock()
        bucket = self._bucket_for(key, capacity, now_ms)
        with bucket.lock:
            elapsed = max(0.0, now_ms - bucket.last_ms)
            bucket.tokens = min(float(capacity), bucket.tokens + elapsed / refill_per_ms * capacity)
            bucket.last_ms = now_ms
            if bucket.tokens < 1:
                LOGGER.debug("rate_limit_denied", extra={"key": key, "tokens": bucket.tokens})
                return False
            bucket.tokens -= 1
            return True

    def reset(self, key: str | None = None) -> None:
        """Forget one bucket, or every bucket when ``key`` is None."""

        with self._registry_lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)


__all__ = ["TokenBucketLimiter"]
