"""In-memory token bucket rate limiter.

Notes:
- Per-process only: state is lost on restart, and multiple workers each
  enforce their own independent limits.
- Thread-safe: a single lock guards every bucket read-modify-write and the
  compaction pass, so consumption and compaction never interleave.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from kvdb.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class InMemoryTokenBucketRateLimiter(AbstractRateLimiter):
    """Token bucket limiter keyed by client identity.

    Each bucket starts full with ``burst_size`` tokens and refills continuously
    at ``rate_per_second`` up to the cap. A request consumes ``cost`` tokens or
    is rejected when not enough are available.
    """

    def __init__(
        self,
        *,
        rate_per_second: float,
        burst_size: int,
        idle_retention_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter.

        Args:
            rate_per_second: Tokens added to each bucket per second.
            burst_size: Bucket capacity.
            idle_retention_seconds: How long a bucket may sit full before
                ``compact`` discards it.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If any argument is out of range.
        """
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be > 0")
        if burst_size < 1:
            raise ValueError("burst_size must be >= 1")
        if idle_retention_seconds < 0:
            raise ValueError("idle_retention_seconds must be >= 0")

        self._rate = float(rate_per_second)
        self._burst = burst_size
        self._idle_retention = idle_retention_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._buckets: dict[str, _Bucket] = {}

    @property
    def limit(self) -> int:
        return self._burst

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _refill_locked(self, bucket: _Bucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(float(self._burst), bucket.tokens + elapsed * self._rate)
        bucket.updated_at = now

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Take ``cost`` tokens from the bucket for ``key`` if available.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if cost > self._burst:
            raise ValueError("cost must not exceed burst_size")
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=float(self._burst), updated_at=now)
                self._buckets[key] = bucket
            else:
                self._refill_locked(bucket, now)

            if bucket.tokens >= cost:
                bucket.tokens -= cost
                return RateLimitResult(
                    allowed=True,
                    limit=self._burst,
                    remaining=int(bucket.tokens),
                    retry_after_seconds=None,
                )

            deficit = cost - bucket.tokens
            return RateLimitResult(
                allowed=False,
                limit=self._burst,
                remaining=int(bucket.tokens),
                retry_after_seconds=max(1, math.ceil(deficit / self._rate)),
            )

    def compact(self) -> int:
        """Discard buckets that have been full for longer than the idle retention.

        A full bucket is indistinguishable from a fresh one, so dropping it
        never changes a future decision.
        """
        with self._lock:
            now = self._clock()
            stale = []
            for key, bucket in self._buckets.items():
                missing = self._burst - bucket.tokens
                full_since = bucket.updated_at + missing / self._rate
                if now - full_since >= self._idle_retention:
                    stale.append(key)
            for key in stale:
                del self._buckets[key]
            return len(stale)
