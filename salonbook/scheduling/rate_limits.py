"""
Token-bucket rate limiting for public booking operations.

Each key (a session, or an organization and customer phone) owns a
bucket holding up to ``capacity`` tokens that refills at ``rate`` tokens
per ``period_seconds``. An attempt spends one token; an empty bucket
raises ``RateLimited`` with the seconds until the next token. Buckets
live in process memory and are lost on restart.
"""

import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Hashable

from salonbook.config import RateLimitConfig, settings
from salonbook.logging_context import get_request_logger
from salonbook.scheduling.errors import RateLimited
from salonbook.utils import utc_now

logger = get_request_logger(__name__)


@dataclass
class _Bucket:
    tokens: float
    updated_at: datetime


class TokenBucketLimiter:
    """Thread-safe token buckets keyed by any hashable value."""

    def __init__(
        self,
        name: str,
        rate: int,
        period_seconds: int,
        capacity: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if rate < 1 or period_seconds < 1 or capacity < 1:
            raise ValueError("rate, period_seconds and capacity must all be >= 1")
        self.name = name
        self.rate = rate
        self.period_seconds = period_seconds
        self.capacity = capacity
        self._clock = clock
        self._buckets: dict[Hashable, _Bucket] = {}
        self._guard = threading.Lock()

    def _refill(self, bucket: _Bucket, now: datetime) -> None:
        elapsed = max((now - bucket.updated_at).total_seconds(), 0.0)
        bucket.tokens = min(
            float(self.capacity), bucket.tokens + elapsed * self.rate / self.period_seconds
        )
        bucket.updated_at = now

    def limit(self, key: Hashable) -> None:
        """Spend one token for ``key`` or raise ``RateLimited``."""
        with self._guard:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(float(self.capacity), now)
            else:
                self._refill(bucket, now)

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return
            retry_after = math.ceil((1 - bucket.tokens) * self.period_seconds / self.rate)

        logger.warning("Rate limit %s hit for %s, retry in %ds", self.name, key, retry_after)
        raise RateLimited(
            f"Too many attempts. Try again in {retry_after} seconds.", retry_after=retry_after
        )

    def reset(self) -> None:
        with self._guard:
            self._buckets.clear()


def lock_limiter(
    config: RateLimitConfig = settings.rate_limits,
    clock: Callable[[], datetime] = utc_now,
) -> TokenBucketLimiter:
    return TokenBucketLimiter(
        "acquire_lock", config.lock_rate, config.period_seconds, config.lock_capacity, clock
    )


def booking_limiter(
    config: RateLimitConfig = settings.rate_limits,
    clock: Callable[[], datetime] = utc_now,
) -> TokenBucketLimiter:
    return TokenBucketLimiter(
        "book", config.booking_rate, config.period_seconds, config.booking_capacity, clock
    )
