"""
Per-provider rate limiting with interval-refilled token buckets.

Each provider owns one bucket. The full capacity is restored once per elapsed
refill interval, matching provider quotas expressed as "N per day/hour/minute".
Admission never waits: a denied call is rejected immediately.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.models.enums import Provider
from shared.utils.logging import get_logger
from shared.utils.metrics import RATE_LIMIT_CONSUMED, RATE_LIMIT_REJECTIONS, RATE_LIMIT_REMAINING

logger = get_logger(__name__)

Clock = Callable[[], float]


class TokenBucket:
    """
    In-process token bucket.
    Holds at most ``capacity`` tokens; refills to capacity per ``refill_interval_s``.
    """

    def __init__(self, capacity: int, refill_interval_s: float, clock: Clock = time.monotonic) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_interval_s <= 0:
            raise ValueError("refill_interval_s must be > 0")
        self.capacity = capacity
        self.refill_interval_s = refill_interval_s
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        periods = int((self._clock() - self._last_refill) // self.refill_interval_s)
        if periods > 0:
            self._tokens = self.capacity
            self._last_refill += periods * self.refill_interval_s

    def try_consume(self) -> bool:
        """Consume one token if available. Returns True if allowed, False if rate limited."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    @property
    def available(self) -> int:
        with self._lock:
            self._refill()
            return self._tokens

    @property
    def seconds_until_refill(self) -> float:
        with self._lock:
            return max(self.refill_interval_s - (self._clock() - self._last_refill), 0.0)


class RateLimiter:
    """Independent token buckets keyed by provider."""

    def __init__(
        self,
        buckets: dict[Provider, TokenBucket],
        fail_open: bool = True,
    ) -> None:
        self._buckets = dict(buckets)
        self._fail_open = fail_open

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, clock: Clock = time.monotonic) -> "RateLimiter":
        settings = settings or get_settings()
        return cls(
            {
                Provider.API_FOOTBALL: TokenBucket(
                    settings.api_football_quota, settings.api_football_refill_s, clock
                ),
                Provider.FOOTBALL_DATA: TokenBucket(
                    settings.football_data_quota, settings.football_data_refill_s, clock
                ),
                Provider.THESPORTSDB: TokenBucket(
                    settings.thesportsdb_quota, settings.thesportsdb_refill_s, clock
                ),
            },
            fail_open=settings.rate_limit_fail_open,
        )

    def allow_request(self, provider: Provider) -> bool:
        bucket = self._buckets.get(provider)
        if bucket is None:
            logger.warning("rate_limit_bucket_missing", provider=provider.value, fail_open=self._fail_open)
            return self._fail_open
        allowed = bucket.try_consume()
        if not allowed:
            RATE_LIMIT_REJECTIONS.labels(provider=provider.value).inc()
            logger.warning(
                "rate_limit_exceeded",
                provider=provider.value,
                retry_in_s=round(bucket.seconds_until_refill, 1),
            )
        return allowed

    def record_request(self, provider: Provider) -> None:
        """Accounting hook for a completed call; the token was charged at admission."""
        RATE_LIMIT_CONSUMED.labels(provider=provider.value).inc()
        remaining = self.remaining_quota(provider)
        if remaining >= 0:
            RATE_LIMIT_REMAINING.labels(provider=provider.value).set(remaining)
        logger.debug("provider_request_recorded", provider=provider.value, remaining=remaining)

    def remaining_quota(self, provider: Provider) -> int:
        """Tokens left for a configured provider; -1 when the provider has no bucket."""
        bucket = self._buckets.get(provider)
        if bucket is None:
            return -1
        return bucket.available
