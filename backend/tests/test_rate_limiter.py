"""Token bucket admission and per-provider quotas."""
from __future__ import annotations

import pytest

from ingest.rate_limiter import RateLimiter, TokenBucket
from shared.models.enums import Provider


def test_bucket_admits_capacity_then_rejects(clock) -> None:
    bucket = TokenBucket(capacity=3, refill_interval_s=60, clock=clock)
    assert [bucket.try_consume() for _ in range(4)] == [True, True, True, False]
    assert bucket.available == 0


def test_bucket_refills_to_capacity_after_interval(clock) -> None:
    bucket = TokenBucket(capacity=2, refill_interval_s=60, clock=clock)
    bucket.try_consume()
    bucket.try_consume()
    clock.advance(59)
    assert bucket.try_consume() is False
    clock.advance(1)
    assert bucket.available == 2
    assert bucket.try_consume() is True


def test_bucket_does_not_accumulate_past_capacity(clock) -> None:
    bucket = TokenBucket(capacity=2, refill_interval_s=10, clock=clock)
    clock.advance(1000)
    assert bucket.available == 2


def test_bucket_never_goes_negative(clock) -> None:
    bucket = TokenBucket(capacity=1, refill_interval_s=10, clock=clock)
    for _ in range(10):
        bucket.try_consume()
    assert bucket.available == 0


def test_bucket_rejects_bad_config(clock) -> None:
    with pytest.raises(ValueError):
        TokenBucket(capacity=0, refill_interval_s=10, clock=clock)
    with pytest.raises(ValueError):
        TokenBucket(capacity=1, refill_interval_s=0, clock=clock)


def test_providers_have_independent_buckets(clock) -> None:
    limiter = RateLimiter({
        Provider.FOOTBALL_DATA: TokenBucket(1, 60, clock),
        Provider.API_FOOTBALL: TokenBucket(1, 60, clock),
    })
    assert limiter.allow_request(Provider.FOOTBALL_DATA) is True
    assert limiter.allow_request(Provider.FOOTBALL_DATA) is False
    assert limiter.allow_request(Provider.API_FOOTBALL) is True


def test_record_request_does_not_charge_again(clock) -> None:
    limiter = RateLimiter({Provider.FOOTBALL_DATA: TokenBucket(5, 60, clock)})
    assert limiter.allow_request(Provider.FOOTBALL_DATA)
    limiter.record_request(Provider.FOOTBALL_DATA)
    assert limiter.remaining_quota(Provider.FOOTBALL_DATA) == 4


def test_unconfigured_provider_fails_open_by_default(clock) -> None:
    limiter = RateLimiter({Provider.FOOTBALL_DATA: TokenBucket(1, 60, clock)})
    assert limiter.allow_request(Provider.THESPORTSDB) is True
    assert limiter.remaining_quota(Provider.THESPORTSDB) == -1


def test_unconfigured_provider_can_fail_closed(clock) -> None:
    limiter = RateLimiter({}, fail_open=False)
    assert limiter.allow_request(Provider.THESPORTSDB) is False


def test_from_settings_uses_configured_quotas(settings, clock) -> None:
    limiter = RateLimiter.from_settings(settings, clock=clock)
    assert limiter.remaining_quota(Provider.API_FOOTBALL) == settings.api_football_quota
    assert limiter.remaining_quota(Provider.FOOTBALL_DATA) == settings.football_data_quota
    assert limiter.remaining_quota(Provider.THESPORTSDB) == settings.thesportsdb_quota
