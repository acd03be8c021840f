from datetime import timedelta

import pytest

from stalewise import cache as C

from _support import T0

ADDRESS = C.CacheKey("undoc-api", "scenes-H6072")


@pytest.fixture
def opts() -> C.CacheOptions:
    return (
        C.CacheOptions(ADDRESS.topic, ADDRESS.key)
        .with_soft_ttl(days=1)
        .with_hard_ttl(days=7)
        .with_negative_ttl(seconds=10)
    )


@pytest.fixture
def entry(opts) -> C.CacheEntry:
    return C.CacheEntry.positive(ADDRESS, '"v"', T0, opts.soft_ttl, opts.hard_ttl)


def test_absent(opts):
    assert C.classify(None, T0, opts) is C.Freshness.ABSENT


def test_fresh_before_soft_expiry(entry, opts):
    assert C.classify(entry, T0 + timedelta(hours=23), opts) is C.Freshness.FRESH


def test_stale_window_requires_allow_stale(entry, opts):
    at = T0 + timedelta(days=2)
    assert C.classify(entry, at, opts) is C.Freshness.EXPIRED
    assert C.classify(entry, at, opts.with_allow_stale()) is C.Freshness.STALE


def test_soft_expiry_boundary_is_stale(entry, opts):
    at = entry.soft_expiry
    assert C.classify(entry, at, opts.with_allow_stale()) is C.Freshness.STALE


def test_expired_at_hard_expiry_even_with_allow_stale(entry, opts):
    assert C.classify(entry, entry.hard_expiry, opts.with_allow_stale()) is C.Freshness.EXPIRED


def test_negative_entry_judged_by_callers_negative_ttl():
    negative = C.CacheEntry.negative(ADDRESS, "RuntimeError: boom", T0, timedelta(seconds=10))
    short = C.CacheOptions(ADDRESS.topic, ADDRESS.key).with_negative_ttl(seconds=1)
    long = short.with_negative_ttl(seconds=60)
    at = T0 + timedelta(seconds=5)

    assert C.classify(negative, at, short) is C.Freshness.NEGATIVE_EXPIRED
    assert C.classify(negative, at, long) is C.Freshness.NEGATIVE_HIT


def test_negative_entry_never_fresh(opts):
    negative = C.CacheEntry.negative(ADDRESS, "boom", T0, timedelta(seconds=10))
    assert C.classify(negative, T0, opts.with_allow_stale()) is C.Freshness.NEGATIVE_HIT


def test_must_compute():
    assert C.Freshness.ABSENT.must_compute
    assert C.Freshness.EXPIRED.must_compute
    assert C.Freshness.NEGATIVE_EXPIRED.must_compute
    assert not C.Freshness.STALE.must_compute
    assert not C.Freshness.NEGATIVE_HIT.must_compute


def test_positive_entry_clamps_soft_to_hard():
    entry = C.CacheEntry.positive(ADDRESS, "1", T0, C.ONE_DAY, C.HALF_DAY)
    assert entry.soft_expiry == entry.hard_expiry == T0 + C.HALF_DAY
