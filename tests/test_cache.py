from datetime import datetime, timedelta, timezone

import pytest

from fx_rates.cache import RateCache
from fx_rates.models import Freshness, RateSource

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_get_absent_pair_returns_none():
    cache = RateCache()
    assert cache.get("USD", "EUR") is None
    assert len(cache) == 0


def test_put_overwrites_same_ordered_pair_only():
    cache = RateCache()
    cache.put("USD", "EUR", 0.90, NOW)
    cache.put("EUR", "USD", 1.10, NOW)
    cache.put("USD", "EUR", 0.92, NOW + timedelta(hours=1))

    entry = cache.get("USD", "EUR")
    assert entry.rate == 0.92
    assert entry.fetched_at == NOW + timedelta(hours=1)
    assert entry.source == RateSource.LIVE
    # Reverse pair is its own entry, untouched
    assert cache.get("EUR", "USD").rate == 1.10
    assert len(cache) == 2


def test_classify_boundary():
    cache = RateCache()
    entry = cache.put("USD", "EUR", 0.9, NOW)
    assert cache.classify(entry, NOW + timedelta(hours=23)) == Freshness.FRESH
    assert cache.classify(entry, NOW + timedelta(hours=24) - timedelta(seconds=1)) == Freshness.FRESH
    assert cache.classify(entry, NOW + timedelta(hours=24)) == Freshness.STALE
    assert cache.classify(entry, NOW + timedelta(hours=24, seconds=1)) == Freshness.STALE


def test_custom_window():
    cache = RateCache(freshness_window=timedelta(hours=1))
    entry = cache.put("USD", "EUR", 0.9, NOW)
    assert cache.is_fresh(entry, NOW + timedelta(minutes=59))
    assert not cache.is_fresh(entry, NOW + timedelta(minutes=61))


def test_non_positive_window_rejected():
    with pytest.raises(ValueError):
        RateCache(freshness_window=timedelta(0))


def test_tracked_pairs_include_cached_and_registered():
    cache = RateCache()
    cache.put("USD", "EUR", 0.9, NOW)
    assert cache.track("GBP", "USD") is True
    assert cache.track("GBP", "USD") is False
    assert cache.track("USD", "USD") is False
    assert cache.tracked_pairs() == [("GBP", "USD"), ("USD", "EUR")]


def test_entries_for_base():
    cache = RateCache()
    cache.put("USD", "EUR", 0.9, NOW)
    cache.put("USD", "GBP", 0.8, NOW)
    cache.put("EUR", "USD", 1.1, NOW)
    quotes = sorted(e.quote_currency for e in cache.entries_for_base("USD"))
    assert quotes == ["EUR", "GBP"]
