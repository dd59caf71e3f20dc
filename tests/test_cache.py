"""Tests for the TTL cache and the caching provider wrapper."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from data.cache import CacheStats, CachedProvider, TTLCache
from data.models import Bar, CorporateActions, History, Interval, Quote
from data.providers.base import DataProvider


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProvider(DataProvider):
    """Provider that returns canned data and counts upstream calls."""

    def __init__(self) -> None:
        self.history_calls = 0
        self.quote_calls = 0
        self.action_calls = 0

    def provider_name(self) -> str:
        return "counting"

    def supported_intervals(self) -> list[Interval]:
        return [Interval.D1]

    def fetch_history(self, symbol, interval, start, end) -> History:
        self.history_calls += 1
        bar = Bar(timestamp=self._to_unix(start), open=1.0, high=1.0, low=1.0, close=1.0)
        return History(symbol=symbol, interval=interval, bars=(bar,))

    def fetch_quote(self, symbol: str) -> Quote:
        self.quote_calls += 1
        return Quote(symbol=symbol, price=float(self.quote_calls))

    def fetch_actions(self, symbol, start, end) -> CorporateActions:
        self.action_calls += 1
        return CorporateActions(symbol=symbol)


_START = datetime(2024, 1, 1, tzinfo=timezone.utc)
_END = datetime(2024, 2, 1, tzinfo=timezone.utc)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


class TestTTLCache:
    def test_history_hit_and_miss(self, clock: FakeClock) -> None:
        cache = TTLCache(ttl=300, clock=clock)
        history = History("AAPL", Interval.D1)

        assert cache.get_history("AAPL", Interval.D1, 1, 2) is None
        cache.set_history("AAPL", Interval.D1, 1, 2, history)

        assert cache.get_history("AAPL", Interval.D1, 1, 2) is history
        # Symbols are case-insensitive; interval and range are part of the key.
        assert cache.get_history("aapl", Interval.D1, 1, 2) is history
        assert cache.get_history("AAPL", Interval.WK1, 1, 2) is None
        assert cache.get_history("AAPL", Interval.D1, 1, 3) is None

    def test_entries_expire(self, clock: FakeClock) -> None:
        cache = TTLCache(ttl=300, clock=clock)
        quote = Quote(symbol="MSFT", price=1.0)
        cache.set_quote("MSFT", quote)

        clock.now += 300
        assert cache.get_quote("MSFT") is quote

        clock.now += 1
        assert cache.get_quote("MSFT") is None
        assert cache.stats().quote_count == 0

    def test_store_sweeps_expired_entries(self, clock: FakeClock) -> None:
        cache = TTLCache(ttl=60, clock=clock)
        cache.set_quote("A", Quote(symbol="A"))
        cache.set_history("A", Interval.D1, 1, 2, History("A", Interval.D1))

        clock.now += 61
        # "A" is never looked up again; storing another symbol evicts it.
        cache.set_quote("B", Quote(symbol="B"))
        cache.set_history("B", Interval.D1, 1, 2, History("B", Interval.D1))

        assert cache.stats() == CacheStats(history_count=1, quote_count=1)
        assert cache.get_quote("B") is not None
        assert cache.get_history("B", Interval.D1, 1, 2) is not None

    def test_store_keeps_live_entries(self, clock: FakeClock) -> None:
        cache = TTLCache(ttl=60, clock=clock)
        cache.set_quote("A", Quote(symbol="A"))
        clock.now += 60
        cache.set_quote("B", Quote(symbol="B"))
        assert cache.stats().quote_count == 2

    def test_disabled_cache_stores_nothing(self, clock: FakeClock) -> None:
        cache = TTLCache(enabled=False, clock=clock)
        cache.set_quote("MSFT", Quote(symbol="MSFT"))
        cache.set_history("MSFT", Interval.D1, 1, 2, History("MSFT", Interval.D1))
        assert cache.get_quote("MSFT") is None
        assert cache.stats().history_count == 0
        assert cache.stats().quote_count == 0

    def test_clear_and_stats(self, clock: FakeClock) -> None:
        cache = TTLCache(clock=clock)
        cache.set_quote("A", Quote(symbol="A"))
        cache.set_quote("B", Quote(symbol="B"))
        cache.set_history("A", Interval.D1, 1, 2, History("A", Interval.D1))

        stats = cache.stats()
        assert stats.history_count == 1
        assert stats.quote_count == 2

        cache.clear()
        assert cache.stats().history_count == 0
        assert cache.stats().quote_count == 0


class TestCachedProvider:
    def test_repeated_history_served_from_cache(self, clock: FakeClock) -> None:
        inner = CountingProvider()
        provider = CachedProvider(inner, TTLCache(clock=clock))

        first = provider.fetch_history("AAPL", Interval.D1, _START, _END)
        second = provider.fetch_history("AAPL", Interval.D1, _START, _END)

        assert first is second
        assert inner.history_calls == 1
        assert provider.provider_name() == "counting"
        assert provider.supported_intervals() == [Interval.D1]

    def test_expired_quote_refetched(self, clock: FakeClock) -> None:
        inner = CountingProvider()
        provider = CachedProvider(inner, TTLCache(ttl=60, clock=clock))

        assert provider.fetch_quote("AAPL").price == 1.0
        assert provider.fetch_quote("AAPL").price == 1.0
        clock.now += 61
        assert provider.fetch_quote("AAPL").price == 2.0
        assert inner.quote_calls == 2

    def test_different_ranges_are_separate(self, clock: FakeClock) -> None:
        inner = CountingProvider()
        provider = CachedProvider(inner, TTLCache(clock=clock))

        provider.fetch_history("AAPL", Interval.D1, _START, _END)
        provider.fetch_history("AAPL", Interval.D1, _START, datetime(2024, 3, 1, tzinfo=timezone.utc))
        assert inner.history_calls == 2

    def test_actions_pass_through(self, clock: FakeClock) -> None:
        inner = CountingProvider()
        provider = CachedProvider(inner, TTLCache(clock=clock))

        provider.fetch_actions("AAPL", _START, _END)
        actions = provider.fetch_actions("AAPL", _START, _END)

        assert actions.symbol == "AAPL"
        assert inner.action_calls == 2
        assert provider.cache.stats() == CacheStats(history_count=0, quote_count=0)
