"""In-memory TTL cache for histories and quotes.

Entries are keyed by ``(symbol, interval, start, end)`` for histories and by
symbol for quotes.  An entry older than ``ttl`` seconds is dropped the next
time it is looked up, and every store sweeps out all expired entries of its
kind.  Corporate actions pass through uncached.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, TypeVar

from app.logging import get_logger
from data.models import CorporateActions, History, Interval, Quote
from data.providers.base import DataProvider

logger = get_logger(__name__)

T = TypeVar("T")

HistoryKey = tuple[str, str, int, int]


@dataclass(frozen=True)
class _Entry(Generic[T]):
    data: T
    stored_at: float


@dataclass(frozen=True)
class CacheStats:
    history_count: int
    quote_count: int


class TTLCache:
    """Time-to-live cache for :class:`History` and :class:`Quote` objects.

    Args:
        enabled: When False every lookup misses and nothing is stored.
        ttl: Entry lifetime in seconds (default five minutes).
        clock: Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        enabled: bool = True,
        ttl: float = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.enabled = enabled
        self.ttl = ttl
        self._clock = clock
        self._history: dict[HistoryKey, _Entry[History]] = {}
        self._quotes: dict[str, _Entry[Quote]] = {}

    @staticmethod
    def _history_key(symbol: str, interval: Interval, start: int, end: int) -> HistoryKey:
        return (symbol.upper(), interval.value, start, end)

    def _lookup(self, store: dict[Any, _Entry[T]], key: Any) -> T | None:
        if not self.enabled:
            return None
        entry = store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl:
            logger.debug("cache: expired %s", key)
            del store[key]
            return None
        logger.debug("cache: hit %s", key)
        return entry.data

    def _purge(self, store: dict[Any, _Entry[T]]) -> None:
        """Drop every expired entry from *store*."""
        now = self._clock()
        expired = [key for key, entry in store.items() if now - entry.stored_at > self.ttl]
        for key in expired:
            del store[key]
        if expired:
            logger.debug("cache: purged %d expired entries", len(expired))

    def get_history(self, symbol: str, interval: Interval, start: int, end: int) -> History | None:
        return self._lookup(self._history, self._history_key(symbol, interval, start, end))

    def set_history(
        self, symbol: str, interval: Interval, start: int, end: int, history: History
    ) -> None:
        if not self.enabled:
            return
        self._purge(self._history)
        key = self._history_key(symbol, interval, start, end)
        self._history[key] = _Entry(history, self._clock())

    def get_quote(self, symbol: str) -> Quote | None:
        return self._lookup(self._quotes, symbol.upper())

    def set_quote(self, symbol: str, quote: Quote) -> None:
        if not self.enabled:
            return
        self._purge(self._quotes)
        self._quotes[symbol.upper()] = _Entry(quote, self._clock())

    def clear(self) -> None:
        self._history.clear()
        self._quotes.clear()

    def stats(self) -> CacheStats:
        return CacheStats(history_count=len(self._history), quote_count=len(self._quotes))


class CachedProvider(DataProvider):
    """Wrap another provider and serve repeated requests from a :class:`TTLCache`."""

    def __init__(self, inner: DataProvider, cache: TTLCache) -> None:
        self.inner = inner
        self.cache = cache

    def provider_name(self) -> str:
        return self.inner.provider_name()

    def supported_intervals(self) -> list[Interval]:
        return self.inner.supported_intervals()

    def fetch_history(
        self,
        symbol: str,
        interval: Interval,
        start: datetime,
        end: datetime,
    ) -> History:
        period1, period2 = self._to_unix(start), self._to_unix(end)
        cached = self.cache.get_history(symbol, interval, period1, period2)
        if cached is not None:
            return cached
        history = self.inner.fetch_history(symbol, interval, start, end)
        self.cache.set_history(symbol, interval, period1, period2, history)
        return history

    def fetch_quote(self, symbol: str) -> Quote:
        cached = self.cache.get_quote(symbol)
        if cached is not None:
            return cached
        quote = self.inner.fetch_quote(symbol)
        self.cache.set_quote(symbol, quote)
        return quote

    def fetch_actions(self, symbol: str, start: datetime, end: datetime) -> CorporateActions:
        return self.inner.fetch_actions(symbol, start, end)
