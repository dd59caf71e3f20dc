"""Abstract base class for market data providers."""

from __future__ import annotations

import abc
from datetime import datetime, timezone

from data.models import CorporateActions, History, Interval, Quote


class ProviderError(Exception):
    """Base class for failures while retrieving market data."""


class DataProvider(abc.ABC):
    """Base interface every data provider must implement.

    Concrete providers fetch OHLCV history and quote snapshots from a
    specific source and return them as :class:`~data.models.History` and
    :class:`~data.models.Quote` objects.  Histories are sorted oldest first
    and contain no duplicate timestamps.
    """

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def fetch_history(
        self,
        symbol: str,
        interval: Interval,
        start: datetime,
        end: datetime,
    ) -> History:
        """Fetch OHLCV bars for *symbol* over [*start*, *end*].

        Args:
            symbol: Ticker as the source expects it (e.g. ``"AAPL"``).
            interval: Bar interval.
            start: Inclusive start of the requested range (UTC).
            end: Inclusive end of the requested range (UTC).

        Returns:
            A :class:`~data.models.History`, possibly empty.
        """
        ...

    @abc.abstractmethod
    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch the latest quote snapshot for *symbol*."""
        ...

    @abc.abstractmethod
    def fetch_actions(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> CorporateActions:
        """Fetch dividends and splits for *symbol* over [*start*, *end*].

        Returns:
            A :class:`~data.models.CorporateActions`, empty when the symbol
            paid no dividends and had no splits in the range.
        """
        ...

    @abc.abstractmethod
    def supported_intervals(self) -> list[Interval]:
        """Return the intervals this provider supports."""
        ...

    @abc.abstractmethod
    def provider_name(self) -> str:
        """Return a short, unique identifier for this provider (e.g. ``"yahoo"``)."""
        ...

    # ------------------------------------------------------------------
    # Helpers available to all providers
    # ------------------------------------------------------------------

    def _validate_interval(self, interval: Interval) -> None:
        """Raise :class:`ValueError` if *interval* is not supported."""
        supported = self.supported_intervals()
        if interval not in supported:
            raise ValueError(
                f"Interval '{interval}' is not supported by {self.provider_name()}. "
                f"Supported: {[str(i) for i in supported]}"
            )

    @staticmethod
    def _normalize_symbol(symbol: str) -> str:
        """Strip whitespace; raise :class:`ValueError` for a blank symbol."""
        cleaned = symbol.strip()
        if not cleaned:
            raise ValueError("Symbol cannot be empty or whitespace")
        return cleaned

    @staticmethod
    def _to_unix(dt: datetime) -> int:
        """Convert a datetime to a Unix timestamp (seconds), assuming UTC if naive."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())
