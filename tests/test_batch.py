"""Tests for concurrent multi-symbol downloads."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from data.batch import download_batch
from data.models import Bar, CorporateActions, History, Interval, Quote
from data.providers.base import DataProvider
from data.providers.yahoo import YahooApiError, YahooProvider

_START = datetime(2024, 1, 1, tzinfo=timezone.utc)
_END = datetime(2024, 2, 1, tzinfo=timezone.utc)


class ScriptedProvider(DataProvider):
    """Returns one bar per symbol, or raises the error registered for it."""

    def __init__(self, errors: dict[str, Exception] | None = None) -> None:
        self.errors = errors or {}

    def provider_name(self) -> str:
        return "scripted"

    def supported_intervals(self) -> list[Interval]:
        return list(Interval)

    def fetch_history(self, symbol, interval, start, end) -> History:
        if symbol in self.errors:
            raise self.errors[symbol]
        bar = Bar(timestamp=0, open=1.0, high=1.0, low=1.0, close=1.0)
        return History(symbol=symbol, interval=interval, bars=(bar,))

    def fetch_quote(self, symbol: str) -> Quote:
        return Quote(symbol=symbol)

    def fetch_actions(self, symbol, start, end) -> CorporateActions:
        return CorporateActions(symbol=symbol)


class TestDownloadBatch:
    def test_all_successful(self) -> None:
        result = download_batch(ScriptedProvider(), ["AAPL", "MSFT", "GOOG"], Interval.D1, _START, _END)
        assert set(result.successful) == {"AAPL", "MSFT", "GOOG"}
        assert result.failed == {}
        assert result.total == 3
        assert result.successful["MSFT"].symbol == "MSFT"

    def test_failures_do_not_abort_batch(self) -> None:
        request = httpx.Request("GET", "https://example.invalid")
        provider = ScriptedProvider(
            {
                "BAD": YahooApiError("No data returned for BAD"),
                "DOWN": httpx.ConnectError("connection refused", request=request),
            }
        )
        result = download_batch(provider, ["AAPL", "BAD", "DOWN"], Interval.D1, _START, _END, max_workers=2)

        assert list(result.successful) == ["AAPL"]
        assert set(result.failed) == {"BAD", "DOWN"}
        assert "No data returned" in result.failed["BAD"]
        assert result.total == 3

    def test_blank_symbols_are_dropped(self) -> None:
        result = download_batch(ScriptedProvider(), [" AAPL ", "", "  "], Interval.D1, _START, _END)
        assert list(result.successful) == ["AAPL"]

    def test_no_symbols(self) -> None:
        with pytest.raises(ValueError, match="No symbols provided"):
            download_batch(ScriptedProvider(), ["", " "], Interval.D1, _START, _END)

    def test_unexpected_errors_propagate(self) -> None:
        provider = ScriptedProvider({"AAPL": RuntimeError("bug")})
        with pytest.raises(RuntimeError):
            download_batch(provider, ["AAPL"], Interval.D1, _START, _END)

    def test_concurrent_workers_respect_rate_limit(self, chart_payload: dict[str, Any]) -> None:
        sent_at: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent_at.append(time.monotonic())
            return httpx.Response(200, json=chart_payload)

        provider = YahooProvider(rate_limit_seconds=0.3, transport=httpx.MockTransport(handler))
        symbols = ["AAPL", "MSFT", "GOOG", "AMZN"]
        result = download_batch(provider, symbols, Interval.D1, _START, _END, max_workers=4)

        assert set(result.successful) == set(symbols)
        sent_at.sort()
        gaps = [later - earlier for earlier, later in zip(sent_at, sent_at[1:])]
        assert len(gaps) == 3
        assert min(gaps) >= 0.25
