"""Tests for the Yahoo chart API provider.

HTTP traffic is served by :class:`httpx.MockTransport`, so no request
leaves the process.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest
from tenacity import wait_none

from data.models import Interval, QuoteType
from data.providers import YahooApiError, YahooProvider, get_provider
from data.providers.base import ProviderError

_START = datetime(2024, 1, 1, tzinfo=timezone.utc)
_END = datetime(2024, 1, 10, tzinfo=timezone.utc)


def _provider(handler: Callable[[httpx.Request], httpx.Response]) -> YahooProvider:
    return YahooProvider(rate_limit_seconds=0.0, transport=httpx.MockTransport(handler))


@pytest.fixture()
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Skip the exponential back-off between retries."""
    monkeypatch.setattr(YahooProvider._request_chart.retry, "wait", wait_none())


class TestFetchHistory:
    def test_parses_bars_and_skips_gaps(self, chart_payload: dict[str, Any]) -> None:
        provider = _provider(lambda request: httpx.Response(200, json=chart_payload))
        history = provider.fetch_history(" AAPL ", Interval.D1, _START, _END)

        assert history.symbol == "AAPL"
        assert history.interval is Interval.D1
        assert len(history) == 2
        assert [bar.timestamp for bar in history] == [1704240000, 1704412800]
        assert history[0].close == pytest.approx(185.6)
        assert history[0].volume == 82_488_700
        # Missing volume counts as zero.
        assert history[1].volume == 0

    def test_request_parameters(self, chart_payload: dict[str, Any]) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=chart_payload)

        _provider(handler).fetch_history("SHOP.TO", Interval.WK1, _START, _END)

        request = seen[0]
        assert request.url.host == "query2.finance.yahoo.com"
        assert request.url.path == "/v8/finance/chart/SHOP.TO"
        assert request.url.params["interval"] == "1wk"
        assert request.url.params["period1"] == str(int(_START.timestamp()))
        assert request.url.params["period2"] == str(int(_END.timestamp()))
        assert "Mozilla" in request.headers["User-Agent"]

    def test_bars_sorted_and_deduplicated(self) -> None:
        payload = {
            "chart": {
                "result": [
                    {
                        "meta": {"symbol": "X"},
                        "timestamp": [300, 100, 300],
                        "indicators": {
                            "quote": [
                                {
                                    "open": [3.0, 1.0, 3.5],
                                    "high": [3.0, 1.0, 3.5],
                                    "low": [3.0, 1.0, 3.5],
                                    "close": [3.0, 1.0, 3.5],
                                    "volume": [30, 10, 35],
                                }
                            ]
                        },
                    }
                ],
                "error": None,
            }
        }
        history = _provider(lambda r: httpx.Response(200, json=payload)).fetch_history(
            "X", Interval.D1, _START, _END
        )
        assert [bar.timestamp for bar in history] == [100, 300]
        assert history[1].close == 3.5

    def test_no_timestamps_gives_empty_history(self) -> None:
        payload = {"chart": {"result": [{"meta": {"symbol": "X"}}], "error": None}}
        history = _provider(lambda r: httpx.Response(200, json=payload)).fetch_history(
            "X", Interval.D1, _START, _END
        )
        assert len(history) == 0

    def test_unknown_symbol(self) -> None:
        payload = {
            "chart": {
                "result": None,
                "error": {"code": "Not Found", "description": "No data found, symbol may be delisted"},
            }
        }
        provider = _provider(lambda r: httpx.Response(404, json=payload))
        with pytest.raises(YahooApiError, match="symbol may be delisted"):
            provider.fetch_history("NOPE", Interval.D1, _START, _END)

    def test_empty_result(self) -> None:
        payload = {"chart": {"result": [], "error": None}}
        provider = _provider(lambda r: httpx.Response(200, json=payload))
        with pytest.raises(ProviderError, match="No data returned"):
            provider.fetch_history("X", Interval.D1, _START, _END)

    def test_blank_symbol(self) -> None:
        provider = _provider(lambda r: httpx.Response(500))
        with pytest.raises(ValueError):
            provider.fetch_history("   ", Interval.D1, _START, _END)

    def test_server_errors_are_retried(
        self, chart_payload: dict[str, Any], no_retry_wait: None
    ) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=chart_payload)

        history = _provider(handler).fetch_history("AAPL", Interval.D1, _START, _END)
        assert calls["n"] == 3
        assert len(history) == 2

    def test_retries_give_up(self, no_retry_wait: None) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(500)

        with pytest.raises(httpx.HTTPStatusError):
            _provider(handler).fetch_history("AAPL", Interval.D1, _START, _END)
        assert calls["n"] == 5


class TestFetchQuote:
    def test_quote_from_meta(self, chart_payload: dict[str, Any]) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=chart_payload)

        quote = _provider(handler).fetch_quote("aapl")

        assert seen[0].url.params["range"] == "1d"
        assert seen[0].url.params["interval"] == "1d"
        assert quote.symbol == "AAPL"
        assert quote.short_name == "Apple Inc."
        assert quote.quote_type is QuoteType.EQUITY
        assert quote.currency == "USD"
        assert quote.exchange == "NMS"
        assert quote.price == pytest.approx(190.0)
        assert quote.previous_close == pytest.approx(185.0)
        assert quote.change == pytest.approx(5.0)
        assert quote.volume == 52_000_000
        assert quote.fifty_two_week_high == pytest.approx(199.6)
        assert quote.fifty_two_week_change_percent == pytest.approx(25.0)
        # Fields Yahoo omitted default to zero.
        assert quote.fifty_day_average == 0.0
        assert quote.extra["exchangeTimezoneName"] == "America/New_York"

    def test_missing_meta(self) -> None:
        payload = {"chart": {"result": [{"timestamp": []}], "error": None}}
        with pytest.raises(YahooApiError, match="Missing quote metadata"):
            _provider(lambda r: httpx.Response(200, json=payload)).fetch_quote("X")


class TestFetchActions:
    PAYLOAD = {
        "chart": {
            "result": [
                {
                    "meta": {"symbol": "AAPL"},
                    "timestamp": [1597152600],
                    "events": {
                        "dividends": {
                            "1604673000": {"amount": 0.205, "date": 1604673000},
                            "1597411800": {"amount": 0.205, "date": 1597411800},
                        },
                        "splits": {
                            "1598880600": {
                                "date": 1598880600,
                                "numerator": 4,
                                "denominator": 1,
                                "splitRatio": "4:1",
                            }
                        },
                    },
                }
            ],
            "error": None,
        }
    }

    def test_parses_dividends_and_splits(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=self.PAYLOAD)

        actions = _provider(handler).fetch_actions("aapl", _START, _END)

        params = seen[0].url.params
        assert seen[0].url.path == "/v8/finance/chart/AAPL"
        assert params["events"] == "div,splits"
        assert params["interval"] == "1d"
        assert params["period1"] == str(int(_START.timestamp()))

        assert actions.symbol == "AAPL"
        # Sorted oldest first regardless of payload order.
        assert [d.timestamp for d in actions.dividends] == [1597411800, 1604673000]
        assert actions.total_dividends == pytest.approx(0.41)
        assert len(actions.splits) == 1
        split = actions.splits[0]
        assert split.ratio == "4:1"
        assert split.factor == pytest.approx(4.0)
        assert split.time.date().isoformat() == "2020-08-31"

    def test_no_events_gives_empty_actions(self, chart_payload: dict[str, Any]) -> None:
        actions = _provider(lambda r: httpx.Response(200, json=chart_payload)).fetch_actions(
            "AAPL", _START, _END
        )
        assert actions.empty
        assert actions.to_dict() == {"symbol": "AAPL", "dividends": [], "splits": []}

    def test_missing_ratio_is_built_from_parts(self) -> None:
        payload = {
            "chart": {
                "result": [
                    {
                        "meta": {"symbol": "X"},
                        "events": {"splits": {"100": {"numerator": 1, "denominator": 10}}},
                    }
                ],
                "error": None,
            }
        }
        actions = _provider(lambda r: httpx.Response(200, json=payload)).fetch_actions(
            "X", _START, _END
        )
        assert actions.splits[0].timestamp == 100
        assert actions.splits[0].ratio == "1:10"

    def test_blank_symbol(self) -> None:
        with pytest.raises(ValueError):
            _provider(lambda r: httpx.Response(500)).fetch_actions(" ", _START, _END)


class TestRegistry:
    def test_get_provider(self) -> None:
        provider = get_provider("yahoo", timeout=5.0)
        assert isinstance(provider, YahooProvider)
        assert provider.provider_name() == "yahoo"
        assert Interval.M1 in provider.supported_intervals()

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            get_provider("bloomberg")
