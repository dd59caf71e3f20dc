"""Yahoo Finance public chart API provider for OHLCV history and quotes."""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.logging import get_logger
from data.models import (
    Bar,
    CorporateActions,
    Dividend,
    History,
    Interval,
    Quote,
    QuoteType,
    Split,
)
from data.providers.base import DataProvider, ProviderError

logger = get_logger(__name__)

_BASE_URL = "https://query2.finance.yahoo.com/v8/finance/chart/{symbol}"

_RATE_LIMIT_SECONDS = 1.0

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


class YahooApiError(ProviderError):
    """Yahoo answered, but with an error payload or no data."""


class YahooProvider(DataProvider):
    """Fetch OHLCV bars and quote snapshots from the Yahoo Finance chart API.

    Works with US equities (``AAPL``), foreign listings (``SHOP.TO``), ETFs,
    indices (``^GSPC``), currencies and crypto pairs (``BTC-USD``).  No
    authentication is required.

    Args:
        timeout: Per-request timeout in seconds.
        rate_limit_seconds: Minimum spacing between two requests.
        transport: Optional :mod:`httpx` transport, used by tests to serve
            canned responses.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        rate_limit_seconds: float = _RATE_LIMIT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._rate_limit_seconds = rate_limit_seconds
        self._transport = transport
        self._last_request_time: float = 0.0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # DataProvider interface
    # ------------------------------------------------------------------

    def provider_name(self) -> str:
        return "yahoo"

    def supported_intervals(self) -> list[Interval]:
        return list(Interval)

    def fetch_history(
        self,
        symbol: str,
        interval: Interval,
        start: datetime,
        end: datetime,
    ) -> History:
        symbol = self._normalize_symbol(symbol)
        self._validate_interval(interval)

        logger.info(
            "Yahoo: fetching %s %s from %s to %s",
            symbol,
            interval,
            start.isoformat(),
            end.isoformat(),
        )

        data = self._request_chart(
            symbol,
            {
                "interval": interval.value,
                "period1": self._to_unix(start),
                "period2": self._to_unix(end),
                "includePrePost": "false",
                "events": "",
            },
        )
        bars = self._parse_bars(data)

        logger.info("Yahoo: %d bars for %s %s", len(bars), symbol, interval)
        return History(symbol=symbol, interval=interval, bars=bars)

    def fetch_quote(self, symbol: str) -> Quote:
        symbol = self._normalize_symbol(symbol)
        logger.info("Yahoo: fetching quote for %s", symbol)
        data = self._request_chart(symbol, {"interval": "1d", "range": "1d"})
        return self._parse_quote(data, symbol)

    def fetch_actions(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> CorporateActions:
        symbol = self._normalize_symbol(symbol).upper()
        logger.info(
            "Yahoo: fetching dividends and splits for %s from %s to %s",
            symbol,
            start.date().isoformat(),
            end.date().isoformat(),
        )
        data = self._request_chart(
            symbol,
            {
                "interval": "1d",
                "period1": self._to_unix(start),
                "period2": self._to_unix(end),
                "events": "div,splits",
            },
        )
        actions = self._parse_actions(data, symbol)
        logger.info(
            "Yahoo: %d dividends, %d splits for %s",
            len(actions.dividends),
            len(actions.splits),
            symbol,
        )
        return actions

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @retry(
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    def _request_chart(self, symbol: str, params: dict[str, Any]) -> dict[str, Any]:
        """Execute one chart API request with rate-limiting and retries.

        Args:
            symbol: Ticker as Yahoo expects it.
            params: Query parameters for the chart endpoint.

        Returns:
            The first element of the ``chart.result`` array.

        Raises:
            YahooApiError: If the response carries ``chart.error`` or no
                result.  Not retried.
        """
        self._rate_limit()

        url = _BASE_URL.format(symbol=symbol)
        headers = {"User-Agent": _USER_AGENT}

        with httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            resp = client.get(url, params=params, headers=headers)

        # Unknown symbols come back as 404 with a chart.error payload.
        if resp.status_code == 404:
            self._raise_for_chart_error(symbol, self._safe_json(resp))
        resp.raise_for_status()

        body = resp.json()
        self._raise_for_chart_error(symbol, body)

        results = body.get("chart", {}).get("result")
        if not results:
            raise YahooApiError(f"No data returned for {symbol}")
        return results[0]

    @staticmethod
    def _safe_json(resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _raise_for_chart_error(symbol: str, body: dict[str, Any]) -> None:
        error = body.get("chart", {}).get("error")
        if not error:
            return
        if isinstance(error, dict):
            message = error.get("description") or error.get("code") or str(error)
        else:
            message = str(error)
        logger.error("Yahoo API error for %s: %s", symbol, message)
        raise YahooApiError(f"Yahoo Finance API error for {symbol}: {message}")

    @staticmethod
    def _parse_bars(data: dict[str, Any]) -> tuple[Bar, ...]:
        """Extract bars from a Yahoo chart result object.

        Bars with a missing or zero open/high/low/close (holidays, halted
        sessions) are skipped; a missing volume counts as 0.  Output is
        sorted by timestamp with duplicates collapsed to the last one seen.
        """
        timestamps = data.get("timestamp")
        if not timestamps:
            return ()

        quote_list = data.get("indicators", {}).get("quote", [])
        if not quote_list:
            return ()

        quote = quote_list[0]
        opens = quote.get("open") or []
        highs = quote.get("high") or []
        lows = quote.get("low") or []
        closes = quote.get("close") or []
        volumes = quote.get("volume") or []

        by_time: dict[int, Bar] = {}
        for i, ts in enumerate(timestamps):
            o = opens[i] if i < len(opens) else None
            h = highs[i] if i < len(highs) else None
            lo = lows[i] if i < len(lows) else None
            c = closes[i] if i < len(closes) else None
            v = volumes[i] if i < len(volumes) else None

            if any(val is None or val == 0 for val in (o, h, lo, c)):
                continue

            by_time[int(ts)] = Bar(
                timestamp=int(ts),
                open=float(o),
                high=float(h),
                low=float(lo),
                close=float(c),
                volume=int(v) if v is not None else 0,
            )

        return tuple(by_time[ts] for ts in sorted(by_time))

    @staticmethod
    def _parse_quote(data: dict[str, Any], symbol: str) -> Quote:
        """Build a :class:`Quote` from the ``meta`` block of a chart result."""
        meta = data.get("meta")
        if not meta:
            raise YahooApiError(f"Missing quote metadata for {symbol}")

        def num(key: str, default: float = 0.0) -> float:
            value = meta.get(key)
            return float(value) if value is not None else default

        previous_close = meta.get("chartPreviousClose", meta.get("previousClose"))

        return Quote(
            symbol=meta.get("symbol") or symbol,
            short_name=meta.get("shortName") or "",
            long_name=meta.get("longName") or "",
            quote_type=QuoteType.parse(meta.get("instrumentType")),
            currency=meta.get("currency") or "",
            exchange=meta.get("exchangeName") or "",
            exchange_timezone=meta.get("exchangeTimezoneName") or "",
            price=num("regularMarketPrice"),
            market_time=int(meta.get("regularMarketTime") or 0),
            day_open=num("regularMarketDayOpen", num("previousClose")),
            day_high=num("regularMarketDayHigh"),
            day_low=num("regularMarketDayLow"),
            volume=int(meta.get("regularMarketVolume") or 0),
            previous_close=float(previous_close) if previous_close is not None else 0.0,
            fifty_two_week_low=num("fiftyTwoWeekLow"),
            fifty_two_week_high=num("fiftyTwoWeekHigh"),
            fifty_day_average=num("fiftyDayAverage"),
            two_hundred_day_average=num("twoHundredDayAverage"),
            extra=dict(meta),
        )

    @staticmethod
    def _parse_actions(data: dict[str, Any], symbol: str) -> CorporateActions:
        """Read ``events.dividends`` and ``events.splits`` from a chart result.

        Both are objects keyed by timestamp.  A result without an ``events``
        block means the symbol had no actions in the range.
        """
        events = data.get("events") or {}
        symbol = (data.get("meta") or {}).get("symbol") or symbol

        dividends = []
        for key, item in (events.get("dividends") or {}).items():
            amount = item.get("amount")
            if amount is None:
                continue
            dividends.append(Dividend(timestamp=int(item.get("date") or key), amount=float(amount)))

        splits = []
        for key, item in (events.get("splits") or {}).items():
            numerator = float(item.get("numerator") or 0)
            denominator = float(item.get("denominator") or 0)
            ratio = item.get("splitRatio") or f"{numerator:g}:{denominator:g}"
            splits.append(
                Split(
                    timestamp=int(item.get("date") or key),
                    numerator=numerator,
                    denominator=denominator,
                    ratio=ratio,
                )
            )

        return CorporateActions(
            symbol=symbol,
            dividends=tuple(sorted(dividends, key=lambda d: d.timestamp)),
            splits=tuple(sorted(splits, key=lambda s: s.timestamp)),
        )

    def _rate_limit(self) -> None:
        """Block until at least ``rate_limit_seconds`` since the last request.

        The lock is held across the sleep, so concurrent batch workers are
        spaced out one after another.
        """
        with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self._rate_limit_seconds:
                time.sleep(self._rate_limit_seconds - elapsed)
            self._last_request_time = time.monotonic()
