"""Shared test fixtures for Market Indicators.

Provides reusable OHLCV DataFrames, Histories and canned Yahoo chart
payloads used across all test modules.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
import pytest

from data.models import Bar, History, Interval


def history_from_frame(df: pd.DataFrame, symbol: str = "TEST") -> History:
    """Convert an OHLCV DataFrame with a datetime ``timestamp`` column to a History."""
    bars = tuple(
        Bar(
            timestamp=int(pd.Timestamp(row.timestamp).timestamp()),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=int(row.volume),
        )
        for row in df.itertuples(index=False)
    )
    return History(symbol=symbol, interval=Interval.D1, bars=bars)


@pytest.fixture()
def sample_ohlcv_df() -> pd.DataFrame:
    """A 100-row OHLCV DataFrame with realistic daily price data.

    The series starts at $100 and follows a random walk with moderate
    volatility.  Volume oscillates around 1 000 000 shares.
    """
    rng = np.random.default_rng(42)
    n = 100

    # Build a realistic close series via cumulative log-returns.
    log_returns = rng.normal(loc=0.0005, scale=0.015, size=n)
    close = 100.0 * np.exp(np.cumsum(log_returns))

    # Derive OHLC from close with small intraday ranges.
    high = close * (1.0 + rng.uniform(0.001, 0.02, size=n))
    low = close * (1.0 - rng.uniform(0.001, 0.02, size=n))
    open_ = low + rng.uniform(0.3, 0.7, size=n) * (high - low)
    volume = rng.integers(500_000, 2_000_000, size=n).astype(float)

    timestamps = pd.date_range("2024-01-01", periods=n, freq="D", tz="UTC")

    return pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": open_,
            "high": high,
            "low": low,
            "close": close,
            "volume": volume,
        }
    )


@pytest.fixture()
def small_ohlcv_df() -> pd.DataFrame:
    """A 20-row OHLCV DataFrame for simple / edge-case tests.

    Prices follow a gentle uptrend from $50 to $60 with deterministic
    values so that hand-calculated expected results are straightforward.
    """
    n = 20
    close = np.linspace(50.0, 60.0, n)
    high = close + 1.0
    low = close - 1.0
    open_ = close - 0.5
    volume = np.full(n, 1_000_000.0)

    timestamps = pd.date_range("2024-06-01", periods=n, freq="D", tz="UTC")

    return pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": open_,
            "high": high,
            "low": low,
            "close": close,
            "volume": volume,
        }
    )


@pytest.fixture()
def sample_history(sample_ohlcv_df: pd.DataFrame) -> History:
    """The 100-bar sample as a :class:`History` for symbol ``TEST``."""
    return history_from_frame(sample_ohlcv_df)


@pytest.fixture()
def chart_payload() -> dict[str, Any]:
    """A Yahoo chart API response with three daily bars.

    The middle bar has a missing close (a data gap) and must be skipped by
    the parser.
    """
    return {
        "chart": {
            "result": [
                {
                    "meta": {
                        "symbol": "AAPL",
                        "shortName": "Apple Inc.",
                        "longName": "Apple Inc.",
                        "currency": "USD",
                        "exchangeName": "NMS",
                        "exchangeTimezoneName": "America/New_York",
                        "instrumentType": "EQUITY",
                        "regularMarketPrice": 190.0,
                        "regularMarketTime": 1704412800,
                        "regularMarketDayHigh": 191.5,
                        "regularMarketDayLow": 188.0,
                        "regularMarketVolume": 52_000_000,
                        "chartPreviousClose": 185.0,
                        "fiftyTwoWeekLow": 152.0,
                        "fiftyTwoWeekHigh": 199.6,
                    },
                    "timestamp": [1704240000, 1704326400, 1704412800],
                    "indicators": {
                        "quote": [
                            {
                                "open": [187.1, 184.2, 182.1],
                                "high": [188.4, 185.9, 183.1],
                                "low": [183.9, 183.4, 180.9],
                                "close": [185.6, None, 181.2],
                                "volume": [82_488_700, 58_414_500, None],
                            }
                        ]
                    },
                }
            ],
            "error": None,
        }
    }
