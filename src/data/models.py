"""Market data types: intervals, OHLCV bars, price histories and quotes.

All objects are immutable once built by a provider.  :class:`History` is the
series handed to the indicator engine; ``History.to_frame()`` gives the
canonical OHLCV DataFrame used throughout the project.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

import pandas as pd

FRAME_COLUMNS: list[str] = ["timestamp", "open", "high", "low", "close", "volume"]


class Interval(str, enum.Enum):
    """Bar interval as understood by the Yahoo chart API."""

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    D1 = "1d"
    WK1 = "1wk"
    MO1 = "1mo"

    @classmethod
    def parse(cls, text: str) -> Interval:
        """Parse an interval string such as ``"1d"`` (case-insensitive).

        Raises:
            ValueError: If *text* is not a known interval.
        """
        try:
            return cls(text.strip().lower())
        except ValueError:
            valid = ", ".join(i.value for i in cls)
            raise ValueError(f"Invalid interval: {text!r} (expected one of {valid})") from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Bar:
    """One OHLCV observation; ``timestamp`` is Unix seconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class History:
    """Chronological bars for one symbol and interval (index 0 = oldest)."""

    symbol: str
    interval: Interval
    bars: tuple[Bar, ...] = ()

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self):
        return iter(self.bars)

    def __getitem__(self, index: int) -> Bar:
        return self.bars[index]

    def append(self, bar: Bar) -> History:
        """Return a new History with *bar* added at the end."""
        return replace(self, bars=self.bars + (bar,))

    def closes(self) -> list[float]:
        return [bar.close for bar in self.bars]

    @property
    def latest(self) -> Bar | None:
        return self.bars[-1] if self.bars else None

    def to_frame(self) -> pd.DataFrame:
        """Return the bars as a DataFrame with :data:`FRAME_COLUMNS`.

        ``timestamp`` is converted to timezone-aware UTC datetimes; prices and
        volume are float64.
        """
        df = pd.DataFrame(
            [[b.timestamp, b.open, b.high, b.low, b.close, b.volume] for b in self.bars],
            columns=FRAME_COLUMNS,
        )
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
        for col in FRAME_COLUMNS[1:]:
            df[col] = df[col].astype("float64")
        return df

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "interval": self.interval.value,
            "data": [asdict(bar) for bar in self.bars],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> History:
        """Rebuild a History from :meth:`to_dict` output."""
        bars = tuple(
            Bar(
                timestamp=int(row["timestamp"]),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=int(row["volume"]),
            )
            for row in payload.get("data", [])
        )
        return cls(
            symbol=payload["symbol"],
            interval=Interval.parse(payload["interval"]),
            bars=bars,
        )

    def __repr__(self) -> str:
        return f"History(symbol={self.symbol!r}, interval={self.interval.value}, records={len(self)})"


class QuoteType(str, enum.Enum):
    EQUITY = "EQUITY"
    ETF = "ETF"
    MUTUALFUND = "MUTUALFUND"
    INDEX = "INDEX"
    CURRENCY = "CURRENCY"
    CRYPTOCURRENCY = "CRYPTOCURRENCY"
    FUTURE = "FUTURE"
    OPTION = "OPTION"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, text: str | None) -> QuoteType:
        try:
            return cls((text or "").upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Quote:
    """Snapshot of a symbol's latest market data.

    Change fields are derived from the raw values and are 0.0 when the
    reference value is missing.
    """

    symbol: str
    short_name: str = ""
    long_name: str = ""
    quote_type: QuoteType = QuoteType.UNKNOWN
    currency: str = ""
    exchange: str = ""
    exchange_timezone: str = ""

    price: float = 0.0
    market_time: int = 0
    day_open: float = 0.0
    day_high: float = 0.0
    day_low: float = 0.0
    volume: int = 0
    previous_close: float = 0.0

    fifty_two_week_low: float = 0.0
    fifty_two_week_high: float = 0.0
    fifty_day_average: float = 0.0
    two_hundred_day_average: float = 0.0

    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def change(self) -> float:
        if self.previous_close <= 0:
            return 0.0
        return self.price - self.previous_close

    @property
    def change_percent(self) -> float:
        if self.previous_close <= 0:
            return 0.0
        return self.change / self.previous_close * 100.0

    @property
    def fifty_two_week_change_percent(self) -> float:
        """Distance of the price above the 52-week low, in percent."""
        if self.fifty_two_week_low <= 0:
            return 0.0
        return (self.price - self.fifty_two_week_low) / self.fifty_two_week_low * 100.0

    @property
    def fifty_day_average_change_percent(self) -> float:
        if self.fifty_day_average <= 0:
            return 0.0
        return (self.price - self.fifty_day_average) / self.fifty_day_average * 100.0

    @property
    def two_hundred_day_average_change_percent(self) -> float:
        if self.two_hundred_day_average <= 0:
            return 0.0
        return (
            (self.price - self.two_hundred_day_average)
            / self.two_hundred_day_average
            * 100.0
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("extra")
        data["quote_type"] = self.quote_type.value
        data["change"] = self.change
        data["change_percent"] = self.change_percent
        data["fifty_two_week_change_percent"] = self.fifty_two_week_change_percent
        return data


@dataclass(frozen=True)
class Dividend:
    """Cash dividend per share paid on ``timestamp`` (Unix seconds)."""

    timestamp: int
    amount: float

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class Split:
    """Stock split; ``ratio`` is Yahoo's display form such as ``"4:1"``."""

    timestamp: int
    numerator: float
    denominator: float
    ratio: str = ""

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @property
    def factor(self) -> float:
        if self.denominator == 0:
            return 0.0
        return self.numerator / self.denominator


@dataclass(frozen=True)
class CorporateActions:
    """Dividends and splits for one symbol, each sorted oldest first."""

    symbol: str
    dividends: tuple[Dividend, ...] = ()
    splits: tuple[Split, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.dividends and not self.splits

    @property
    def total_dividends(self) -> float:
        return sum(d.amount for d in self.dividends)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "dividends": [
                {"date": d.time.date().isoformat(), "amount": d.amount} for d in self.dividends
            ],
            "splits": [
                {"date": s.time.date().isoformat(), "splitRatio": s.ratio} for s in self.splits
            ],
        }
