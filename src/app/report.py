"""Latest-value indicator report for a single history.

Each requested indicator is computed independently; one that cannot be
evaluated (e.g. a 200-bar SMA over 60 bars) is logged and left out of the
report instead of aborting the rest.  Signal labels are presentation only.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

import pandas as pd

from app.logging import get_logger
from data.models import History
from indicators import core
from indicators.errors import IndicatorError

logger = get_logger(__name__)

RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
STOCH_OVERBOUGHT = 80.0
STOCH_OVERSOLD = 20.0
ADX_STRONG = 25.0
ADX_MODERATE = 20.0


@dataclass(frozen=True)
class IndicatorSettings:
    """Which indicators to report, and with which parameters."""

    sma: tuple[int, ...] = ()
    ema: tuple[int, ...] = ()
    wma: tuple[int, ...] = ()
    rsi: int | None = None
    macd: bool = False
    stochastic: bool = False
    bb: int | None = None
    bb_std: float = 2.0
    atr: int | None = None
    adx: int | None = None
    obv: bool = False
    vwap: bool = False

    @classmethod
    def all_defaults(cls) -> IndicatorSettings:
        return cls(
            sma=(20, 50, 200),
            ema=(12, 26),
            rsi=14,
            macd=True,
            stochastic=True,
            bb=20,
            atr=14,
            adx=14,
            obv=True,
            vwap=True,
        )

    @classmethod
    def from_config(cls, section: dict[str, Any]) -> IndicatorSettings:
        """Build settings from the ``indicators`` config section.

        Missing keys keep the :meth:`all_defaults` value.
        """
        defaults = cls.all_defaults()

        def periods(key: str) -> tuple[int, ...]:
            value = section.get(key, getattr(defaults, key))
            return tuple(int(p) for p in (value or ()))

        def optional_int(key: str) -> int | None:
            value = section.get(key, getattr(defaults, key))
            return int(value) if value else None

        return cls(
            sma=periods("sma"),
            ema=periods("ema"),
            wma=periods("wma"),
            rsi=optional_int("rsi"),
            macd=bool(section.get("macd", defaults.macd)),
            stochastic=bool(section.get("stochastic", defaults.stochastic)),
            bb=optional_int("bb"),
            bb_std=float(section.get("bb_std", defaults.bb_std)),
            atr=optional_int("atr"),
            adx=optional_int("adx"),
            obv=bool(section.get("obv", defaults.obv)),
            vwap=bool(section.get("vwap", defaults.vwap)),
        )

    def is_empty(self) -> bool:
        return not (
            self.sma or self.ema or self.wma or self.rsi or self.macd
            or self.stochastic or self.bb or self.atr or self.adx
            or self.obv or self.vwap
        )


@dataclass(frozen=True)
class ReportLine:
    group: str
    name: str
    values: dict[str, float] = field(default_factory=dict)
    signal: str | None = None


# ---------------------------------------------------------------------------
# Signal labels
# ---------------------------------------------------------------------------


def rsi_signal(value: float) -> str:
    if value > RSI_OVERBOUGHT:
        return "OVERBOUGHT"
    if value < RSI_OVERSOLD:
        return "OVERSOLD"
    return "NEUTRAL"


def stochastic_signal(k: float) -> str:
    if k > STOCH_OVERBOUGHT:
        return "OVERBOUGHT"
    if k < STOCH_OVERSOLD:
        return "OVERSOLD"
    return "NEUTRAL"


def macd_signal(histogram: float) -> str:
    return "BULLISH" if histogram > 0 else "BEARISH"


def bollinger_position(pct_b: float) -> str:
    """Label the close's position within the bands from %B (0-100 scale)."""
    if pct_b > 100:
        return "ABOVE UPPER BAND"
    if pct_b < 0:
        return "BELOW LOWER BAND"
    if pct_b > 80:
        return "NEAR UPPER"
    if pct_b < 20:
        return "NEAR LOWER"
    return "MIDDLE"


def adx_signal(value: float) -> str:
    if value > ADX_STRONG:
        return "STRONG TREND"
    if value > ADX_MODERATE:
        return "MODERATE TREND"
    return "WEAK TREND"


def price_vs(price: float, reference: float) -> str:
    return "ABOVE" if price > reference else "BELOW"


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def _latest(series: pd.Series) -> float:
    return float(series.iloc[-1])


def _defined(*values: float) -> bool:
    return all(not math.isnan(v) for v in values)


def _attempt(name: str, fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except IndicatorError as exc:
        logger.warning("%s: %s", name, exc)
        return None


def _moving_average_lines(
    group: str, label: str, fn: Callable[[Any, int], pd.Series], closes: pd.Series, periods: tuple[int, ...]
) -> list[ReportLine]:
    price = _latest(closes)
    lines: list[ReportLine] = []
    for period in periods:
        name = f"{label}({period})"
        result = _attempt(name, lambda: fn(closes, period))
        if result is None:
            continue
        value = _latest(result)
        if not _defined(value):
            continue
        diff = price - value
        lines.append(
            ReportLine(
                group,
                name,
                {"value": value, "diff": diff, "diff_pct": diff / value * 100.0 if value else 0.0},
                price_vs(price, value),
            )
        )
    return lines


def build_report(history: History, settings: IndicatorSettings) -> list[ReportLine]:
    """Compute the latest value of every indicator requested in *settings*.

    Raises:
        ValueError: If *history* has no bars.
    """
    if len(history) == 0:
        raise ValueError(f"No data available for {history.symbol}")

    bars = history.to_frame()
    closes = bars["close"]
    price = _latest(closes)
    lines: list[ReportLine] = []

    lines += _moving_average_lines("Moving Averages", "SMA", core.sma, closes, settings.sma)
    lines += _moving_average_lines("Moving Averages", "EMA", core.ema, closes, settings.ema)
    lines += _moving_average_lines("Moving Averages", "WMA", core.wma, closes, settings.wma)

    if settings.rsi:
        result = _attempt("RSI", lambda: core.rsi(closes, settings.rsi))
        if result is not None and _defined(_latest(result)):
            value = _latest(result)
            lines.append(ReportLine("Momentum", f"RSI({settings.rsi})", {"value": value}, rsi_signal(value)))

    if settings.macd:
        result = _attempt("MACD", lambda: core.macd(closes))
        if result is not None:
            latest = {key: _latest(series) for key, series in result.items()}
            if _defined(latest["macd"], latest["signal"]):
                lines.append(ReportLine("Momentum", "MACD", latest, macd_signal(latest["histogram"])))

    if settings.stochastic:
        result = _attempt("Stochastic", lambda: core.stochastic(bars))
        if result is not None and _defined(_latest(result["k"])):
            k, d = _latest(result["k"]), _latest(result["d"])
            lines.append(ReportLine("Momentum", "Stochastic", {"k": k, "d": d}, stochastic_signal(k)))

    if settings.bb:
        result = _attempt("Bollinger Bands", lambda: core.bollinger_bands(closes, settings.bb, settings.bb_std))
        if result is not None and _defined(_latest(result["upper"])):
            upper, middle, lower = (_latest(result[k]) for k in ("upper", "middle", "lower"))
            width = upper - lower
            pct_b = (price - lower) / width * 100.0 if width else 50.0
            lines.append(
                ReportLine(
                    "Volatility",
                    f"BB({settings.bb}, {settings.bb_std:g})",
                    {"upper": upper, "middle": middle, "lower": lower, "pct_b": pct_b},
                    bollinger_position(pct_b),
                )
            )

    if settings.atr:
        result = _attempt("ATR", lambda: core.atr(bars, settings.atr))
        if result is not None and _defined(_latest(result)):
            value = _latest(result)
            lines.append(
                ReportLine("Volatility", f"ATR({settings.atr})", {"value": value, "pct_of_price": value / price * 100.0})
            )

    if settings.adx:
        result = _attempt("ADX", lambda: core.adx(bars, settings.adx))
        if result is not None and _defined(_latest(result["adx"])):
            latest = {key: _latest(series) for key, series in result.items()}
            lines.append(ReportLine("Trend Strength", f"ADX({settings.adx})", latest, adx_signal(latest["adx"])))

    if settings.obv:
        result = _attempt("OBV", lambda: core.obv(bars))
        if result is not None:
            value = _latest(result)
            trend = "ACCUMULATION" if value > float(result.mean()) else "DISTRIBUTION"
            lines.append(ReportLine("Volume", "OBV", {"value": value}, trend))

    if settings.vwap:
        result = _attempt("VWAP", lambda: core.vwap(bars))
        if result is not None:
            value = _latest(result)
            lines.append(ReportLine("Volume", "VWAP", {"value": value}, price_vs(price, value)))

    logger.debug("report: %d indicator lines for %s", len(lines), history.symbol)
    return lines
