"""Technical indicators implemented as pure functions on pandas Series/DataFrames.

Every function returns a float64 Series (or a dict of parallel Series for
composite indicators) with exactly the same length and index as its input.
Positions inside an indicator's warm-up window hold NaN.  Recursive
smoothing (EMA, Wilder) runs as an explicit left-to-right loop seeded with
the simple mean of the first window, so results are reproducible bar for
bar.

Close-based indicators accept anything :func:`indicators.inputs.as_close_series`
understands; bar-based ones accept anything :func:`indicators.inputs.as_bar_frame`
understands (a DataFrame with OHLCV columns, a ``History`` or a list of bars).
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from indicators.errors import InsufficientData, InvalidParameter, PeriodTooLong
from indicators.inputs import as_bar_frame, as_close_series


# ---------------------------------------------------------------------------
# Shared primitives / validation
# ---------------------------------------------------------------------------


def _check_not_empty(n: int, name: str) -> None:
    if n == 0:
        raise InsufficientData(f"{name}: input series is empty")


def _check_period(period: Any, name: str) -> None:
    if isinstance(period, bool) or not isinstance(period, (int, np.integer)) or period < 1:
        raise InvalidParameter(f"{name}: period must be a positive integer, got {period!r}")


def _validate_period(n: int, period: Any, name: str, minimum: int | None = None) -> None:
    """Fail fast on an empty series, a bad period, or a series that is too short.

    Args:
        n:       Length of the input series.
        period:  Lookback requested by the caller.
        name:    Indicator name used in error messages.
        minimum: Minimum series length; defaults to ``period``.
    """
    _check_not_empty(n, name)
    _check_period(period, name)
    needed = period if minimum is None else minimum
    if n < needed:
        raise PeriodTooLong(name, needed, n)


def _bars(bars: Any, name: str, volume: bool = False) -> pd.DataFrame:
    frame = as_bar_frame(bars)
    _check_not_empty(len(frame), name)
    if volume and "volume" not in frame.columns:
        raise KeyError(f"{name}: bars have no 'volume' column")
    return frame


def _rolling_mean(values: np.ndarray, period: int) -> np.ndarray:
    """Exact mean of each trailing window; NaN before the first full window."""
    out = np.full(len(values), np.nan)
    if len(values) >= period:
        out[period - 1:] = sliding_window_view(values, period).mean(axis=1)
    return out


def _ema_values(values: np.ndarray, period: int) -> np.ndarray:
    out = np.full(len(values), np.nan)
    if len(values) < period:
        return out
    alpha = 2.0 / (period + 1.0)
    current = _rolling_mean(values[:period], period)[period - 1]
    out[period - 1] = current
    for i in range(period, len(values)):
        current = values[i] * alpha + current * (1.0 - alpha)
        out[i] = current
    return out


def _wilder(values: np.ndarray, period: int, start: int = 0) -> np.ndarray:
    """Wilder smoothing of ``values[start:]``.

    The seed is the mean of the first ``period`` samples from *start* and sits
    at ``start + period - 1``; each later value weighs the new sample by
    ``1 / period``.
    """
    out = np.full(len(values), np.nan)
    seed_end = start + period
    if seed_end > len(values):
        return out
    current = values[start:seed_end].mean()
    out[seed_end - 1] = current
    for i in range(seed_end, len(values)):
        current = (current * (period - 1) + values[i]) / period
        out[i] = current
    return out


# ---------------------------------------------------------------------------
# Trend / Moving Averages
# ---------------------------------------------------------------------------


def sma(series: Any, period: int) -> pd.Series:
    """Simple Moving Average.

    Args:
        series: Price or value series.
        period: Lookback window length.

    Returns:
        A Series of the trailing arithmetic mean.  The first ``period - 1``
        values will be NaN.

    Raises:
        InsufficientData: If *series* is empty.
        InvalidParameter: If *period* is not positive or exceeds the series.
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "SMA")
    return pd.Series(_rolling_mean(close.to_numpy(), period), index=close.index)


def ema(series: Any, period: int) -> pd.Series:
    """Exponential Moving Average.

    Seeded with the SMA of the first ``period`` values at index
    ``period - 1``, then ``ema[i] = x[i] * alpha + ema[i-1] * (1 - alpha)``
    with ``alpha = 2 / (period + 1)``.

    Args:
        series: Price or value series.
        period: Span for the exponential weighting.

    Returns:
        A Series of the exponential moving average.  The first
        ``period - 1`` values will be NaN.
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "EMA")
    return pd.Series(_ema_values(close.to_numpy(), period), index=close.index)


def wma(series: Any, period: int) -> pd.Series:
    """Weighted Moving Average with linear weights ``1..period``.

    The newest point in each window carries weight ``period``.
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "WMA")
    values = close.to_numpy()
    weights = np.arange(1, period + 1, dtype="float64")
    out = np.full(len(values), np.nan)
    out[period - 1:] = sliding_window_view(values, period) @ weights / (period * (period + 1) / 2.0)
    return pd.Series(out, index=close.index)


# ---------------------------------------------------------------------------
# Momentum
# ---------------------------------------------------------------------------


def rsi(series: Any, period: int = 14) -> pd.Series:
    """Relative Strength Index using Wilder's smoothing method.

    The first average gain/loss is the simple mean over the first ``period``
    price changes; later averages use ``(prev * (period - 1) + x) / period``.

    Args:
        series: Price series (typically close prices).
        period: Lookback period (default 14).

    Returns:
        RSI values between 0 and 100.  The first ``period`` values will be
        NaN.  A window with gains but no losses gives 100; a window with no
        movement at all gives 50.
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "RSI", minimum=period + 1)

    delta = close.diff().to_numpy()
    gain = np.where(delta > 0, delta, 0.0)
    loss = np.where(delta < 0, -delta, 0.0)

    avg_gain = _wilder(gain, period, start=1)
    avg_loss = _wilder(loss, period, start=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        values = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    no_loss = avg_loss == 0
    values[no_loss & (avg_gain > 0)] = 100.0
    values[no_loss & (avg_gain == 0)] = 50.0
    values[np.isnan(avg_gain)] = np.nan

    return pd.Series(values, index=close.index)


def macd(
    series: Any,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> dict[str, pd.Series]:
    """Moving Average Convergence Divergence.

    The signal line is an EMA over the MACD line starting at its first
    defined index (``slow - 1``), so with the default periods the MACD line
    is defined from index 25 and signal/histogram from index 33.

    Args:
        series: Price series (typically close prices).
        fast:   Fast EMA period (default 12).
        slow:   Slow EMA period (default 26).
        signal: Signal line EMA period (default 9).

    Returns:
        A dict with keys:
            - ``'macd'``:      MACD line (fast EMA - slow EMA).
            - ``'signal'``:    Signal line (EMA of the MACD line).
            - ``'histogram'``: MACD histogram (MACD - signal).
    """
    close = as_close_series(series)
    n = len(close)
    _check_not_empty(n, "MACD")
    for period in (fast, slow, signal):
        _check_period(period, "MACD")
    if fast >= slow:
        raise InvalidParameter(f"MACD: fast period ({fast}) must be below slow period ({slow})")
    _validate_period(n, slow, "MACD")

    macd_line = ema(close, fast) - ema(close, slow)

    signal_values = np.full(n, np.nan)
    signal_values[slow - 1:] = _ema_values(macd_line.to_numpy()[slow - 1:], signal)
    signal_line = pd.Series(signal_values, index=close.index)

    return {
        "macd": macd_line,
        "signal": signal_line,
        "histogram": macd_line - signal_line,
    }


def stochastic(
    bars: Any,
    k_period: int = 14,
    k_smooth: int = 3,
    d_period: int = 3,
) -> dict[str, pd.Series]:
    """Stochastic Oscillator (%K and %D).

    Raw %K is ``100 * (close - lowest_low) / (highest_high - lowest_low)``
    over the trailing ``k_period`` bars, or 50 when that range is zero.
    ``%K`` is the SMA of raw %K over ``k_smooth`` bars and ``%D`` the SMA of
    ``%K`` over ``d_period`` bars, so %D is first defined at index
    ``k_period + k_smooth + d_period - 3``.

    Returns:
        A dict with keys ``'k'`` and ``'d'``, both in [0, 100].
    """
    frame = _bars(bars, "Stochastic")
    _check_period(k_smooth, "Stochastic")
    _check_period(d_period, "Stochastic")
    _validate_period(len(frame), k_period, "Stochastic")

    highest = frame["high"].rolling(window=k_period, min_periods=k_period).max()
    lowest = frame["low"].rolling(window=k_period, min_periods=k_period).min()
    price_range = highest - lowest

    raw_k = 100.0 * (frame["close"] - lowest) / price_range
    raw_k = raw_k.where(price_range != 0, 50.0)

    k = _rolling_mean(raw_k.to_numpy(), k_smooth)
    d = _rolling_mean(k, d_period)

    return {
        "k": pd.Series(k, index=frame.index),
        "d": pd.Series(d, index=frame.index),
    }


def roc(series: Any, period: int = 12) -> pd.Series:
    """Rate of Change in percent versus the price ``period`` bars ago.

    NaN where the reference price is zero.
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "ROC", minimum=period + 1)
    reference = close.shift(period)
    result = (close - reference) / reference * 100.0
    return result.where(reference != 0, np.nan)


# ---------------------------------------------------------------------------
# Volatility
# ---------------------------------------------------------------------------


def true_range(bars: Any) -> pd.Series:
    """True Range for each bar.

    TR = max(high - low,  |high - prev_close|,  |low - prev_close|)

    The first bar has no previous close, so its true range is
    ``high - low``.
    """
    frame = _bars(bars, "True Range")
    prev_close = frame["close"].shift(1)

    tr1 = frame["high"] - frame["low"]
    tr2 = (frame["high"] - prev_close).abs()
    tr3 = (frame["low"] - prev_close).abs()

    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)


def atr(bars: Any, period: int = 14) -> pd.Series:
    """Average True Range using Wilder's smoothing.

    Args:
        bars:   OHLC bars.
        period: Smoothing period (default 14).

    Returns:
        ATR series.  The first ``period - 1`` values will be NaN.
    """
    frame = _bars(bars, "ATR")
    _validate_period(len(frame), period, "ATR")
    tr = true_range(frame)
    return pd.Series(_wilder(tr.to_numpy(), period), index=frame.index)


def bollinger_bands(
    series: Any,
    period: int = 20,
    std_mult: float = 2.0,
) -> dict[str, pd.Series]:
    """Bollinger Bands.

    The band width uses the population standard deviation (``ddof=0``) of
    the same window as the middle SMA.

    Args:
        series:   Close price series.
        period:   SMA lookback period (default 20).
        std_mult: Number of standard deviations for the bands (default 2.0).

    Returns:
        A dict with keys:
            - ``'upper'``:  Upper band (middle + std_mult * rolling_std).
            - ``'middle'``: Middle band (SMA).
            - ``'lower'``:  Lower band (middle - std_mult * rolling_std).
    """
    close = as_close_series(series)
    _validate_period(len(close), period, "Bollinger Bands")
    if (
        isinstance(std_mult, bool)
        or not isinstance(std_mult, (int, float, np.number))
        or not math.isfinite(std_mult)
        or std_mult <= 0
    ):
        raise InvalidParameter(
            f"Bollinger Bands: std_mult must be a positive number, got {std_mult!r}"
        )

    values = close.to_numpy()
    rolling_std = np.full(len(values), np.nan)
    rolling_std[period - 1:] = sliding_window_view(values, period).std(axis=1)

    middle = sma(close, period)
    width = pd.Series(std_mult * rolling_std, index=close.index)

    return {
        "upper": middle + width,
        "middle": middle,
        "lower": middle - width,
    }


# ---------------------------------------------------------------------------
# Trend Strength
# ---------------------------------------------------------------------------


def adx(bars: Any, period: int = 14) -> dict[str, pd.Series]:
    """Average Directional Index (ADX) with +DI / -DI components.

    True range and directional movement are Wilder-smoothed from the second
    bar, so +DI/-DI are first defined at index ``period``.  ADX is the Wilder
    average of DX from there and is first defined at ``2 * period - 1``;
    shorter series (of at least ``period + 1`` bars) return NaN ADX.

    Args:
        bars:   OHLC bars.
        period: Smoothing period (default 14).

    Returns:
        A dict with keys ``'adx'``, ``'plus_di'``, ``'minus_di'``.
    """
    frame = _bars(bars, "ADX")
    _validate_period(len(frame), period, "ADX", minimum=period + 1)

    up_move = frame["high"].diff().to_numpy()
    down_move = -frame["low"].diff().to_numpy()

    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    tr_smooth = _wilder(true_range(frame).to_numpy(), period, start=1)
    plus_smooth = _wilder(plus_dm, period, start=1)
    minus_smooth = _wilder(minus_dm, period, start=1)

    warmup = np.isnan(tr_smooth)
    with np.errstate(divide="ignore", invalid="ignore"):
        plus_di = np.where(tr_smooth > 0, 100.0 * plus_smooth / tr_smooth, 0.0)
        minus_di = np.where(tr_smooth > 0, 100.0 * minus_smooth / tr_smooth, 0.0)
        di_sum = plus_di + minus_di
        dx = np.where(di_sum > 0, 100.0 * np.abs(plus_di - minus_di) / di_sum, 0.0)
    plus_di[warmup] = np.nan
    minus_di[warmup] = np.nan
    dx[warmup] = np.nan

    adx_values = _wilder(dx, period, start=period)

    return {
        "adx": pd.Series(adx_values, index=frame.index),
        "plus_di": pd.Series(plus_di, index=frame.index),
        "minus_di": pd.Series(minus_di, index=frame.index),
    }


# ---------------------------------------------------------------------------
# Volume
# ---------------------------------------------------------------------------


def obv(bars: Any) -> pd.Series:
    """On-Balance Volume.

    Starts at the first bar's volume, then adds the volume on up-closes and
    subtracts it on down-closes.  Never NaN.
    """
    frame = _bars(bars, "OBV", volume=True)
    direction = np.sign(frame["close"].diff()).fillna(0.0)
    signed = frame["volume"] * direction
    signed.iloc[0] = frame["volume"].iloc[0]
    return signed.cumsum()


def vwap(bars: Any) -> pd.Series:
    """Volume Weighted Average Price, cumulative from the first bar.

    Uses the typical price (H+L+C)/3 weighted by volume.  There is no
    session reset; slice the bars per session for intraday VWAP.  While the
    cumulative volume is still zero the bar's typical price is returned.
    """
    frame = _bars(bars, "VWAP", volume=True)
    typical_price = (frame["high"] + frame["low"] + frame["close"]) / 3.0
    cum_tp_vol = (typical_price * frame["volume"]).cumsum()
    cum_vol = frame["volume"].cumsum()
    result = cum_tp_vol / cum_vol.replace(0, np.nan)
    return result.where(cum_vol != 0, typical_price)
