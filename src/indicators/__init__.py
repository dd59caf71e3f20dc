"""Technical indicators module.

Pure-function implementations built on numpy and pandas -- no external TA
library dependencies.  Import individual functions or use the module-level
``__all__`` for a convenient wildcard import.
"""

from indicators.core import (
    adx,
    atr,
    bollinger_bands,
    ema,
    macd,
    obv,
    roc,
    rsi,
    sma,
    stochastic,
    true_range,
    vwap,
    wma,
)
from indicators.errors import (
    IndicatorError,
    InsufficientData,
    InvalidParameter,
    PeriodTooLong,
)

__all__ = [
    "IndicatorError",
    "InsufficientData",
    "InvalidParameter",
    "PeriodTooLong",
    "adx",
    "atr",
    "bollinger_bands",
    "ema",
    "macd",
    "obv",
    "roc",
    "rsi",
    "sma",
    "stochastic",
    "true_range",
    "vwap",
    "wma",
]
