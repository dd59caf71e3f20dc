"""Exceptions raised by the indicator engine.

Arithmetic edge cases (zero range, zero denominator) are never errors; they
resolve to sentinel values inside the indicator functions.  These exceptions
cover inputs that cannot be evaluated at all.
"""

from __future__ import annotations


class IndicatorError(ValueError):
    """Base class for all indicator failures."""


class InvalidParameter(IndicatorError):
    """A period, multiplier or other parameter is outside its domain."""


class InsufficientData(IndicatorError):
    """The input series is too short to be evaluated (e.g. empty)."""


class PeriodTooLong(InvalidParameter, InsufficientData):
    """The requested lookback is longer than the series itself.

    Both an invalid parameter and insufficient data, so callers may catch
    either category.
    """

    def __init__(self, name: str, needed: int, available: int) -> None:
        self.needed = needed
        self.available = available
        super().__init__(
            f"{name}: insufficient data (need {needed}, have {available})"
        )
