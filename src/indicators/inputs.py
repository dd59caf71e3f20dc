"""Series input adapter.

Normalises the different shapes callers hand to the engine into the pandas
objects each indicator needs: a float64 close :class:`pandas.Series` or an
OHLCV :class:`pandas.DataFrame`.  Inputs are never modified; every adapter
returns a fresh copy.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

BAR_COLUMNS: list[str] = ["open", "high", "low", "close", "volume"]


def as_close_series(data: Any) -> pd.Series:
    """Return *data* as a float64 Series of closing prices.

    Accepts a :class:`pandas.Series`, a list / tuple / numpy array of numbers,
    a DataFrame with a ``close`` column, or any object exposing
    ``to_frame()`` (e.g. :class:`data.models.History`).
    """
    if isinstance(data, pd.Series):
        return data.astype("float64").copy()
    if isinstance(data, pd.DataFrame):
        if data.empty:
            return pd.Series(dtype="float64", index=data.index)
        return _require_columns(data, ["close"])["close"].astype("float64").copy()
    if hasattr(data, "to_frame"):
        return as_close_series(data.to_frame())
    if isinstance(data, Sequence) and len(data) > 0 and hasattr(data[0], "close"):
        return as_bar_frame(data)["close"]
    return pd.Series(np.asarray(data, dtype="float64"), dtype="float64")


def as_bar_frame(data: Any) -> pd.DataFrame:
    """Return *data* as a DataFrame with float64 OHLCV columns.

    Accepts a DataFrame, an object exposing ``to_frame()``, or a sequence of
    bar objects with ``open``/``high``/``low``/``close``/``volume``
    attributes.  Only the columns needed by the bar-based indicators are
    kept; the index of a DataFrame input is preserved.
    """
    if isinstance(data, pd.DataFrame):
        frame = data if data.empty else _require_columns(data, ["high", "low", "close"])
    elif hasattr(data, "to_frame"):
        frame = data.to_frame()
    elif isinstance(data, Sequence):
        frame = pd.DataFrame(
            [[getattr(bar, col) for col in BAR_COLUMNS] for bar in data],
            columns=BAR_COLUMNS,
        )
    else:
        raise TypeError(f"Cannot interpret {type(data).__name__} as OHLCV bars")

    out = pd.DataFrame(index=frame.index)
    for col in BAR_COLUMNS:
        if col in frame.columns:
            out[col] = frame[col].astype("float64")
    return out


def _require_columns(frame: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise KeyError(f"DataFrame is missing required column(s): {missing}")
    return frame
