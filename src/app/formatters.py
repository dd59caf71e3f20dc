"""Text renderings of histories, quotes and corporate actions.

``csv`` and ``tsv`` are delimited with a header row (unless ``header`` is
False), ``minimal`` is space-separated values with no header for shell
pipelines, and ``json`` is an indented document.  Rich tables for the
terminal live in :mod:`app.cli`.
"""

from __future__ import annotations

import json
import math
from typing import Any, Sequence

import pandas as pd

from data.models import CorporateActions, History, Quote

TEXT_FORMATS = ["csv", "tsv", "json", "minimal"]
OUTPUT_FORMATS = ["table", *TEXT_FORMATS]

_SEPARATORS = {"csv": ",", "tsv": "\t", "minimal": " "}


def _delimited(df: pd.DataFrame, fmt: str, header: bool = True) -> str:
    if fmt not in _SEPARATORS:
        raise ValueError(f"Unsupported output format: {fmt!r}")
    minimal = fmt == "minimal"
    return df.to_csv(
        index=False,
        sep=_SEPARATORS[fmt],
        header=header and not minimal,
        lineterminator="\n",
        # Space-free timestamps keep minimal rows one field per column.
        date_format="%Y-%m-%dT%H:%M:%S" if minimal else None,
    )


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2) + "\n"


def _date(timestamp: int) -> str:
    return pd.Timestamp(timestamp, unit="s", tz="UTC").strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# History and quotes
# ---------------------------------------------------------------------------


def format_history(history: History, fmt: str, header: bool = True) -> str:
    if fmt == "json":
        return _dump(history.to_dict())
    return _delimited(history.to_frame(), fmt, header)


QUOTE_COLUMNS = ["symbol", "price", "change", "change_percent", "volume", "market_cap"]


def _market_cap(quote: Quote) -> float:
    value = quote.extra.get("marketCap")
    return float(value) if isinstance(value, (int, float)) else math.nan


def quotes_frame(quotes: Sequence[Quote]) -> pd.DataFrame:
    """One row per quote with :data:`QUOTE_COLUMNS`; unknown market cap is NaN."""
    return pd.DataFrame(
        [
            [q.symbol, q.price, q.change, q.change_percent, q.volume, _market_cap(q)]
            for q in quotes
        ],
        columns=QUOTE_COLUMNS,
    )


def format_quotes(quotes: Sequence[Quote], fmt: str, header: bool = True) -> str:
    if fmt == "json":
        return _dump([q.to_dict() for q in quotes])
    return _delimited(quotes_frame(quotes), fmt, header)


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


def format_dividends(actions: CorporateActions, fmt: str, header: bool = True) -> str:
    if fmt == "json":
        return _dump(actions.to_dict()["dividends"])
    df = pd.DataFrame(
        [[_date(d.timestamp), d.amount] for d in actions.dividends],
        columns=["date", "amount"],
    )
    return _delimited(df, fmt, header)


def format_splits(actions: CorporateActions, fmt: str, header: bool = True) -> str:
    if fmt == "json":
        return _dump(actions.to_dict()["splits"])
    df = pd.DataFrame(
        [[_date(s.timestamp), s.ratio] for s in actions.splits],
        columns=["date", "ratio"],
    )
    return _delimited(df, fmt, header)


def format_actions(actions: CorporateActions, fmt: str, header: bool = True) -> str:
    """Dividends and splits together, one ``type,date,value`` row each."""
    if fmt == "json":
        return _dump(actions.to_dict())
    rows = [["dividend", _date(d.timestamp), str(d.amount)] for d in actions.dividends]
    rows += [["split", _date(s.timestamp), s.ratio] for s in actions.splits]
    df = pd.DataFrame(rows, columns=["type", "date", "value"])
    return _delimited(df, fmt, header)
