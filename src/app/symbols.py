"""Symbol lists from command arguments or piped input.

Input may hold one symbol per line or several per line separated by commas
or whitespace, e.g. ``cat watchlist.txt | mki quote``.
"""

from __future__ import annotations

import re
from typing import Iterable, TextIO

from app.logging import get_logger

logger = get_logger(__name__)

# Letters, digits, '.', '-' plus '^' (indices) and '=' (currencies, futures).
_SYMBOL_RE = re.compile(r"^[A-Z0-9.\-^=]{1,12}$")
_SEPARATOR_RE = re.compile(r"[,\s]+")


def is_valid_symbol(symbol: str) -> bool:
    return bool(_SYMBOL_RE.match(symbol.upper()))


def parse_symbols(lines: Iterable[str]) -> list[str]:
    """Split *lines* into upper-cased symbols, keeping first-seen order.

    Duplicates are dropped and malformed entries are logged and skipped.
    """
    seen: dict[str, None] = {}
    for line in lines:
        for part in _SEPARATOR_RE.split(line.strip()):
            if not part:
                continue
            symbol = part.upper()
            if not is_valid_symbol(symbol):
                logger.warning("Ignoring invalid symbol %r", part)
                continue
            seen.setdefault(symbol, None)
    return list(seen)


def read_symbols(stream: TextIO) -> list[str]:
    """Read symbols from *stream*; an interactive terminal yields nothing."""
    if stream.isatty():
        return []
    return parse_symbols(stream)
