"""Quote screening with preset criteria and a small filter expression language.

A filter is a boolean expression over quote fields::

    price > 100 and (changepct >= 2 or 52wchange% > 30)

Comparisons are ``field op number`` with ``<``, ``>``, ``<=``, ``>=``,
``=``/``==`` and ``!=``; ``and`` binds tighter than ``or``; parentheses
group.  Field names are case-insensitive and several have short aliases
(see :data:`FIELDS`).  A field the quote does not carry makes its
comparison false.  An empty expression matches every quote.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from app.logging import get_logger
from data.models import Quote

logger = get_logger(__name__)

Predicate = Callable[[Quote], bool]

EQUALITY_TOLERANCE = 1e-4


class FilterError(ValueError):
    """A filter expression could not be parsed."""


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def _extra(key: str) -> Callable[[Quote], float | None]:
    def getter(quote: Quote) -> float | None:
        value = quote.extra.get(key)
        return float(value) if isinstance(value, (int, float)) else None

    return getter


def _positive(attr: str) -> Callable[[Quote], float | None]:
    # Quote uses 0.0 for fields Yahoo left out.
    def getter(quote: Quote) -> float | None:
        value = float(getattr(quote, attr))
        return value if value > 0 else None

    return getter


def _change(quote: Quote) -> float | None:
    return quote.change if quote.previous_close > 0 else None


def _change_percent(quote: Quote) -> float | None:
    return quote.change_percent if quote.previous_close > 0 else None


def _volume(quote: Quote) -> float | None:
    return float(quote.volume)


def _fifty_two_week_change(quote: Quote) -> float | None:
    if quote.fifty_two_week_low <= 0:
        return None
    return quote.fifty_two_week_change_percent


_PRICE = _positive("price")
_MARKET_CAP = _extra("marketCap")
_PE = _extra("trailingPE")
_FORWARD_PE = _extra("forwardPE")
_PRICE_TO_BOOK = _extra("priceToBook")
_EPS = _extra("epsTrailingTwelveMonths")
_YIELD = _extra("dividendYield")
_52W_HIGH = _positive("fifty_two_week_high")
_52W_LOW = _positive("fifty_two_week_low")

FIELDS: dict[str, Callable[[Quote], float | None]] = {
    "price": _PRICE,
    "p": _PRICE,
    "change": _change,
    "changepercent": _change_percent,
    "changepct": _change_percent,
    "change%": _change_percent,
    "volume": _volume,
    "vol": _volume,
    "marketcap": _MARKET_CAP,
    "mcap": _MARKET_CAP,
    "pe": _PE,
    "forwardpe": _FORWARD_PE,
    "fpe": _FORWARD_PE,
    "pb": _PRICE_TO_BOOK,
    "pricetobook": _PRICE_TO_BOOK,
    "eps": _EPS,
    "yield": _YIELD,
    "dividendyield": _YIELD,
    "dy": _YIELD,
    "52whigh": _52W_HIGH,
    "52wlow": _52W_LOW,
    "52wchange%": _fifty_two_week_change,
    "52wchangepct": _fifty_two_week_change,
}


def quote_field(quote: Quote, name: str) -> float | None:
    """Return the value of field *name* for *quote*, or None if unavailable."""
    getter = FIELDS.get(name.lower())
    if getter is None:
        return None
    value = getter(quote)
    if value is None or math.isnan(value):
        return None
    return value


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<ident>\d*[A-Za-z_][A-Za-z0-9_%]*)
  | (?P<number>-?(?:\d+(?:\.\d*)?|\.\d+))
  | (?P<op><=|>=|==|!=|<|>|=)
  | (?P<lparen>\()
  | (?P<rparen>\))
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int


def tokenize(expression: str) -> list[Token]:
    """Split *expression* into tokens; ``and``/``or`` become keywords."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise FilterError(f"unexpected character {expression[pos]!r} at position {pos}")
        kind = match.lastgroup
        text = match.group()
        if kind == "ident":
            text = text.lower()
            if text in ("and", "or"):
                kind = text
        if kind != "space":
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
    "=": lambda a, b: abs(a - b) < EQUALITY_TOLERANCE,
    "==": lambda a, b: abs(a - b) < EQUALITY_TOLERANCE,
    "!=": lambda a, b: abs(a - b) >= EQUALITY_TOLERANCE,
}


class _Parser:
    """Recursive-descent parser producing a predicate over quotes."""

    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def _peek(self) -> Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _expect(self, kind: str, what: str) -> Token:
        token = self._peek()
        if token is None:
            raise FilterError(f"expected {what} at end of expression")
        if token.kind != kind:
            raise FilterError(f"expected {what} at position {token.pos}, got {token.text!r}")
        self.index += 1
        return token

    def parse(self) -> Predicate:
        predicate = self._or()
        token = self._peek()
        if token is not None:
            raise FilterError(f"unexpected {token.text!r} at position {token.pos}")
        return predicate

    def _or(self) -> Predicate:
        terms = [self._and()]
        while (token := self._peek()) is not None and token.kind == "or":
            self.index += 1
            terms.append(self._and())
        if len(terms) == 1:
            return terms[0]
        return lambda quote: any(term(quote) for term in terms)

    def _and(self) -> Predicate:
        terms = [self._primary()]
        while (token := self._peek()) is not None and token.kind == "and":
            self.index += 1
            terms.append(self._primary())
        if len(terms) == 1:
            return terms[0]
        return lambda quote: all(term(quote) for term in terms)

    def _primary(self) -> Predicate:
        token = self._peek()
        if token is not None and token.kind == "lparen":
            self.index += 1
            inner = self._or()
            self._expect("rparen", "')'")
            return inner
        return self._comparison()

    def _comparison(self) -> Predicate:
        name = self._expect("ident", "a field name").text
        op = self._expect("op", "a comparison operator").text
        value = float(self._expect("number", "a number").text)
        compare = _COMPARATORS[op]

        if name not in FIELDS:
            logger.debug("screen: unknown field %r never matches", name)

        def predicate(quote: Quote) -> bool:
            actual = quote_field(quote, name)
            return actual is not None and compare(actual, value)

        return predicate


def compile_filter(expression: str) -> Predicate:
    """Compile *expression* into a predicate over :class:`Quote` objects.

    Raises:
        FilterError: If the expression is malformed.
    """
    tokens = tokenize(expression)
    if not tokens:
        return lambda quote: True
    return _Parser(tokens).parse()


# ---------------------------------------------------------------------------
# Screening
# ---------------------------------------------------------------------------

PRESETS: dict[str, str] = {
    "value": "pe > 0 and pe < 20 and yield > 2",
    "growth": "52wchange% > 20",
    "dividend": "yield > 3",
    "momentum": "changepct > 0",
}

CRITERIA: list[str] = [*PRESETS, "custom"]


def screen_quotes(
    quotes: Iterable[Quote],
    criteria: str = "custom",
    where: str | None = None,
) -> list[Quote]:
    """Return the quotes that satisfy *criteria*, in input order.

    Args:
        quotes: Candidate quotes.
        criteria: A :data:`PRESETS` name, or ``"custom"`` to use *where*
            alone.
        where: Extra filter expression; combined with a preset using
            ``and``.

    Raises:
        ValueError: Unknown criteria, or ``custom`` without *where*.
        FilterError: If an expression is malformed.
    """
    criteria = criteria.lower()
    if criteria == "custom":
        if not where or not where.strip():
            raise ValueError("Custom criteria requires a --where expression")
        expression = where
    elif criteria in PRESETS:
        expression = PRESETS[criteria]
        if where and where.strip():
            expression = f"({expression}) and ({where})"
    else:
        raise ValueError(f"Unknown criteria {criteria!r} (expected one of {', '.join(CRITERIA)})")

    predicate = compile_filter(expression)
    matched = [quote for quote in quotes if predicate(quote)]
    logger.debug("screen: %d quotes matched %r", len(matched), expression)
    return matched
