"""Tests for reading symbol lists from piped input."""

from __future__ import annotations

import io

import pytest

from app.symbols import is_valid_symbol, parse_symbols, read_symbols


class TestParseSymbols:
    def test_lines_commas_and_whitespace(self) -> None:
        lines = ["aapl, msft\n", "  GOOG\tamzn  \n", "\n", "tsla,,nvda\n"]
        assert parse_symbols(lines) == ["AAPL", "MSFT", "GOOG", "AMZN", "TSLA", "NVDA"]

    def test_duplicates_keep_first_position(self) -> None:
        assert parse_symbols(["msft aapl", "AAPL MSFT spy"]) == ["MSFT", "AAPL", "SPY"]

    def test_invalid_entries_skipped(self) -> None:
        assert parse_symbols(["AAPL $$$ THISISWAYTOOLONG SHOP.TO"]) == ["AAPL", "SHOP.TO"]

    @pytest.mark.parametrize("symbol", ["AAPL", "BRK-B", "SHOP.TO", "^GSPC", "EURUSD=X", "BTC-USD"])
    def test_valid(self, symbol: str) -> None:
        assert is_valid_symbol(symbol)

    @pytest.mark.parametrize("symbol", ["", "A B", "A/B", "ABCDEFGHIJKLM"])
    def test_invalid(self, symbol: str) -> None:
        assert not is_valid_symbol(symbol)


class _Tty(io.StringIO):
    def isatty(self) -> bool:
        return True


class TestReadSymbols:
    def test_reads_stream(self) -> None:
        assert read_symbols(io.StringIO("spy qqq\niwm\n")) == ["SPY", "QQQ", "IWM"]

    def test_terminal_is_ignored(self) -> None:
        assert read_symbols(_Tty("AAPL\n")) == []
