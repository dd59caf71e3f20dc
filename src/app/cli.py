"""Click CLI for Market Indicators.

Entry point: ``mki`` (installed via pyproject.toml) or ``python -m app.cli``.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.table import Table

from app import formatters
from app.config import get_config
from app.logging import get_logger, set_level
from app.report import IndicatorSettings, ReportLine, build_report
from app.screen import CRITERIA, FilterError, compile_filter, screen_quotes
from app.symbols import read_symbols
from data.batch import download_batch
from data.cache import CachedProvider, TTLCache
from data.models import CorporateActions, History, Interval, Quote
from data.providers import DataProvider, ProviderError, get_provider
from indicators.errors import IndicatorError

logger = get_logger(__name__)
console = Console()

_LOOKBACK_RE = re.compile(r"^(\d+)(m|h|d|w|wk|mo|y)$")
_LOOKBACK_UNITS: dict[str, timedelta] = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "wk": timedelta(weeks=1),
    "mo": timedelta(days=30),
    "y": timedelta(days=365),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_date(value: str) -> datetime:
    """Parse a YYYY-MM-DD string into a UTC datetime at midnight."""
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def parse_lookback(value: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Turn a lookback such as ``30d``, ``6mo`` or ``1y`` into a (start, end) range.

    Raises:
        ValueError: If *value* is not ``<count><unit>`` with a known unit.
    """
    match = _LOOKBACK_RE.match(value.strip().lower())
    if not match:
        raise ValueError(
            f"Invalid lookback '{value}'. Use e.g. 30m, 12h, 7d, 2w, 6mo, 1y."
        )
    count, unit = int(match.group(1)), match.group(2)
    end = now or datetime.now(timezone.utc)
    return end - count * _LOOKBACK_UNITS[unit], end


def _resolve_range(
    lookback: Optional[str], start: Optional[str], end: Optional[str]
) -> tuple[datetime, datetime]:
    if lookback:
        return parse_lookback(lookback)
    end_dt = _parse_date(end) if end else datetime.now(timezone.utc)
    start_dt = _parse_date(start) if start else end_dt - timedelta(days=365)
    if start_dt >= end_dt:
        raise ValueError("Start date must be before end date.")
    return start_dt, end_dt


def _resolve_actions_range(
    lookback: Optional[str], start: Optional[str], end: Optional[str]
) -> tuple[datetime, datetime]:
    """Like :func:`_resolve_range`, but defaults to the whole listing history."""
    if not lookback and not start:
        start = "1970-01-01"
    return _resolve_range(lookback, start, end)


def _collect_symbols(symbols: tuple[str, ...]) -> list[str]:
    """Return *symbols*, or the symbols piped on stdin when none were given."""
    if symbols:
        return list(symbols)
    piped = read_symbols(click.get_text_stream("stdin"))
    if not piped:
        _error("No symbols given. Pass them as arguments or pipe them on stdin.")
    return piped


def _fetch_quotes(provider: DataProvider, symbols: list[str]) -> list[Quote]:
    """Fetch a quote per symbol; failures are reported and skipped."""
    quotes: list[Quote] = []
    for symbol in symbols:
        try:
            quotes.append(provider.fetch_quote(symbol))
        except (ProviderError, httpx.HTTPError, ValueError) as exc:
            console.print(f"[yellow]Skipping {symbol}:[/yellow] {exc}")
    return quotes


def _parse_periods(value: Optional[str]) -> tuple[int, ...]:
    """Parse a comma-separated period list such as ``20,50,200``."""
    if not value:
        return ()
    try:
        return tuple(int(p) for p in value.split(",") if p.strip())
    except ValueError:
        raise click.BadParameter(f"Expected comma-separated integers, got '{value}'")


def _build_provider() -> DataProvider:
    """Create the configured provider wrapped in the TTL cache."""
    provider_cfg = get_config("provider")
    cache_cfg = get_config("cache")
    provider = get_provider(
        provider_cfg.get("name", "yahoo"),
        timeout=float(provider_cfg.get("timeout", 30.0)),
        rate_limit_seconds=float(provider_cfg.get("rate_limit_seconds", 1.0)),
    )
    cache = TTLCache(
        enabled=bool(cache_cfg.get("enabled", True)),
        ttl=float(cache_cfg.get("ttl", 300)),
    )
    return CachedProvider(provider, cache)


def _fmt(value: float, digits: int = 2) -> str:
    """Format a number for display; NaN becomes an empty cell."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return f"{value:,.{digits}f}"


def _error(message: str) -> None:
    """Print a styled error message and exit."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise SystemExit(1)


def _interval_option(func):
    return click.option(
        "--interval",
        "-i",
        default="1d",
        show_default=True,
        help="Bar interval (1m, 5m, 15m, 30m, 1h, 1d, 1wk, 1mo).",
    )(func)


def _range_options(func):
    func = click.option("--end", default=None, help="End date YYYY-MM-DD (default: now).")(func)
    func = click.option("--start", default=None, help="Start date YYYY-MM-DD (default: end - 1y).")(func)
    func = click.option("--lookback", "-l", default=None, help="Relative range such as 30d, 6mo, 1y.")(func)
    return func


def _format_options(func):
    func = click.option(
        "--no-header", is_flag=True, default=False, help="Omit the header row in csv/tsv output."
    )(func)
    return click.option(
        "--format",
        "fmt",
        type=click.Choice(formatters.OUTPUT_FORMATS),
        default="table",
        show_default=True,
        help="table, csv, tsv, json, or minimal (space-separated, no header).",
    )(func)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(package_name="market-indicators")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Market Indicators -- Yahoo Finance history, quotes and technical indicators."""
    set_level("DEBUG" if verbose else str(get_config().get("log_level", "INFO")))


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------

def _history_table(history: History) -> Table:
    table = Table(title=f"{history.symbol} ({history.interval})")
    table.add_column("Date", style="dim")
    for col in ("Open", "High", "Low", "Close"):
        table.add_column(col, justify="right")
    table.add_column("Volume", justify="right")
    for bar in history:
        table.add_row(
            bar.time.strftime("%Y-%m-%d %H:%M"),
            _fmt(bar.open),
            _fmt(bar.high),
            _fmt(bar.low),
            _fmt(bar.close),
            f"{bar.volume:,}",
        )
    return table


@cli.command()
@click.argument("symbol")
@_interval_option
@_range_options
@_format_options
def history(
    symbol: str,
    interval: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    fmt: str,
    no_header: bool,
) -> None:
    """Show OHLCV history for SYMBOL."""
    try:
        start_dt, end_dt = _resolve_range(lookback, start, end)
        hist = _build_provider().fetch_history(symbol, Interval.parse(interval), start_dt, end_dt)
    except (ProviderError, httpx.HTTPError, ValueError) as exc:
        logger.debug("history failed", exc_info=True)
        _error(str(exc))

    if fmt == "table":
        console.print(_history_table(hist))
    else:
        click.echo(formatters.format_history(hist, fmt, header=not no_header), nl=False)


# ---------------------------------------------------------------------------
# quote
# ---------------------------------------------------------------------------

def _quote_table(quotes: list[Quote], title: str = "Quotes") -> Table:
    table = Table(title=title)
    table.add_column("Symbol", style="bold")
    table.add_column("Name")
    table.add_column("Price", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Change %", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("52w Low", justify="right")
    table.add_column("52w High", justify="right")
    for q in quotes:
        colour = "green" if q.change >= 0 else "red"
        table.add_row(
            q.symbol,
            q.short_name or q.long_name,
            _fmt(q.price),
            f"[{colour}]{q.change:+,.2f}[/{colour}]",
            f"[{colour}]{q.change_percent:+.2f}%[/{colour}]",
            f"{q.volume:,}",
            _fmt(q.fifty_two_week_low),
            _fmt(q.fifty_two_week_high),
        )
    return table


def _print_quotes(quotes: list[Quote], fmt: str, no_header: bool, title: str) -> None:
    if fmt == "table":
        console.print(_quote_table(quotes, title=title))
    else:
        click.echo(formatters.format_quotes(quotes, fmt, header=not no_header), nl=False)


@cli.command()
@click.argument("symbols", nargs=-1)
@_format_options
def quote(symbols: tuple[str, ...], fmt: str, no_header: bool) -> None:
    """Show the latest quote for one or more SYMBOLS.

    Without arguments, symbols are read from stdin.  Symbols that fail are
    reported and skipped.
    """
    symbol_list = _collect_symbols(symbols)
    quotes = _fetch_quotes(_build_provider(), symbol_list)
    if not quotes:
        _error("No quotes retrieved.")
    _print_quotes(quotes, fmt, no_header, title="Quotes")


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------

def _compare_table(quotes: list[Quote]) -> Table:
    """One column per symbol, one row per metric."""
    table = Table(title="Comparison")
    table.add_column("Metric", style="dim")
    for q in quotes:
        table.add_column(q.symbol, justify="right", style="bold")

    def pct(value: float) -> str:
        colour = "green" if value >= 0 else "red"
        return f"[{colour}]{value:+.2f}%[/{colour}]"

    rows = [
        ("Name", [q.short_name or q.long_name for q in quotes]),
        ("Price", [_fmt(q.price) for q in quotes]),
        ("Change", [f"{q.change:+,.2f}" for q in quotes]),
        ("Change %", [pct(q.change_percent) for q in quotes]),
        ("Volume", [f"{q.volume:,}" for q in quotes]),
        ("Day Range", [f"{_fmt(q.day_low)} - {_fmt(q.day_high)}" for q in quotes]),
        ("52w Low", [_fmt(q.fifty_two_week_low) for q in quotes]),
        ("52w High", [_fmt(q.fifty_two_week_high) for q in quotes]),
        ("52w Change %", [pct(q.fifty_two_week_change_percent) for q in quotes]),
        ("vs 50d Avg", [pct(q.fifty_day_average_change_percent) for q in quotes]),
        ("vs 200d Avg", [pct(q.two_hundred_day_average_change_percent) for q in quotes]),
    ]
    for label, cells in rows:
        table.add_row(label, *cells)
    return table


@cli.command()
@click.argument("symbols", nargs=-1)
@_format_options
def compare(symbols: tuple[str, ...], fmt: str, no_header: bool) -> None:
    """Compare quotes for two or more SYMBOLS side by side."""
    symbol_list = _collect_symbols(symbols)
    if len(symbol_list) < 2:
        _error("compare needs at least two symbols.")

    quotes = _fetch_quotes(_build_provider(), symbol_list)
    if len(quotes) < 2:
        _error("Need at least two valid quotes to compare.")

    if fmt == "table":
        console.print(_compare_table(quotes))
    else:
        click.echo(formatters.format_quotes(quotes, fmt, header=not no_header), nl=False)


# ---------------------------------------------------------------------------
# screen
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("symbols", nargs=-1)
@click.option(
    "--criteria",
    "-c",
    type=click.Choice(CRITERIA, case_sensitive=False),
    default="custom",
    show_default=True,
    help="Preset screen; 'custom' uses --where alone.",
)
@click.option(
    "--where",
    "-w",
    default=None,
    help="Filter expression, e.g. \"price > 50 and changepct >= 1\".",
)
@_format_options
def screen(
    symbols: tuple[str, ...],
    criteria: str,
    where: Optional[str],
    fmt: str,
    no_header: bool,
) -> None:
    """Screen SYMBOLS by preset criteria or a filter expression.

    \b
    Presets:
      value     pe > 0 and pe < 20 and yield > 2
      growth    52wchange% > 20
      dividend  yield > 3
      momentum  changepct > 0

    \b
    Fields: price (p), change, changepct (change%), volume (vol),
    marketcap (mcap), pe, forwardpe (fpe), pb, eps, yield (dy),
    52whigh, 52wlow, 52wchange%.
    """
    try:
        if where:
            compile_filter(where)
    except FilterError as exc:
        _error(f"Filter parse error: {exc}")
    if criteria.lower() == "custom" and not (where and where.strip()):
        _error("Custom criteria requires a --where expression.")

    symbol_list = _collect_symbols(symbols)
    quotes = _fetch_quotes(_build_provider(), symbol_list)
    if not quotes:
        _error("No quotes retrieved.")

    matched = screen_quotes(quotes, criteria, where)
    if not matched:
        console.print(f"[yellow]No symbols matched ({len(quotes)} screened).[/yellow]")
        return
    _print_quotes(matched, fmt, no_header, title=f"Screen: {criteria.lower()}")


# ---------------------------------------------------------------------------
# dividends / splits / actions
# ---------------------------------------------------------------------------

def _fetch_actions(
    symbol: str, lookback: Optional[str], start: Optional[str], end: Optional[str]
) -> CorporateActions:
    try:
        start_dt, end_dt = _resolve_actions_range(lookback, start, end)
        return _build_provider().fetch_actions(symbol, start_dt, end_dt)
    except (ProviderError, httpx.HTTPError, ValueError) as exc:
        logger.debug("corporate actions failed", exc_info=True)
        _error(str(exc))


def _dividend_table(actions: CorporateActions, limit: int, newest_first: bool = False) -> Table:
    dividends = list(actions.dividends[-limit:])
    if newest_first:
        dividends.reverse()
    table = Table(title=f"Dividends: {actions.symbol}")
    table.add_column("Date", style="dim")
    table.add_column("Amount", justify="right")
    for d in dividends:
        table.add_row(d.time.strftime("%Y-%m-%d"), _fmt(d.amount, 4))
    table.caption = f"{len(actions.dividends)} dividends, total {_fmt(actions.total_dividends, 4)}"
    return table


def _split_table(actions: CorporateActions) -> Table:
    table = Table(title=f"Splits: {actions.symbol}")
    table.add_column("Date", style="dim")
    table.add_column("Ratio", justify="right")
    for s in actions.splits:
        table.add_row(s.time.strftime("%Y-%m-%d"), s.ratio)
    return table


_ACTION_HELP = "Range defaults to the full history; use --lookback or --start to narrow it."


@cli.command(epilog=_ACTION_HELP)
@click.argument("symbol")
@_range_options
@_format_options
def dividends(
    symbol: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    fmt: str,
    no_header: bool,
) -> None:
    """Show the dividend history for SYMBOL."""
    actions = _fetch_actions(symbol, lookback, start, end)
    if not actions.dividends:
        console.print(f"[yellow]No dividends found for {actions.symbol}.[/yellow]")
        return
    if fmt == "table":
        console.print(_dividend_table(actions, limit=100))
    else:
        click.echo(formatters.format_dividends(actions, fmt, header=not no_header), nl=False)


@cli.command(epilog=_ACTION_HELP)
@click.argument("symbol")
@_range_options
@_format_options
def splits(
    symbol: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    fmt: str,
    no_header: bool,
) -> None:
    """Show the stock split history for SYMBOL."""
    actions = _fetch_actions(symbol, lookback, start, end)
    if not actions.splits:
        console.print(f"[yellow]No splits found for {actions.symbol}.[/yellow]")
        return
    if fmt == "table":
        console.print(_split_table(actions))
    else:
        click.echo(formatters.format_splits(actions, fmt, header=not no_header), nl=False)


@cli.command(epilog=_ACTION_HELP)
@click.argument("symbol")
@_range_options
@_format_options
def actions(
    symbol: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    fmt: str,
    no_header: bool,
) -> None:
    """Show dividends and splits for SYMBOL together."""
    result = _fetch_actions(symbol, lookback, start, end)
    if result.empty:
        console.print(f"[yellow]No corporate actions found for {result.symbol}.[/yellow]")
        return
    if fmt != "table":
        click.echo(formatters.format_actions(result, fmt, header=not no_header), nl=False)
        return
    if result.splits:
        console.print(_split_table(result))
    if result.dividends:
        console.print(_dividend_table(result, limit=20, newest_first=True))


# ---------------------------------------------------------------------------
# indicators
# ---------------------------------------------------------------------------

def _report_table(symbol: str, price: float, lines: list[ReportLine]) -> Table:
    table = Table(title=f"Technical Indicators: {symbol}  (last {_fmt(price)})", show_lines=False)
    table.add_column("Group", style="dim")
    table.add_column("Indicator", style="bold")
    table.add_column("Values")
    table.add_column("Signal", justify="center")
    for line in lines:
        values = "  ".join(
            f"{key}={_fmt(val, 4 if abs(val) < 10 else 2)}" for key, val in line.values.items()
        )
        table.add_row(line.group, line.name, values, line.signal or "")
    return table


def _json_safe(value: float) -> float | None:
    return None if math.isnan(value) else value


@cli.command()
@click.argument("symbol")
@_interval_option
@_range_options
@click.option("--sma", default=None, help="SMA periods, e.g. 20,50,200.")
@click.option("--ema", default=None, help="EMA periods, e.g. 12,26.")
@click.option("--wma", default=None, help="WMA periods, e.g. 10,20.")
@click.option("--rsi", type=int, default=None, help="RSI period.")
@click.option("--macd", is_flag=True, default=False, help="MACD (12/26/9).")
@click.option("--stochastic", is_flag=True, default=False, help="Stochastic (14/3/3).")
@click.option("--bb", type=int, default=None, help="Bollinger Bands period.")
@click.option("--bb-std", type=float, default=2.0, show_default=True, help="Bollinger std multiplier.")
@click.option("--atr", type=int, default=None, help="ATR period.")
@click.option("--adx", type=int, default=None, help="ADX period.")
@click.option("--obv", is_flag=True, default=False, help="On-Balance Volume.")
@click.option("--vwap", is_flag=True, default=False, help="Cumulative VWAP.")
@click.option("--all", "use_all", is_flag=True, default=False, help="All indicators with configured defaults.")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", show_default=True)
def indicators(
    symbol: str,
    interval: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    sma: Optional[str],
    ema: Optional[str],
    wma: Optional[str],
    rsi: Optional[int],
    macd: bool,
    stochastic: bool,
    bb: Optional[int],
    bb_std: float,
    atr: Optional[int],
    adx: Optional[int],
    obv: bool,
    vwap: bool,
    use_all: bool,
    fmt: str,
) -> None:
    """Calculate technical indicators for SYMBOL and show their latest values."""
    if use_all:
        settings = IndicatorSettings.from_config(get_config("indicators"))
    else:
        settings = IndicatorSettings(
            sma=_parse_periods(sma),
            ema=_parse_periods(ema),
            wma=_parse_periods(wma),
            rsi=rsi,
            macd=macd,
            stochastic=stochastic,
            bb=bb,
            bb_std=bb_std,
            atr=atr,
            adx=adx,
            obv=obv,
            vwap=vwap,
        )

    if settings.is_empty():
        _error("No indicators specified. Try --sma 20,50 --rsi 14 --macd, or --all.")

    try:
        start_dt, end_dt = _resolve_range(lookback, start, end)
        hist = _build_provider().fetch_history(symbol, Interval.parse(interval), start_dt, end_dt)
        lines = build_report(hist, settings)
    except (ProviderError, httpx.HTTPError, IndicatorError, ValueError) as exc:
        logger.debug("indicators failed", exc_info=True)
        _error(str(exc))

    price = hist.latest.close
    if fmt == "json":
        payload = {
            "symbol": hist.symbol,
            "interval": hist.interval.value,
            "price": price,
            "bars": len(hist),
            "indicators": [
                {
                    "group": line.group,
                    "name": line.name,
                    "values": {k: _json_safe(v) for k, v in line.values.items()},
                    "signal": line.signal,
                }
                for line in lines
            ],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not lines:
        console.print("[yellow]Not enough data to compute the requested indicators.[/yellow]")
        return
    console.print(_report_table(hist.symbol, price, lines))


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("symbols", nargs=-1)
@_interval_option
@_range_options
@click.option(
    "--out",
    "out_dir",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False, resolve_path=True),
    help="Directory for the per-symbol CSV files.",
)
def download(
    symbols: tuple[str, ...],
    interval: str,
    lookback: Optional[str],
    start: Optional[str],
    end: Optional[str],
    out_dir: str,
) -> None:
    """Download history for several SYMBOLS into CSV files.

    Without arguments, symbols are read from stdin.
    """
    symbol_list = _collect_symbols(symbols)
    try:
        start_dt, end_dt = _resolve_range(lookback, start, end)
        interval_value = Interval.parse(interval)
    except ValueError as exc:
        _error(str(exc))

    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    with console.status(f"[bold green]Downloading {len(symbol_list)} symbol(s)..."):
        result = download_batch(
            _build_provider(),
            symbol_list,
            interval_value,
            start_dt,
            end_dt,
            max_workers=int(get_config("batch").get("max_workers", 4)),
        )

    table = Table(title="Download Summary")
    table.add_column("Symbol", style="bold")
    table.add_column("Bars", justify="right")
    table.add_column("Status", justify="center")

    for symbol, hist in sorted(result.successful.items()):
        path = out_path / f"{symbol}_{interval_value}.csv"
        hist.to_frame().to_csv(path, index=False)
        table.add_row(symbol, f"{len(hist):,}", f"[green]OK[/green] {path.name}")
    for symbol, message in sorted(result.failed.items()):
        table.add_row(symbol, "0", f"[red]FAIL: {message}[/red]")

    console.print(table)
    if not result.successful:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
