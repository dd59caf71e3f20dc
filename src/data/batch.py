"""Download histories for several symbols at once."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from app.logging import get_logger
from data.models import History, Interval
from data.providers.base import DataProvider, ProviderError

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Histories that were fetched, and an error message per failed symbol."""

    successful: dict[str, History] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)


def download_batch(
    provider: DataProvider,
    symbols: list[str],
    interval: Interval,
    start: datetime,
    end: datetime,
    max_workers: int = 4,
) -> BatchResult:
    """Fetch *symbols* concurrently and collect per-symbol outcomes.

    A failing symbol never aborts the batch; its error message is recorded
    in :attr:`BatchResult.failed` instead.

    Raises:
        ValueError: If *symbols* is empty.
    """
    cleaned = [s.strip() for s in symbols if s.strip()]
    if not cleaned:
        raise ValueError("No symbols provided")

    result = BatchResult()
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {
            pool.submit(provider.fetch_history, symbol, interval, start, end): symbol
            for symbol in cleaned
        }
        for future in as_completed(futures):
            symbol = futures[future]
            try:
                result.successful[symbol] = future.result()
            except (ProviderError, httpx.HTTPError, ValueError) as exc:
                logger.warning("batch: %s failed: %s", symbol, exc)
                result.failed[symbol] = str(exc)

    logger.info(
        "batch: %d/%d symbols downloaded", len(result.successful), result.total
    )
    return result
