"""Data layer -- models, providers, caching and batch download.

Quick usage::

    from data import Interval, get_provider

    provider = get_provider("yahoo")
    history = provider.fetch_history("AAPL", Interval.D1, start, end)
    quote = provider.fetch_quote("AAPL")
"""

from data.batch import BatchResult, download_batch
from data.cache import CachedProvider, TTLCache
from data.models import Bar, CorporateActions, Dividend, History, Interval, Quote, Split
from data.providers import get_provider

__all__ = [
    "Bar",
    "BatchResult",
    "CachedProvider",
    "CorporateActions",
    "Dividend",
    "History",
    "Interval",
    "Quote",
    "Split",
    "TTLCache",
    "download_batch",
    "get_provider",
]
