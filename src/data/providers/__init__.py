"""Data providers for OHLCV market data and quotes.

Use :func:`get_provider` to obtain a provider instance by name::

    from data.providers import get_provider

    provider = get_provider("yahoo")
    history = provider.fetch_history("AAPL", Interval.D1, start, end)
"""

from __future__ import annotations

from typing import Any

from data.providers.base import DataProvider, ProviderError
from data.providers.yahoo import YahooApiError, YahooProvider

# Registry mapping provider name -> class.
_PROVIDER_REGISTRY: dict[str, type[DataProvider]] = {
    "yahoo": YahooProvider,
}


def get_provider(name: str, **kwargs: Any) -> DataProvider:
    """Instantiate and return a data provider by name.

    Args:
        name: Provider identifier (e.g. ``"yahoo"``).
        **kwargs: Passed to the provider constructor.

    Returns:
        An instance of the requested :class:`DataProvider`.

    Raises:
        ValueError: If no provider is registered under *name*.
    """
    cls = _PROVIDER_REGISTRY.get(name)
    if cls is None:
        available = ", ".join(sorted(_PROVIDER_REGISTRY.keys()))
        raise ValueError(
            f"Unknown provider '{name}'. Available providers: {available}"
        )
    return cls(**kwargs)


__all__ = [
    "DataProvider",
    "ProviderError",
    "YahooApiError",
    "YahooProvider",
    "get_provider",
]
