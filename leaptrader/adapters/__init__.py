"""Provider implementations for external options data sources."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Type

from .base import OptionsDataProvider
from .cache import TTLCache
from .router import OptionsDataRouter, ProviderHealthStatus, ProviderStats

_PROVIDER_REGISTRY: Dict[str, str] = {
    "yfinance": "leaptrader.adapters.yfinance:YFinanceOptionsDataProvider",
}


def create_provider(provider: str, **settings: Any) -> OptionsDataProvider:
    """Instantiate an options data provider by name.

    Args:
        provider: The lowercase name of the provider to load.
        settings: Keyword arguments forwarded to the provider constructor.

    Returns:
        An instance of the requested provider implementation.

    Raises:
        KeyError: If the provider name is unknown.
    """

    normalized = provider.lower()
    try:
        dotted_path = _PROVIDER_REGISTRY[normalized]
    except KeyError as exc:
        raise KeyError(f"Unknown options data provider: {provider}") from exc

    module_name, class_name = dotted_path.split(":", 1)
    module = import_module(module_name)
    provider_cls: Type[OptionsDataProvider] = getattr(module, class_name)
    return provider_cls(**settings)


__all__ = [
    "OptionsDataProvider",
    "OptionsDataRouter",
    "ProviderHealthStatus",
    "ProviderStats",
    "TTLCache",
    "create_provider",
]
