"""Core abstractions for options data providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from leaptrader.errors import AdapterError, AllProvidersFailedError, DataNotAvailable, RateLimitError
from leaptrader.models.option import MarketData, OptionContract


class OptionsDataProvider(ABC):
    """Abstract base class for fetching options data from external providers.

    ``get_underlying_data`` and ``health_check`` are optional: providers that
    do not override them are skipped for underlying data and probed with a
    canary quote during health checks.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable provider name."""

    @abstractmethod
    async def get_option_chain(self, symbol: str, expiration: Optional[date] = None) -> List[OptionContract]:
        """Return contracts for ``symbol``; every expiration when ``expiration`` is ``None``."""

    @abstractmethod
    async def get_option_quote(self, symbol: str) -> OptionContract:
        """Return the latest quote for an OCC option symbol."""

    async def get_underlying_data(self, symbol: str) -> MarketData:
        raise NotImplementedError

    async def health_check(self) -> None:
        raise NotImplementedError

    @property
    def supports_underlying_data(self) -> bool:
        return type(self).get_underlying_data is not OptionsDataProvider.get_underlying_data

    @property
    def supports_health_check(self) -> bool:
        return type(self).health_check is not OptionsDataProvider.health_check


__all__ = [
    "AdapterError",
    "AllProvidersFailedError",
    "DataNotAvailable",
    "OptionsDataProvider",
    "RateLimitError",
]
