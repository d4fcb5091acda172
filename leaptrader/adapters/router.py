"""Priority-ordered failover across options data providers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from leaptrader.errors import AllProvidersFailedError
from leaptrader.models.option import MarketData, OptionContract
from leaptrader.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry

from .base import OptionsDataProvider
from .cache import TTLCache

logger = logging.getLogger(__name__)

HEALTH_CANARY_SYMBOL = "SPY240119C00400000"
DEFAULT_CHAIN_TTL = 30.0
DEFAULT_QUOTE_TTL = 5.0
DEFAULT_UNDERLYING_TTL = 10.0


@dataclass
class _ProviderRoute:
    provider: OptionsDataProvider
    priority: int
    breaker: CircuitBreaker
    enabled: bool = True
    last_used: Optional[datetime] = None
    success_count: int = 0
    error_count: int = 0


@dataclass(frozen=True)
class ProviderHealthStatus:
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class ProviderStats:
    name: str
    priority: int
    enabled: bool
    last_used: Optional[datetime]
    success_count: int
    error_count: int
    breaker_state: str


class OptionsDataRouter:
    """Serve chains, quotes and underlying data from the first healthy provider.

    Providers are tried highest priority first (ties keep insertion order).
    Each call goes through the provider's ``provider:{name}`` circuit breaker,
    and successful results are cached with a per-data-type TTL.
    """

    def __init__(
        self,
        providers: Sequence[OptionsDataProvider] = (),
        *,
        breakers: Optional[CircuitBreakerRegistry] = None,
        cache: Optional[TTLCache] = None,
        chain_ttl: float = DEFAULT_CHAIN_TTL,
        quote_ttl: float = DEFAULT_QUOTE_TTL,
        underlying_ttl: float = DEFAULT_UNDERLYING_TTL,
        canary_symbol: str = HEALTH_CANARY_SYMBOL,
        breaker_overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._breakers = breakers or CircuitBreakerRegistry()
        self._cache = cache or TTLCache(default_ttl=chain_ttl)
        self._ttls = {"chain": chain_ttl, "quote": quote_ttl, "underlying": underlying_ttl}
        self._canary_symbol = canary_symbol
        self._breaker_overrides = dict(breaker_overrides or {})
        self._routes: List[_ProviderRoute] = []
        for provider in providers:
            self.add_provider(provider)
        logger.info(f"OptionsDataRouter initialized with {len(self._routes)} provider(s)")

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    def add_provider(self, provider: OptionsDataProvider, priority: int = 0) -> None:
        breaker = self._breakers.get_breaker(f"provider:{provider.name}", **self._breaker_overrides)
        self._routes.append(_ProviderRoute(provider=provider, priority=priority, breaker=breaker))
        # list.sort is stable, so equal priorities keep insertion order.
        self._routes.sort(key=lambda route: route.priority, reverse=True)
        logger.info(f"Data provider added: {provider.name} (priority={priority}, total={len(self._routes)})")

    def set_enabled(self, name: str, enabled: bool) -> None:
        for route in self._routes:
            if route.provider.name == name:
                route.enabled = enabled
                return
        raise KeyError(f"Unknown provider: {name}")

    async def get_option_chain(self, symbol: str, expiration: Optional[date] = None) -> List[OptionContract]:
        cache_key = f"chain:{symbol}:{expiration.isoformat() if expiration else 'all'}"
        return await self._route(
            operation="get_option_chain",
            symbol=symbol,
            cache_key=cache_key,
            ttl=self._ttls["chain"],
            call=lambda provider: provider.get_option_chain(symbol, expiration),
            is_empty=lambda result: not result,
        )

    async def get_option_quote(self, symbol: str) -> OptionContract:
        return await self._route(
            operation="get_option_quote",
            symbol=symbol,
            cache_key=f"quote:{symbol}",
            ttl=self._ttls["quote"],
            call=lambda provider: provider.get_option_quote(symbol),
        )

    async def get_underlying_data(self, symbol: str) -> MarketData:
        return await self._route(
            operation="get_underlying_data",
            symbol=symbol,
            cache_key=f"underlying:{symbol}",
            ttl=self._ttls["underlying"],
            call=lambda provider: provider.get_underlying_data(symbol),
            supported=lambda provider: provider.supports_underlying_data,
        )

    async def health_check(self) -> List[ProviderHealthStatus]:
        """Probe every provider; individual failures are reported, never raised."""

        results: List[ProviderHealthStatus] = []
        for route in self._routes:
            provider = route.provider
            started = time.perf_counter()
            try:
                if provider.supports_health_check:
                    await provider.health_check()
                else:
                    await provider.get_option_quote(self._canary_symbol)
            except Exception as exc:
                results.append(
                    ProviderHealthStatus(name=provider.name, healthy=False, response_time_ms=-1.0, error=str(exc))
                )
                continue
            elapsed_ms = (time.perf_counter() - started) * 1000
            results.append(ProviderHealthStatus(name=provider.name, healthy=True, response_time_ms=elapsed_ms))

        healthy = sum(1 for status in results if status.healthy)
        logger.info(f"Provider health check completed: {healthy}/{len(results)} healthy")
        return results

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        removed = self._cache.clear(pattern)
        if pattern:
            logger.info(f"Cache cleared for pattern '{pattern}' ({removed} entries)")
        else:
            logger.info("All cache cleared")
        return removed

    def get_provider_stats(self) -> List[ProviderStats]:
        return [
            ProviderStats(
                name=route.provider.name,
                priority=route.priority,
                enabled=route.enabled,
                last_used=route.last_used,
                success_count=route.success_count,
                error_count=route.error_count,
                breaker_state=route.breaker.state.value,
            )
            for route in self._routes
        ]

    async def _route(
        self,
        *,
        operation: str,
        symbol: str,
        cache_key: str,
        ttl: float,
        call: Callable[[OptionsDataProvider], Awaitable[Any]],
        is_empty: Callable[[Any], bool] = lambda result: result is None,
        supported: Callable[[OptionsDataProvider], bool] = lambda provider: True,
    ) -> Any:
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"{operation}({symbol}) served from cache")
            return cached

        failed_sources: List[str] = []
        last_error: Optional[BaseException] = None
        for route in self._routes:
            provider = route.provider
            if not route.enabled or not supported(provider):
                continue
            route.last_used = datetime.now(timezone.utc)
            try:
                result = await route.breaker.execute(lambda: call(provider))
            except Exception as exc:
                last_error = exc
                route.error_count += 1
                failed_sources.append(provider.name)
                logger.warning(f"Provider {provider.name} failed for {operation}({symbol}): {exc}")
                continue

            if is_empty(result):
                failed_sources.append(provider.name)
                logger.warning(f"Provider {provider.name} returned no data for {operation}({symbol})")
                continue

            route.success_count += 1
            self._cache.set(cache_key, result, ttl)
            logger.info(f"{operation}({symbol}) served by {provider.name}")
            return result

        error = AllProvidersFailedError(symbol, operation, failed_sources, last_error)
        logger.error(str(error))
        raise error


__all__ = [
    "DEFAULT_CHAIN_TTL",
    "DEFAULT_QUOTE_TTL",
    "DEFAULT_UNDERLYING_TTL",
    "HEALTH_CANARY_SYMBOL",
    "OptionsDataRouter",
    "ProviderHealthStatus",
    "ProviderStats",
]
