"""Configuration helpers: settings, logging and component wiring."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

from leaptrader.adapters import OptionsDataProvider, OptionsDataRouter, create_provider
from leaptrader.ml import MLEngineCore, MLEngineHttpClient, RetryPolicy
from leaptrader.resilience import CircuitBreakerRegistry
from leaptrader.scoring import StrikeOptimizer

from .loader import AppSettings, get_settings, reset_settings_cache

logger = logging.getLogger(__name__)


def configure_logging(settings: Optional[AppSettings] = None) -> None:
    """Apply the configured root log level and format."""

    settings = settings or get_settings()
    logging.basicConfig(level=settings.logging.level, format=settings.logging.format, force=True)
    logger.debug(f"Logging configured at {settings.logging.level} for env={settings.env}")


def build_router(
    settings: Optional[AppSettings] = None,
    providers: Optional[Sequence[OptionsDataProvider]] = None,
    breakers: Optional[CircuitBreakerRegistry] = None,
) -> OptionsDataRouter:
    """Create an ``OptionsDataRouter`` from the ``data``, ``cache`` and ``circuit_breaker`` settings.

    When ``providers`` is given those instances are used, taking their
    priority from the matching ``data.providers`` entry (0 if absent).
    Otherwise every enabled configured provider is constructed by name.
    """

    settings = settings or get_settings()
    registry = breakers or CircuitBreakerRegistry(defaults=settings.circuit_breaker.model_dump())
    router = OptionsDataRouter(
        breakers=registry,
        chain_ttl=settings.cache.chain_ttl_seconds,
        quote_ttl=settings.cache.quote_ttl_seconds,
        underlying_ttl=settings.cache.underlying_ttl_seconds,
        canary_symbol=settings.data.health_canary_symbol,
    )

    configured = {entry.name.lower(): entry for entry in settings.data.providers}
    if providers is not None:
        for provider in providers:
            entry = configured.get(provider.name.lower())
            router.add_provider(provider, priority=entry.priority if entry else 0)
        return router

    for entry in settings.data.providers:
        if not entry.enabled:
            logger.info(f"Data provider {entry.name} disabled in settings")
            continue
        try:
            provider = create_provider(entry.name, **entry.settings)
        except KeyError as exc:
            raise ValueError(f"Unsupported options data provider: {entry.name}") from exc
        router.add_provider(provider, priority=entry.priority)
    return router


def build_ml_engine(
    settings: Optional[AppSettings] = None,
    breakers: Optional[CircuitBreakerRegistry] = None,
) -> Union[MLEngineCore, MLEngineHttpClient]:
    """Remote client when ``ml_service.enabled``, otherwise the in-process engine."""

    settings = settings or get_settings()
    service = settings.ml_service
    if not service.enabled:
        return MLEngineCore(optimizer=StrikeOptimizer(settings.scoring_dict()))

    retry = service.retry
    return MLEngineHttpClient(
        service.base_url,
        service.api_key,
        timeout=service.timeout_seconds,
        retry_policy=RetryPolicy(
            base_delay_ms=retry.base_delay_ms,
            max_delay_ms=retry.max_delay_ms,
            max_retries=retry.max_retries,
            jitter_ms=retry.jitter_ms,
            default_retry_after=retry.default_retry_after,
        ),
        breakers=breakers,
    )


__all__ = [
    "AppSettings",
    "build_ml_engine",
    "build_router",
    "configure_logging",
    "get_settings",
    "reset_settings_cache",
]
