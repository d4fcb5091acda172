import logging

import pytest

from leaptrader.adapters.yfinance import YFinanceOptionsDataProvider
from leaptrader.config import build_ml_engine, build_router, configure_logging
from leaptrader.config.loader import AppSettings
from leaptrader.ml import MLEngineCore, MLEngineHttpClient
from leaptrader.resilience import CircuitBreakerRegistry


def make_settings(**overrides) -> AppSettings:
    values = {
        "env": "test",
        "watchlists": {"default": ["SPY"]},
        "cache": {"chain_ttl_seconds": 45, "quote_ttl_seconds": 3, "underlying_ttl_seconds": 8},
        "circuit_breaker": {"failure_threshold": 2, "reset_timeout_ms": 1000, "success_threshold": 1, "timeout_ms": 500},
        "data": {
            "providers": [
                {"name": "yfinance", "priority": 7, "settings": {"max_retries": 2}},
            ],
            "health_canary_symbol": "QQQ260116C00400000",
        },
    }
    values.update(overrides)
    return AppSettings(**values)


def test_build_router_creates_configured_providers():
    router = build_router(make_settings())

    stats = router.get_provider_stats()
    assert [(entry.name, entry.priority) for entry in stats] == [("yfinance", 7)]
    assert "provider:yfinance" in router.breakers
    breaker = router.breakers.get_breaker("provider:yfinance")
    assert breaker.config.failure_threshold == 2
    assert breaker.config.timeout_ms == 500


def test_build_router_skips_disabled_providers():
    settings = make_settings(data={"providers": [{"name": "yfinance", "enabled": False}]})

    assert build_router(settings).get_provider_stats() == []


def test_build_router_rejects_unknown_providers():
    settings = make_settings(data={"providers": [{"name": "polygon"}]})

    with pytest.raises(ValueError, match="polygon"):
        build_router(settings)


def test_build_router_with_explicit_providers(provider_factory):
    primary = provider_factory("yfinance")
    extra = provider_factory("replay")

    router = build_router(make_settings(), providers=[extra, primary])

    assert [(entry.name, entry.priority) for entry in router.get_provider_stats()] == [("yfinance", 7), ("replay", 0)]


@pytest.mark.asyncio
async def test_router_uses_configured_ttls(provider_factory, contract_factory):
    provider = provider_factory("yfinance", chain=[contract_factory()])
    router = build_router(make_settings(), providers=[provider])

    await router.get_option_chain("AAPL")
    entry = router.cache._entries["chain:AAPL:all"]

    assert entry.ttl == 45


def test_configured_provider_receives_settings():
    router = build_router(make_settings())
    provider = router._routes[0].provider

    assert isinstance(provider, YFinanceOptionsDataProvider)
    assert provider._max_retries == 2


def test_local_ml_engine_when_service_disabled():
    engine = build_ml_engine(make_settings(scoring={"weights": {"liquidity": 0.4}}))

    assert isinstance(engine, MLEngineCore)


@pytest.mark.asyncio
async def test_http_client_when_service_enabled():
    settings = make_settings(
        ml_service={"enabled": True, "base_url": "https://ml.test", "api_key": "k", "retry": {"max_retries": 1}}
    )
    registry = CircuitBreakerRegistry()

    client = build_ml_engine(settings, breakers=registry)

    assert isinstance(client, MLEngineHttpClient)
    assert "ml-engine" in registry
    await client.aclose()


def test_configure_logging_applies_level():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    try:
        configure_logging(make_settings(logging={"level": "warning"}))

        assert root.level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
