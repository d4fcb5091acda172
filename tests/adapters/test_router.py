from __future__ import annotations

import pytest

from leaptrader.adapters import OptionsDataRouter, TTLCache
from leaptrader.errors import AdapterError, AllProvidersFailedError, RateLimitError
from leaptrader.models.option import MarketData
from leaptrader.resilience import CircuitBreakerRegistry, CircuitState


@pytest.fixture
def chain(contract_factory):
    return [contract_factory(strike=150.0), contract_factory(strike=170.0)]


@pytest.fixture
def router_factory(clock):
    def _build(*providers, **kwargs):
        kwargs.setdefault("cache", TTLCache(clock=clock))
        kwargs.setdefault("breakers", CircuitBreakerRegistry(clock=clock))
        router = OptionsDataRouter(**kwargs)
        for provider, priority in providers:
            router.add_provider(provider, priority=priority)
        return router

    return _build


@pytest.mark.asyncio
async def test_failover_serves_from_first_healthy_provider_and_caches(router_factory, provider_factory, chain):
    broken = provider_factory("primary", error=AdapterError("connection reset"))
    empty = provider_factory("secondary", chain=[])
    healthy = provider_factory("tertiary", chain=chain)
    router = router_factory((broken, 30), (empty, 20), (healthy, 10))

    first = await router.get_option_chain("AAPL")
    second = await router.get_option_chain("AAPL")

    assert first == chain
    assert second is first
    assert broken.calls == ["chain:AAPL"]
    assert empty.calls == ["chain:AAPL"]
    assert healthy.calls == ["chain:AAPL"]


@pytest.mark.asyncio
async def test_cache_entry_expires_after_ttl(router_factory, provider_factory, chain, clock):
    provider = provider_factory("yfinance", chain=chain)
    router = router_factory((provider, 0), chain_ttl=30)

    await router.get_option_chain("AAPL")
    clock.advance(29)
    await router.get_option_chain("AAPL")
    clock.advance(2)
    await router.get_option_chain("AAPL")

    assert provider.calls == ["chain:AAPL", "chain:AAPL"]


@pytest.mark.asyncio
async def test_all_providers_failed_reports_sources_and_last_error(router_factory, provider_factory):
    first = provider_factory("alpha", error=AdapterError("boom"))
    second = provider_factory("beta", error=RateLimitError("Too Many Requests"))
    router = router_factory((first, 2), (second, 1))

    with pytest.raises(AllProvidersFailedError) as excinfo:
        await router.get_option_quote("AAPL270115C00160000")

    error = excinfo.value
    assert error.failed_sources == ["alpha", "beta"]
    assert isinstance(error.last_error, RateLimitError)
    assert "alpha, beta" in str(error)
    assert "Too Many Requests" in str(error)


@pytest.mark.asyncio
async def test_no_providers_configured(router_factory):
    router = router_factory()

    with pytest.raises(AllProvidersFailedError, match="none configured"):
        await router.get_option_chain("SPY")


@pytest.mark.asyncio
async def test_higher_priority_provider_is_preferred(router_factory, provider_factory, chain, contract_factory):
    backup_chain = [contract_factory(strike=999.0)]
    low = provider_factory("low", chain=backup_chain)
    high = provider_factory("high", chain=chain)
    router = router_factory((low, 1), (high, 5))

    result = await router.get_option_chain("AAPL")

    assert result == chain
    assert low.calls == []
    assert [stats.name for stats in router.get_provider_stats()] == ["high", "low"]


@pytest.mark.asyncio
async def test_equal_priorities_keep_insertion_order(router_factory, provider_factory, chain):
    first = provider_factory("first", chain=chain)
    second = provider_factory("second", chain=chain)
    router = router_factory((first, 0), (second, 0))

    await router.get_option_chain("AAPL")

    assert first.calls == ["chain:AAPL"]
    assert second.calls == []


@pytest.mark.asyncio
async def test_open_breaker_skips_provider(router_factory, provider_factory, chain):
    flaky = provider_factory("flaky", error=AdapterError("down"))
    healthy = provider_factory("healthy", chain=chain)
    router = router_factory((flaky, 1), (healthy, 0), breaker_overrides={"failure_threshold": 2})

    for symbol in ("AAPL", "MSFT", "NVDA"):
        await router.get_option_chain(symbol)

    assert flaky.calls == ["chain:AAPL", "chain:MSFT"]
    assert router.breakers.get_breaker("provider:flaky").state is CircuitState.OPEN
    stats = {entry.name: entry for entry in router.get_provider_stats()}
    assert stats["flaky"].error_count == 3
    assert stats["flaky"].breaker_state == "OPEN"
    assert stats["healthy"].success_count == 3


@pytest.mark.asyncio
async def test_underlying_data_skips_unsupported_providers(router_factory, provider_factory, chain):
    market = MarketData(symbol="AAPL", price=187.5, volume=1_000_000)
    chain_only = provider_factory("chain-only", chain=chain)
    full = provider_factory("full", chain=chain, underlying=market)
    router = router_factory((chain_only, 10), (full, 0))

    result = await router.get_underlying_data("AAPL")

    assert result == market
    assert chain_only.calls == []


@pytest.mark.asyncio
async def test_disabled_provider_is_skipped(router_factory, provider_factory, chain):
    primary = provider_factory("primary", chain=chain)
    backup = provider_factory("backup", chain=chain)
    router = router_factory((primary, 1), (backup, 0))

    router.set_enabled("primary", False)
    await router.get_option_chain("AAPL")

    assert primary.calls == []
    assert backup.calls == ["chain:AAPL"]
    with pytest.raises(KeyError):
        router.set_enabled("missing", True)


@pytest.mark.asyncio
async def test_health_check_uses_canary_quote(router_factory, provider_factory, chain):
    good = provider_factory("good", chain=chain)
    bad = provider_factory("bad", error=AdapterError("unreachable"))
    router = router_factory((good, 1), (bad, 0), canary_symbol="SPY260116C00500000")

    statuses = await router.health_check()

    assert good.calls == ["quote:SPY260116C00500000"]
    assert statuses[0].healthy is True
    assert statuses[0].response_time_ms >= 0
    assert statuses[1].healthy is False
    assert statuses[1].response_time_ms == -1.0
    assert statuses[1].error == "unreachable"


@pytest.mark.asyncio
async def test_clear_cache_by_pattern(router_factory, provider_factory, chain):
    provider = provider_factory("yfinance", chain=chain)
    router = router_factory((provider, 0))
    await router.get_option_chain("AAPL")
    await router.get_option_chain("MSFT")
    await router.get_option_quote("AAPL270115C00160000")

    removed = router.clear_cache("chain:AAPL")

    assert removed == 1
    assert sorted(router.cache.keys()) == ["chain:MSFT:all", "quote:AAPL270115C00160000"]
    assert router.clear_cache() == 2
    assert len(router.cache) == 0
