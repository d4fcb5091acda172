from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from leaptrader.adapters import create_provider
from leaptrader.adapters.base import AdapterError, DataNotAvailable, RateLimitError
from leaptrader.adapters.yfinance import YFinanceOptionsDataProvider


@pytest.fixture
def ticker_mock():
    ticker = MagicMock()
    ticker.info = {"currentPrice": 100.0}
    ticker.options = ["2026-01-16", "not-a-date", "2027-01-15"]
    return ticker


def make_option_chain() -> SimpleNamespace:
    calls = pd.DataFrame(
        {
            "contractSymbol": ["AAPL270115C00100000", "AAPL270115C00120000"],
            "strike": [100.0, 120.0],
            "lastPrice": [31.25, 22.4],
            "volume": [10, float("nan")],
            "openInterest": [2000, 450],
            "impliedVolatility": [0.3, 0.0],
            "bid": [31.0, 22.1],
            "ask": [31.5, 22.7],
        }
    )
    puts = pd.DataFrame(
        {
            "contractSymbol": ["AAPL270115P00100000"],
            "strike": [100.0],
            "lastPrice": [9.10],
            "volume": [12],
            "openInterest": [22],
            "impliedVolatility": [0.31],
            "bid": [0.0],
            "ask": [9.15],
        }
    )
    return SimpleNamespace(calls=calls, puts=puts)


def make_provider(ticker, **kwargs) -> YFinanceOptionsDataProvider:
    kwargs.setdefault("sleep", MagicMock())
    return YFinanceOptionsDataProvider(ticker_factory=lambda _: ticker, **kwargs)


def test_fetch_chain_retries_and_combines_frames(ticker_mock):
    ticker_mock.option_chain.side_effect = [Exception("rate limit"), make_option_chain()]
    sleep = MagicMock()
    provider = make_provider(ticker_mock, max_retries=3, sleep=sleep)

    with patch("leaptrader.adapters.yfinance.random.uniform", return_value=0):
        contracts = provider._fetch_chain("AAPL", date(2027, 1, 15))

    assert ticker_mock.option_chain.call_count == 2
    sleep.assert_called_once_with(0.75)
    assert [contract.right for contract in contracts] == ["call", "call", "put"]
    assert {contract.underlying for contract in contracts} == {"AAPL"}
    assert {contract.expiration for contract in contracts} == {date(2027, 1, 15)}


def test_frame_values_are_normalized(ticker_mock):
    ticker_mock.option_chain.return_value = make_option_chain()
    provider = make_provider(ticker_mock)

    calls_100, calls_120, put = provider._fetch_chain("AAPL", date(2027, 1, 15))

    assert calls_100.open_interest == 2000
    assert calls_100.implied_volatility == pytest.approx(0.3)
    assert calls_100.delta is None
    assert calls_120.volume is None
    assert calls_120.implied_volatility is None
    assert put.bid is None
    assert put.ask == pytest.approx(9.15)


def test_get_expirations_skips_malformed_dates(ticker_mock):
    provider = make_provider(ticker_mock)

    assert provider.get_expirations("AAPL") == [date(2026, 1, 16), date(2027, 1, 15)]


def test_backoff_delay_grows_and_is_capped(ticker_mock):
    ticker_mock.option_chain.side_effect = Exception("boom")
    sleep = MagicMock()
    provider = make_provider(ticker_mock, max_retries=4, base_delay=1.5, max_delay=4.0, sleep=sleep)

    with patch("leaptrader.adapters.yfinance.random.uniform", return_value=0.1):
        with pytest.raises(AdapterError, match="boom"):
            provider._fetch_chain("AAPL", date(2027, 1, 15))

    delays = [call.args[0] for call in sleep.call_args_list]
    assert delays == pytest.approx([1.6, 3.1, 4.1])


def test_persistent_rate_limit_raises_rate_limit_error(ticker_mock):
    ticker_mock.option_chain.side_effect = Exception("429 Client Error: Too Many Requests")
    provider = make_provider(ticker_mock, max_retries=2)

    with pytest.raises(RateLimitError):
        provider._fetch_chain("AAPL", date(2027, 1, 15))


@pytest.mark.asyncio
async def test_get_option_quote_finds_contract(ticker_mock):
    ticker_mock.option_chain.return_value = make_option_chain()
    provider = make_provider(ticker_mock)

    quote = await provider.get_option_quote("AAPL270115P00100000")

    assert quote.right == "put"
    assert quote.strike == 100.0
    ticker_mock.option_chain.assert_called_once_with("2027-01-15")


@pytest.mark.asyncio
async def test_get_option_quote_missing_contract(ticker_mock):
    ticker_mock.option_chain.return_value = make_option_chain()
    provider = make_provider(ticker_mock)

    with pytest.raises(DataNotAvailable):
        await provider.get_option_quote("AAPL270115C00999000")


@pytest.mark.asyncio
async def test_get_option_chain_without_expiration_walks_all_expiries(ticker_mock):
    ticker_mock.option_chain.return_value = make_option_chain()
    provider = make_provider(ticker_mock)

    contracts = await provider.get_option_chain("AAPL")

    assert ticker_mock.option_chain.call_count == 2
    assert len(contracts) == 6


@pytest.mark.asyncio
async def test_health_check_requires_expirations(ticker_mock):
    provider = make_provider(ticker_mock)
    await provider.health_check()

    ticker_mock.options = []
    with pytest.raises(DataNotAvailable):
        await provider.health_check()


def test_capabilities_and_factory():
    provider = create_provider("YFinance", max_retries=5)

    assert isinstance(provider, YFinanceOptionsDataProvider)
    assert provider.name == "yfinance"
    assert provider.supports_underlying_data
    assert provider.supports_health_check
