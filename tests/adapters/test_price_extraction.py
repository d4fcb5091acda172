"""Tests for underlying price extraction across yfinance data sources."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock

import pandas as pd
import pytest

from leaptrader.adapters.base import DataNotAvailable
from leaptrader.adapters.yfinance import YFinanceOptionsDataProvider


@pytest.fixture
def provider():
    return YFinanceOptionsDataProvider(max_retries=1, sleep=MagicMock())


class TestPriceExtraction:
    """Price sources are tried freshest first: fast_info, intraday history, info."""

    def test_extract_price_from_fast_info(self, provider):
        """fast_info wins when it carries a valid price."""
        ticker = Mock()
        ticker.fast_info = {"last_price": 150.25, "last_volume": 1200}

        price, timestamp, volume = provider._extract_price(ticker)

        assert price == 150.25
        assert volume == 1200
        assert timestamp.tzinfo is not None

    def test_extract_price_from_intraday_history(self, provider):
        """Falls back to the last intraday close, converted to UTC."""
        ticker = Mock()
        ticker.fast_info = {}
        last_bar = datetime(2025, 1, 2, 15, 59, tzinfo=timezone.utc)
        ticker.history = Mock(
            return_value=pd.DataFrame(
                {"Close": [152.5, 152.75, 153.0], "Volume": [100, 200, 300]},
                index=pd.DatetimeIndex([last_bar - timedelta(minutes=2), last_bar - timedelta(minutes=1), last_bar]),
            )
        )

        price, timestamp, volume = provider._extract_price(ticker)

        assert price == 153.0
        assert volume == 600
        assert timestamp == last_bar

    def test_naive_history_index_is_treated_as_new_york(self, provider):
        """Naive bar timestamps are exchange-local."""
        ticker = Mock()
        ticker.fast_info = {}
        ticker.history = Mock(
            return_value=pd.DataFrame({"Close": [101.0]}, index=pd.DatetimeIndex([datetime(2025, 1, 2, 10, 0)]))
        )

        _, timestamp, volume = provider._extract_price(ticker)

        assert timestamp == datetime(2025, 1, 2, 15, 0, tzinfo=timezone.utc)
        assert volume == 0

    def test_extract_price_from_info(self, provider):
        """info is the last resort and skips non-positive prices."""
        ticker = Mock()
        ticker.fast_info = {"last_price": 0}
        ticker.history = Mock(return_value=pd.DataFrame())
        ticker.info = {"currentPrice": None, "regularMarketPrice": 148.0, "regularMarketVolume": 5000}

        price, _, volume = provider._extract_price(ticker)

        assert price == 148.0
        assert volume == 5000

    def test_history_errors_fall_through_to_info(self, provider):
        ticker = Mock()
        ticker.fast_info = {}
        ticker.history = Mock(side_effect=Exception("history unavailable"))
        ticker.info = {"previousClose": 99.5}

        price, _, _ = provider._extract_price(ticker)

        assert price == 99.5

    def test_no_valid_price_returns_none(self, provider):
        ticker = Mock()
        ticker.fast_info = {"last_price": float("nan")}
        ticker.history = Mock(return_value=pd.DataFrame())
        ticker.info = {"currentPrice": -1}

        assert provider._extract_price(ticker) is None

    @pytest.mark.asyncio
    async def test_get_underlying_data_wraps_market_data(self):
        ticker = Mock()
        ticker.fast_info = {"lastPrice": 512.3}
        provider = YFinanceOptionsDataProvider(ticker_factory=lambda _: ticker, sleep=MagicMock())

        market = await provider.get_underlying_data("SPY")

        assert market.symbol == "SPY"
        assert market.price == 512.3

    @pytest.mark.asyncio
    async def test_get_underlying_data_without_price(self):
        ticker = Mock()
        ticker.fast_info = {}
        ticker.history = Mock(return_value=pd.DataFrame())
        ticker.info = {}
        provider = YFinanceOptionsDataProvider(ticker_factory=lambda _: ticker, sleep=MagicMock())

        with pytest.raises(DataNotAvailable):
            await provider.get_underlying_data("SPY")
