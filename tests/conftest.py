from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

import pytest

from leaptrader.models.option import OptionContract, OptionGreeks, build_occ_symbol

AS_OF = date(2025, 1, 2)


def make_contract(
    underlying: str = "AAPL",
    strike: float = 160.0,
    days: int = 500,
    right: str = "call",
    delta: Optional[float] = 0.6,
    bid: Optional[float] = 20.0,
    ask: Optional[float] = 20.5,
    volume: Optional[int] = 800,
    open_interest: Optional[int] = 3000,
    iv: Optional[float] = 0.28,
    as_of: date = AS_OF,
) -> OptionContract:
    expiration = as_of + timedelta(days=days)
    return OptionContract(
        symbol=build_occ_symbol(underlying, expiration, right, strike),
        underlying=underlying,
        strike=strike,
        expiration=expiration,
        right=right,
        bid=bid,
        ask=ask,
        last=ask,
        volume=volume,
        open_interest=open_interest,
        implied_volatility=iv,
        greeks=OptionGreeks(delta=delta) if delta is not None else None,
    )


class FakeClock:
    """Manually advanced clock returning seconds, like ``time.time``."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """Options provider returning canned results or raising canned errors."""

    def __init__(self, name: str, chain=None, error: Optional[Exception] = None, underlying=None) -> None:
        self._name = name
        self._chain = chain
        self._error = error
        self._underlying = underlying
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def supports_underlying_data(self) -> bool:
        return self._underlying is not None

    @property
    def supports_health_check(self) -> bool:
        return False

    async def get_option_chain(self, symbol, expiration=None):
        self.calls.append(f"chain:{symbol}")
        if self._error is not None:
            raise self._error
        return self._chain

    async def get_option_quote(self, symbol):
        self.calls.append(f"quote:{symbol}")
        if self._error is not None:
            raise self._error
        return self._chain[0] if self._chain else None

    async def get_underlying_data(self, symbol):
        self.calls.append(f"underlying:{symbol}")
        return self._underlying


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def call_contract() -> OptionContract:
    return make_contract()


@pytest.fixture
def contract_factory():
    return make_contract


@pytest.fixture
def provider_factory():
    return StubProvider
