"""Option chain sources for the backtester.

``SyntheticChainSource`` prices a deterministic chain per (symbol, date) with
Black-Scholes so runs are reproducible offline. ``RouterChainSource`` reads
live chains through an :class:`~leaptrader.adapters.OptionsDataRouter`.
"""

from __future__ import annotations

import logging
import math
import zlib
from datetime import date, timedelta
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from leaptrader.models.option import OptionContract, OptionGreeks, OptionRight, build_occ_symbol

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS: Tuple[int, ...] = (180, 400, 540, 760)
DEFAULT_MONEYNESS: Tuple[float, ...] = (0.8, 0.9, 0.95, 1.0, 1.05, 1.1, 1.2)


class ChainSource(Protocol):
    async def get_chain(self, symbol: str, as_of: date) -> List[OptionContract]:
        ...

    async def get_spot(self, symbol: str, as_of: date) -> float:
        ...

    async def get_iv_rank(self, symbol: str, as_of: date) -> Optional[float]:
        ...


def black_scholes(
    right: OptionRight,
    spot: float,
    strike: float,
    years: float,
    volatility: float,
    rate: float = 0.05,
) -> Tuple[float, float]:
    """Return ``(price, delta)`` for a European option without dividends."""

    if years <= 0 or volatility <= 0:
        intrinsic = max(0.0, spot - strike) if right == "call" else max(0.0, strike - spot)
        delta = (1.0 if spot > strike else 0.0) if right == "call" else (-1.0 if spot < strike else 0.0)
        return intrinsic, delta

    sqrt_t = math.sqrt(years)
    d1 = (math.log(spot / strike) + (rate + 0.5 * volatility**2) * years) / (volatility * sqrt_t)
    d2 = d1 - volatility * sqrt_t
    discount = math.exp(-rate * years)
    if right == "call":
        return spot * norm.cdf(d1) - strike * discount * norm.cdf(d2), float(norm.cdf(d1))
    return strike * discount * norm.cdf(-d2) - spot * norm.cdf(-d1), float(norm.cdf(d1) - 1)


class SyntheticChainSource:
    """Deterministic synthetic chains keyed on ``(seed, symbol, date)``.

    The same inputs always yield the same spot, IV, IV rank and quotes, which
    keeps backtests reproducible independent of the order symbols are queried.
    """

    def __init__(
        self,
        seed: int = 0,
        base_prices: Optional[Dict[str, float]] = None,
        expiry_days: Sequence[int] = DEFAULT_EXPIRY_DAYS,
        moneyness: Sequence[float] = DEFAULT_MONEYNESS,
        rate: float = 0.05,
    ) -> None:
        self.seed = seed
        self._base_prices = dict(base_prices or {})
        self._expiry_days = tuple(expiry_days)
        self._moneyness = tuple(moneyness)
        self._rate = rate

    async def get_chain(self, symbol: str, as_of: date) -> List[OptionContract]:
        return self.build_chain(symbol, as_of)

    async def get_spot(self, symbol: str, as_of: date) -> float:
        return self._day_state(symbol, as_of)[0]

    async def get_iv_rank(self, symbol: str, as_of: date) -> Optional[float]:
        return self._day_state(symbol, as_of)[2]

    def build_chain(self, symbol: str, as_of: date) -> List[OptionContract]:
        spot, volatility, _ = self._day_state(symbol, as_of)
        rng = self._rng(symbol, as_of, salt=1)
        contracts: List[OptionContract] = []
        for days in self._expiry_days:
            expiration = as_of + timedelta(days=days)
            years = days / 365.0
            for ratio in self._moneyness:
                strike = float(max(1, round(spot * ratio)))
                for right in ("call", "put"):
                    price, delta = black_scholes(right, spot, strike, years, volatility, self._rate)
                    price = max(price, 0.05)
                    half_spread = price * float(rng.uniform(0.005, 0.03))
                    contracts.append(
                        OptionContract(
                            symbol=build_occ_symbol(symbol, expiration, right, strike),
                            underlying=symbol,
                            strike=strike,
                            expiration=expiration,
                            right=right,
                            bid=round(max(0.01, price - half_spread), 2),
                            ask=round(price + half_spread, 2),
                            last=round(price, 2),
                            volume=int(rng.integers(0, 2500)),
                            open_interest=int(rng.integers(100, 10000)),
                            implied_volatility=volatility,
                            greeks=OptionGreeks(delta=round(delta, 4)),
                        )
                    )
        return contracts

    def _day_state(self, symbol: str, as_of: date) -> Tuple[float, float, float]:
        """``(spot, implied volatility, IV rank)`` for the symbol on ``as_of``."""

        rng = self._rng(symbol, as_of, salt=0)
        base = self._base_prices.get(symbol) or 50.0 + zlib.crc32(symbol.encode()) % 450
        spot = round(base * (1 + float(rng.normal(0.0, 0.02))), 2)
        volatility = round(0.18 + float(rng.uniform(0.0, 0.22)), 4)
        iv_rank = round(float(rng.uniform(0.0, 100.0)), 1)
        return spot, volatility, iv_rank

    def _rng(self, symbol: str, as_of: date, salt: int) -> np.random.Generator:
        key = zlib.crc32(f"{symbol}:{as_of.isoformat()}".encode())
        return np.random.default_rng([self.seed, key, salt])


class RouterChainSource:
    """Live chains through an options data router; history is not available."""

    def __init__(self, router) -> None:
        self._router = router

    async def get_chain(self, symbol: str, as_of: date) -> List[OptionContract]:
        return await self._router.get_option_chain(symbol)

    async def get_spot(self, symbol: str, as_of: date) -> float:
        data = await self._router.get_underlying_data(symbol)
        return data.price

    async def get_iv_rank(self, symbol: str, as_of: date) -> Optional[float]:
        return None


__all__ = ["ChainSource", "RouterChainSource", "SyntheticChainSource", "black_scholes"]
