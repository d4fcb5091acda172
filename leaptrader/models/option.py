from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

OptionRight = Literal["call", "put"]

_OCC_PATTERN = re.compile(r"^(?P<root>[A-Z.]{1,6})(?P<date>\d{6})(?P<right>[CP])(?P<strike>\d{8})$")


class OptionGreeks(BaseModel):
    """Greeks as quoted by the provider; absent until quoted."""

    model_config = ConfigDict(frozen=True)

    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    rho: Optional[float] = None


class OptionContract(BaseModel):
    """Immutable quote snapshot for a single option contract.

    A refreshed quote is a new instance (``contract.model_copy(update=...)``),
    never an in-place mutation.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    symbol: str
    underlying: str
    strike: float
    expiration: date
    right: OptionRight = Field(validation_alias=AliasChoices("right", "type"))
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = Field(default=None, validation_alias=AliasChoices("last", "lastPrice"))
    volume: Optional[int] = None
    open_interest: Optional[int] = Field(default=None, alias="openInterest")
    implied_volatility: Optional[float] = Field(
        default=None, alias="iv", validation_alias=AliasChoices("iv", "impliedVolatility", "implied_volatility")
    )
    greeks: Optional[OptionGreeks] = None

    @field_validator("expiration", mode="before")
    @classmethod
    def parse_expiration(cls, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return datetime.strptime(value[:10], "%Y-%m-%d").date()
        raise ValueError("Unsupported expiration format")

    @field_validator("right", mode="before")
    @classmethod
    def normalize_right(cls, value: Any) -> str:
        normalized = str(value).strip().lower()
        if normalized in {"c", "call", "calls"}:
            return "call"
        if normalized in {"p", "put", "puts"}:
            return "put"
        raise ValueError(f"Unknown option right: {value}")

    @field_validator("volume", "open_interest", mode="before")
    @classmethod
    def coerce_int(cls, value: Any) -> Optional[int]:
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return None
        return int(value)

    @property
    def delta(self) -> Optional[float]:
        return self.greeks.delta if self.greeks is not None else None

    @property
    def mid_price(self) -> float:
        return ((self.bid or 0.0) + (self.ask or 0.0)) / 2

    @property
    def spread_pct(self) -> Optional[float]:
        """Bid/ask spread as a percentage of mid, ``None`` when a side is missing."""

        if not self.bid or not self.ask:
            return None
        mid = self.mid_price
        return (self.ask - self.bid) / mid * 100 if mid > 0 else None

    def intrinsic_value(self, spot: float) -> float:
        if self.right == "call":
            return max(0.0, spot - self.strike)
        return max(0.0, self.strike - spot)

    def days_to_expiration(self, as_of: date | datetime | None = None) -> int:
        """Calendar days until expiration, rounded up."""

        if as_of is None:
            as_of = datetime.now(timezone.utc).date()
        if isinstance(as_of, datetime):
            expiry = datetime.combine(self.expiration, time.min, tzinfo=as_of.tzinfo)
            return math.ceil((expiry - as_of).total_seconds() / 86400)
        return (self.expiration - as_of).days

    def is_leaps(self, as_of: date | datetime | None = None, min_days: int = 365) -> bool:
        return self.days_to_expiration(as_of) > min_days


class MarketData(BaseModel):
    """Underlying quote returned by data providers."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: float
    volume: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    change: float = 0.0
    change_percent: float = Field(default=0.0, alias="changePercent")


class UnderlyingSnapshot(BaseModel):
    """Underlying inputs for feature construction; indicators are optional."""

    symbol: str
    spot: float
    iv_rank: Optional[float] = None
    rsi14: Optional[float] = None
    atr14: Optional[float] = None
    trend_days: Optional[int] = None


def parse_occ_symbol(symbol: str) -> Dict[str, Any]:
    """Split an OCC option symbol such as ``SPY240119C00400000``."""

    match = _OCC_PATTERN.match(symbol.strip().upper())
    if match is None:
        raise ValueError(f"Not an OCC option symbol: {symbol}")
    return {
        "underlying": match.group("root"),
        "expiration": datetime.strptime(match.group("date"), "%y%m%d").date(),
        "right": "call" if match.group("right") == "C" else "put",
        "strike": int(match.group("strike")) / 1000,
    }


def build_occ_symbol(underlying: str, expiration: date, right: OptionRight, strike: float) -> str:
    flag = "C" if right == "call" else "P"
    return f"{underlying.upper()}{expiration:%y%m%d}{flag}{int(round(strike * 1000)):08d}"


__all__ = [
    "MarketData",
    "OptionContract",
    "OptionGreeks",
    "OptionRight",
    "UnderlyingSnapshot",
    "build_occ_symbol",
    "parse_occ_symbol",
]
