"""Deterministic, versioned feature maps for scoring and backtests.

Every key a map can hold is enumerated in ``UNDERLYING_FEATURE_KEYS`` and
``CONTRACT_FEATURE_KEYS``. Unknown inputs are encoded with sentinels instead
of ``None`` so numeric consumers never branch on presence:

* ``-1`` for an unknown IV rank, RSI, ATR or contract IV
* ``0`` for unknown trend days, delta, bid/ask, volume and open interest
* ``1000`` for the spread percentage when either side of the quote is missing

Bumping ``FeatureBuilder.VERSION`` is required whenever keys or derivations
change, so live scoring and historical backtests never disagree on schema.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Optional

from leaptrader.models.ml import FeatureMap
from leaptrader.models.option import OptionContract, UnderlyingSnapshot

FEATURE_VERSION_KEY = "_spec"
MISSING_INDICATOR = -1
UNTRADEABLE_SPREAD_PCT = 1000.0

UNDERLYING_FEATURE_KEYS = (
    "u_symbol",
    "u_spot",
    "u_iv_rank",
    "u_rsi14",
    "u_atr14",
    "u_trend_days",
)

CONTRACT_FEATURE_KEYS = (
    "c_symbol",
    "c_right",
    "c_strike",
    "c_dte",
    "c_bid",
    "c_ask",
    "c_mid",
    "c_spread_pct",
    "c_iv",
    "c_delta",
    "c_oi",
    "c_vol",
    "c_extrinsic",
    "c_extrinsic_per_delta",
    "c_moneyness",
)


class FeatureBuilder:
    """Pure functions turning market snapshots into flat feature maps."""

    VERSION = "feat-v1.0"

    def build_underlying_features(self, snapshot: UnderlyingSnapshot) -> FeatureMap:
        return {
            FEATURE_VERSION_KEY: self.VERSION,
            "u_symbol": snapshot.symbol,
            "u_spot": float(snapshot.spot),
            "u_iv_rank": _or_sentinel(snapshot.iv_rank),
            "u_rsi14": _or_sentinel(snapshot.rsi14),
            "u_atr14": _or_sentinel(snapshot.atr14),
            "u_trend_days": int(snapshot.trend_days or 0),
        }

    def build_contract_features(
        self,
        spot: float,
        contract: OptionContract,
        as_of: date | datetime | None = None,
    ) -> FeatureMap:
        bid = contract.bid or 0.0
        ask = contract.ask or 0.0
        mid = (bid + ask) / 2
        if bid and ask:
            spread_pct = (ask - bid) / mid * 100
        else:
            spread_pct = UNTRADEABLE_SPREAD_PCT
        delta = abs(contract.delta or 0.0)
        extrinsic = max(0.0, mid - contract.intrinsic_value(spot))

        return {
            FEATURE_VERSION_KEY: self.VERSION,
            "c_symbol": contract.symbol,
            "c_right": contract.right,
            "c_strike": float(contract.strike),
            "c_dte": contract.days_to_expiration(as_of),
            "c_bid": float(bid),
            "c_ask": float(ask),
            "c_mid": mid,
            "c_spread_pct": spread_pct,
            "c_iv": _or_sentinel(contract.implied_volatility),
            "c_delta": delta,
            "c_oi": int(contract.open_interest or 0),
            "c_vol": int(contract.volume or 0),
            "c_extrinsic": extrinsic,
            "c_extrinsic_per_delta": extrinsic / delta if delta else 0.0,
            "c_moneyness": contract.strike / spot if spot else 0.0,
        }

    def build_combined_features(
        self,
        snapshot: UnderlyingSnapshot,
        contract: OptionContract,
        as_of: date | datetime | None = None,
    ) -> FeatureMap:
        features = self.build_underlying_features(snapshot)
        features.update(self.build_contract_features(snapshot.spot, contract, as_of=as_of))
        return features


def _or_sentinel(value: Optional[float]) -> float:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return float(MISSING_INDICATOR)
    return float(value)


__all__ = [
    "CONTRACT_FEATURE_KEYS",
    "FeatureBuilder",
    "MISSING_INDICATOR",
    "FEATURE_VERSION_KEY",
    "UNDERLYING_FEATURE_KEYS",
    "UNTRADEABLE_SPREAD_PCT",
]
