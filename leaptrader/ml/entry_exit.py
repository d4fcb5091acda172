"""Regime-based stop-loss / take-profit adjustments.

Adjustments are fractions applied to the strategy's base exit levels: a
``sl_pct_adj`` of ``-0.1`` tightens the stop by 10%, a ``tp_pct_adj`` of
``0.2`` extends the target by 20%.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from leaptrader.models.ml import FeatureValue, Side

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.6
NEUTRAL_CONFIDENCE = 0.5

SL_CLAMP = (-0.4, 0.4)
TP_CLAMP = (-0.3, 0.6)
_BASE_SL_CLAMP = (-0.3, 0.3)
_BASE_TP_CLAMP = (-0.2, 0.5)


class EntryExitRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    sl_pct_adj: float
    tp_pct_adj: float
    confidence: float
    reasons: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class MarketRegime:
    volatility: Literal["low", "medium", "high"]
    trend: Literal["bullish", "bearish", "sideways"]
    momentum: Literal["strong", "weak", "reversing"]


def neutral_recommendation(reason: str) -> EntryExitRecommendation:
    return EntryExitRecommendation(sl_pct_adj=0.0, tp_pct_adj=0.0, confidence=NEUTRAL_CONFIDENCE, reasons=[reason])


def validate_recommendation(recommendation: EntryExitRecommendation) -> bool:
    """Check bounds and that large adjustments carry enough confidence.

    Callers should reject recommendations for which this returns ``False``.
    """

    sl, tp, confidence = recommendation.sl_pct_adj, recommendation.tp_pct_adj, recommendation.confidence
    if not -0.5 <= sl <= 0.5:
        return False
    if not -0.5 <= tp <= 1.0:
        return False
    if not 0.0 <= confidence <= 1.0:
        return False
    if abs(sl) > 0.3 and confidence < 0.7:
        return False
    if abs(tp) > 0.3 and confidence < 0.6:
        return False
    return True


class EntryExitModel:
    """Classify the market regime from underlying features and derive exit adjustments."""

    def get_recommendation(
        self,
        underlying: str,
        side: Side,
        features: Mapping[str, FeatureValue],
    ) -> EntryExitRecommendation:
        try:
            inputs = _RegimeInputs.from_features(features)
            regime = self.analyze_market_regime(features)
            base = self._base_recommendation(side, regime)
            recommendation = self._apply_feature_adjustments(base, inputs)
        except Exception:
            logger.exception(f"Entry/exit recommendation failed for {underlying} ({side})")
            return neutral_recommendation("Error generating recommendation - using defaults")

        logger.debug(
            f"Entry/exit for {underlying} {side}: regime={regime}, sl={recommendation.sl_pct_adj:+.2f}, "
            f"tp={recommendation.tp_pct_adj:+.2f}, confidence={recommendation.confidence:.2f}"
        )
        return recommendation

    def analyze_market_regime(self, features: Mapping[str, FeatureValue]) -> MarketRegime:
        inputs = _RegimeInputs.from_features(features)

        if inputs.iv_rank < 30:
            volatility = "low"
        elif inputs.iv_rank > 70:
            volatility = "high"
        else:
            volatility = "medium"

        if inputs.trend_days > 5:
            trend = "bullish"
        elif inputs.trend_days < -5:
            trend = "bearish"
        else:
            trend = "sideways"

        if inputs.rsi14 > 70 or inputs.rsi14 < 30:
            momentum = "reversing"
        elif abs(inputs.trend_days) > 3:
            momentum = "strong"
        else:
            momentum = "weak"

        return MarketRegime(volatility=volatility, trend=trend, momentum=momentum)

    def _base_recommendation(self, side: Side, regime: MarketRegime) -> EntryExitRecommendation:
        sl = 0.0
        tp = 0.0
        confidence = BASE_CONFIDENCE
        reasons: List[str] = []
        label = "calls" if side == "long_call" else "puts"
        favourable = "bullish" if side == "long_call" else "bearish"
        adverse = "bearish" if side == "long_call" else "bullish"

        if regime.trend == adverse:
            sl = -0.1
            reasons.append(f"{adverse.capitalize()} trend - tighter SL for {label}")
        elif regime.trend == favourable:
            sl = 0.1
            reasons.append(f"{favourable.capitalize()} trend - wider SL for {label}")

        if regime.momentum == "strong":
            tp = 0.2
            reasons.append(f"Strong momentum - extended TP for {label}")

        if regime.volatility == "high":
            sl += 0.05
            tp += 0.1
            confidence += 0.1
            reasons.append("High volatility - wider SL, extended TP")
        elif regime.volatility == "low":
            sl -= 0.05
            tp -= 0.05
            confidence += 0.05
            reasons.append("Low volatility - tighter SL/TP")

        return EntryExitRecommendation(
            sl_pct_adj=_clamp(sl, *_BASE_SL_CLAMP),
            tp_pct_adj=_clamp(tp, *_BASE_TP_CLAMP),
            confidence=min(1.0, confidence),
            reasons=reasons,
        )

    def _apply_feature_adjustments(
        self, base: EntryExitRecommendation, inputs: "_RegimeInputs"
    ) -> EntryExitRecommendation:
        sl, tp, confidence = base.sl_pct_adj, base.tp_pct_adj, base.confidence
        reasons = list(base.reasons)

        if inputs.iv_rank > 80:
            sl -= 0.05
            tp += 0.1
            confidence += 0.1
            reasons.append("Very high IV rank - tighter SL, extended TP")
        elif inputs.iv_rank < 20:
            sl += 0.05
            tp -= 0.05
            confidence += 0.05
            reasons.append("Very low IV rank - wider SL, tighter TP")

        if inputs.rsi14 > 80 or inputs.rsi14 < 20:
            sl += 0.05
            confidence += 0.05
            reasons.append("Extreme RSI - wider SL for potential reversal")

        if abs(inputs.trend_days) > 7:
            tp += 0.1
            confidence += 0.1
            reasons.append("Very strong trend - extended TP")

        if inputs.atr14 > 0 and inputs.spot > 0 and inputs.atr14 / inputs.spot > 0.05:
            sl += 0.03
            reasons.append("High ATR - wider SL for volatility")

        return EntryExitRecommendation(
            sl_pct_adj=_clamp(sl, *SL_CLAMP),
            tp_pct_adj=_clamp(tp, *TP_CLAMP),
            confidence=_clamp(confidence, 0.0, 1.0),
            reasons=reasons,
        )


@dataclass(frozen=True)
class _RegimeInputs:
    """Underlying features with negative sentinels resolved to neutral values."""

    iv_rank: float
    rsi14: float
    trend_days: float
    atr14: float
    spot: float

    @classmethod
    def from_features(cls, features: Mapping[str, FeatureValue]) -> "_RegimeInputs":
        return cls(
            iv_rank=_known(features.get("u_iv_rank"), 50.0),
            rsi14=_known(features.get("u_rsi14"), 50.0),
            trend_days=float(features.get("u_trend_days") or 0),
            atr14=_known(features.get("u_atr14"), 0.0),
            spot=_known(features.get("u_spot"), 0.0),
        )


def _known(value: object, default: float) -> float:
    if value is None or isinstance(value, (str, bool)):
        return default
    number = float(value)
    return default if number < 0 else number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


__all__ = [
    "EntryExitModel",
    "EntryExitRecommendation",
    "MarketRegime",
    "neutral_recommendation",
    "validate_recommendation",
]
