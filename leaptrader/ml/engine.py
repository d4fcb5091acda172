"""Local ML engine combining features, strike scoring and entry/exit models."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Protocol, runtime_checkable

from leaptrader.features import FeatureBuilder
from leaptrader.models.ml import (
    EntryExitRequest,
    EntryExitResponse,
    ScoredStrike,
    StrikeCandidate,
    StrikeScoringRequest,
    StrikeScoringResponse,
)
from leaptrader.models.option import OptionContract, UnderlyingSnapshot
from leaptrader.scoring import NEUTRAL_SCORE, StrikeOptimizer

from .entry_exit import SL_CLAMP, TP_CLAMP, EntryExitModel, EntryExitRecommendation, validate_recommendation
from .model_manager import ModelManager, ModelUsage

logger = logging.getLogger(__name__)


@runtime_checkable
class MLEngine(Protocol):
    """Strike and entry/exit scoring, local or remote."""

    async def score_strike(self, request: StrikeScoringRequest) -> StrikeScoringResponse:
        ...

    async def score_entry_exit(self, request: EntryExitRequest) -> EntryExitResponse:
        ...


class MLEngineCore:
    """In-process :class:`MLEngine` built on the rule-based models.

    Strike scores are returned one per candidate in submission order. If the
    scoring pipeline fails, every candidate gets the neutral score.
    """

    def __init__(
        self,
        model_manager: Optional[ModelManager] = None,
        optimizer: Optional[StrikeOptimizer] = None,
        entry_exit_model: Optional[EntryExitModel] = None,
        feature_builder: Optional[FeatureBuilder] = None,
    ) -> None:
        self._models = model_manager if model_manager is not None else ModelManager().seed_defaults()
        self._optimizer = optimizer or StrikeOptimizer()
        self._entry_exit = entry_exit_model or EntryExitModel()
        self._features = feature_builder or FeatureBuilder()
        logger.info(
            f"ML engine initialized (features={FeatureBuilder.VERSION}, "
            f"active={self._models.get_active_models()})"
        )

    @property
    def feature_builder(self) -> FeatureBuilder:
        return self._features

    @property
    def model_manager(self) -> ModelManager:
        return self._models

    async def score_strike(self, request: StrikeScoringRequest) -> StrikeScoringResponse:
        started = time.perf_counter()
        success = True
        try:
            scored = self._score_candidates(request)
        except Exception:
            logger.exception(
                f"Strike scoring failed for model {request.model} ({len(request.candidates)} candidates)"
            )
            success = False
            scored = [
                ScoredStrike(
                    symbol=candidate.contract.symbol,
                    score=NEUTRAL_SCORE,
                    reasons=["Scoring unavailable - neutral score"],
                )
                for candidate in request.candidates
            ]

        elapsed_ms = (time.perf_counter() - started) * 1000
        average = sum(item.score for item in scored) / len(scored) if scored else None
        self._models.record_usage(
            ModelUsage(
                model_name=request.model,
                request_type="strike_scoring",
                response_time=elapsed_ms,
                success=success,
                output_score=average,
            )
        )
        if average is not None:
            logger.info(f"Strike scoring completed for {request.model}: {len(scored)} scored, avg={average:.3f}")
        return StrikeScoringResponse(
            model=request.model,
            version=self._models.get_model_version(request.model),
            scored=scored,
        )

    async def score_entry_exit(self, request: EntryExitRequest) -> EntryExitResponse:
        started = time.perf_counter()
        base = self._entry_exit.get_recommendation(request.underlying, request.side, request.features)
        adjustment = self._models.get_entry_exit_adjustment(
            request.model, request.underlying, request.side, request.features
        )

        sl_pct_adj = _clamp((base.sl_pct_adj + adjustment.sl_pct_adj) / 2, *SL_CLAMP)
        tp_pct_adj = _clamp((base.tp_pct_adj + adjustment.tp_pct_adj) / 2, *TP_CLAMP)
        confidence = _clamp((base.confidence + adjustment.confidence) / 2, 0.0, 1.0)
        reasons = list(base.reasons) + list(adjustment.reasons)

        response = EntryExitResponse(
            model=request.model,
            version=self._models.get_model_version(request.model),
            sl_pct_adj=sl_pct_adj,
            tp_pct_adj=tp_pct_adj,
            confidence=confidence,
            reasons=reasons,
        )
        blended = EntryExitRecommendation(
            sl_pct_adj=sl_pct_adj, tp_pct_adj=tp_pct_adj, confidence=confidence, reasons=reasons
        )
        if not validate_recommendation(blended):
            logger.warning(
                f"Entry/exit recommendation for {request.underlying} fails consistency checks "
                f"(sl={sl_pct_adj:+.2f}, tp={tp_pct_adj:+.2f}, confidence={confidence:.2f})"
            )

        self._models.record_usage(
            ModelUsage(
                model_name=request.model,
                request_type="entry_exit",
                response_time=(time.perf_counter() - started) * 1000,
                success=True,
                confidence=confidence,
            )
        )
        logger.info(
            f"Entry/exit scoring completed for {request.model}: sl={sl_pct_adj:+.2f} "
            f"tp={tp_pct_adj:+.2f} confidence={confidence:.2f}"
        )
        return response

    def get_model_metrics(self) -> Dict[str, Dict[str, object]]:
        return self._models.get_performance_metrics()

    def _score_candidates(self, request: StrikeScoringRequest) -> List[ScoredStrike]:
        context = request.selection_context
        enriched = [
            StrikeCandidate(
                contract=candidate.contract,
                features=self._features.build_combined_features(
                    UnderlyingSnapshot(
                        symbol=candidate.contract.underlying,
                        spot=request.underlying_spot,
                        iv_rank=context.iv_rank,
                    ),
                    candidate.contract,
                    as_of=request.as_of,
                ),
            )
            for candidate in request.candidates
        ]

        optimizer_scores = self._optimizer.score_candidates(enriched, context)
        ensemble_scores = self._models.apply_ensemble(request.model, optimizer_scores)

        scored: List[ScoredStrike] = []
        for index, candidate in enumerate(request.candidates):
            if index < len(ensemble_scores):
                score = ensemble_scores[index]
            elif index < len(optimizer_scores):
                score = optimizer_scores[index]
            else:
                score = NEUTRAL_SCORE
            score = _clamp(score, 0.0, 1.0)
            scored.append(
                ScoredStrike(
                    symbol=candidate.contract.symbol,
                    score=score,
                    reasons=_strike_reasons(candidate.contract, score),
                )
            )
        return scored


def _strike_reasons(contract: OptionContract, score: float) -> List[str]:
    if score > 0.8:
        reasons = ["High ML confidence"]
    elif score > 0.6:
        reasons = ["Good ML confidence"]
    elif score > 0.4:
        reasons = ["Moderate ML confidence"]
    else:
        reasons = ["Low ML confidence"]

    if contract.delta is not None:
        reasons.append(f"Delta: {abs(contract.delta):.2f}")
    if contract.open_interest is not None and contract.open_interest > 1000:
        reasons.append("High open interest")
    return reasons


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


__all__ = ["MLEngine", "MLEngineCore"]
