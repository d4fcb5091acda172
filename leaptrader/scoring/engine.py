from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Type

from leaptrader.models.ml import FeatureValue, StrikeCandidate, StrikeSelectionContext
from leaptrader.models.scoring import ScoreBreakdown, ScoredCandidate, StrikeScore

from .alignment import DeltaAlignmentScorer, DteAlignmentScorer
from .base import ScoreContext, StrikeScorer
from .config import merge_config
from .extrinsic import ExtrinsicEfficiencyScorer
from .iv_rank import IVRankScorer
from .liquidity import LiquidityScorer

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5

SCORER_REGISTRY: Dict[str, Type] = {
    DeltaAlignmentScorer.key: DeltaAlignmentScorer,
    DteAlignmentScorer.key: DteAlignmentScorer,
    LiquidityScorer.key: LiquidityScorer,
    IVRankScorer.key: IVRankScorer,
    ExtrinsicEfficiencyScorer.key: ExtrinsicEfficiencyScorer,
}


class StrikeOptimizer:
    """Weighted five-factor scoring of strike candidates.

    Scoring is advisory: if anything goes wrong while scoring a batch, every
    candidate in it receives the neutral score instead of an exception.
    """

    def __init__(
        self,
        config: Dict[str, object] | None = None,
        scorers: Optional[Sequence[StrikeScorer]] = None,
    ) -> None:
        self.config = merge_config(config)
        if scorers is not None:
            self._scorers = list(scorers)
        else:
            enabled = self.config.get("enabled", list(SCORER_REGISTRY))
            self._scorers = [SCORER_REGISTRY[key]() for key in enabled if key in SCORER_REGISTRY]

    @property
    def enabled_scorers(self) -> List[str]:
        return [scorer.key for scorer in self._scorers]

    def score_candidates(
        self,
        candidates: Sequence[StrikeCandidate],
        context: StrikeSelectionContext,
    ) -> List[float]:
        """Return one score in [0, 1] per candidate, in input order."""

        try:
            scores = [self.score_with_breakdown(candidate, context).total_score for candidate in candidates]
        except Exception:
            logger.exception(f"Strike scoring failed for {len(candidates)} candidate(s); returning neutral scores")
            return [NEUTRAL_SCORE] * len(candidates)

        if scores:
            logger.debug(f"Scored {len(scores)} strike candidates (avg={sum(scores) / len(scores):.3f})")
        return scores

    def score_with_breakdown(self, candidate: StrikeCandidate, context: StrikeSelectionContext) -> StrikeScore:
        score_context = ScoreContext(
            contract=candidate.contract,
            features=dict(candidate.features or {}),
            selection=context,
            config=self.config,
        )

        breakdowns: List[ScoreBreakdown] = []
        total = 0.0
        all_reasons: List[str] = []
        all_tags: List[str] = []
        for scorer in self._scorers:
            raw_score, reasons, tags = scorer.score(score_context)
            weight = score_context.get_weight(scorer.key, getattr(scorer, "default_weight", 0.0))
            weighted_score = raw_score * weight
            total += weighted_score
            breakdowns.append(
                ScoreBreakdown(
                    scorer=scorer.key,
                    weight=weight,
                    raw_score=raw_score,
                    weighted_score=weighted_score,
                    reasons=reasons,
                    tags=tags,
                )
            )
            all_reasons.extend(reasons)
            all_tags.extend(tags)

        bounds = self.config.get("score_bounds", {})
        total = max(float(bounds.get("min", 0.0)), min(float(bounds.get("max", 1.0)), total))
        return StrikeScore(
            total_score=total,
            breakdowns=breakdowns,
            reasons=all_reasons,
            tags=sorted(set(all_tags)),
        )

    def rank(self, candidates: Sequence[StrikeCandidate], context: StrikeSelectionContext) -> List[ScoredCandidate]:
        """Score and sort candidates best first."""

        scores = self.score_candidates(candidates, context)
        ranked = [
            ScoredCandidate(
                contract=candidate.contract,
                features=dict(candidate.features or {}),
                score=score,
                reasons=self.get_optimization_insights(candidate, context),
            )
            for candidate, score in zip(candidates, scores)
        ]
        return sorted(ranked, key=lambda item: item.score, reverse=True)

    def get_optimization_insights(self, candidate: StrikeCandidate, context: StrikeSelectionContext) -> List[str]:
        contract = candidate.contract
        features: Mapping[str, FeatureValue] = candidate.features or {}
        insights: List[str] = []

        delta = abs(contract.delta or 0.0)
        min_delta, max_delta = context.delta_range
        if delta < min_delta:
            insights.append(f"Delta {delta:.2f} below target range {min_delta}-{max_delta}")
        elif delta > max_delta:
            insights.append(f"Delta {delta:.2f} above target range {min_delta}-{max_delta}")

        dte_value = features.get("c_dte")
        dte = int(dte_value) if dte_value is not None else contract.days_to_expiration()
        min_dte, max_dte = context.dte_range
        if dte < min_dte:
            insights.append(f"DTE {dte} below target range {min_dte}-{max_dte}")
        elif dte > max_dte:
            insights.append(f"DTE {dte} above target range {min_dte}-{max_dte}")

        if (contract.volume or 0) < 100:
            insights.append("Low volume - consider higher volume alternatives")
        if (contract.open_interest or 0) < 500:
            insights.append("Low open interest - limited liquidity")
        return insights


__all__ = ["NEUTRAL_SCORE", "SCORER_REGISTRY", "StrikeOptimizer"]
