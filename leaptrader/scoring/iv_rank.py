from __future__ import annotations

from typing import List, Tuple

from .base import ScoreContext


class IVRankScorer:
    """Long calls want cheap premium (low rank); long puts want rich protection (high rank)."""

    key = "iv_rank"
    default_weight = 0.15

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        iv_rank = context.selection.iv_rank
        tags: List[str] = ["volatility"]
        if iv_rank is None:
            return 0.5, [], tags

        reasons: List[str] = []
        if context.selection.side == "long_call":
            if iv_rank < 30:
                score = 1.0
                reasons.append(f"Low IV rank ({iv_rank:.0f}) keeps call premium cheap")
            elif iv_rank < 50:
                score = 0.8
            elif iv_rank < 70:
                score = 0.6
            else:
                score = 0.4
                tags.append("expensive-premium")
        else:
            if iv_rank > 80:
                score = 1.0
                reasons.append(f"High IV rank ({iv_rank:.0f}) favours long puts")
            elif iv_rank > 60:
                score = 0.8
            elif iv_rank > 40:
                score = 0.6
            else:
                score = 0.4

        return score, reasons, tags


__all__ = ["IVRankScorer"]
