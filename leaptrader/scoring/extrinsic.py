from __future__ import annotations

from typing import List, Tuple

from .base import ScoreContext


class ExtrinsicEfficiencyScorer:
    key = "extrinsic"
    default_weight = 0.15

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        extrinsic_per_delta = float(context.feature("c_extrinsic_per_delta", 0.0) or 0.0)
        moneyness = float(context.feature("c_moneyness", 1.0) or 1.0)
        tags: List[str] = ["extrinsic"]

        if extrinsic_per_delta > 0:
            extrinsic_score = max(0.0, 1 - extrinsic_per_delta / 10)
        else:
            extrinsic_score = 0.5

        right = context.contract.right
        if (right == "call" and moneyness > 1.02) or (right == "put" and moneyness < 0.98):
            moneyness_score = 1.0
            tags.append("otm")
        elif abs(moneyness - 1) < 0.05:
            moneyness_score = 0.7
        else:
            moneyness_score = 0.5

        return (extrinsic_score + moneyness_score) / 2, [], tags


__all__ = ["ExtrinsicEfficiencyScorer"]
