from __future__ import annotations

from typing import List, Tuple

from .base import ScoreContext, range_alignment


class DeltaAlignmentScorer:
    key = "delta_alignment"
    default_weight = 0.30

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        delta = context.abs_delta
        if delta == 0:
            return 0.0, ["Delta not quoted"], ["missing-greeks"]

        low, high = context.selection.delta_range
        score = range_alignment(delta, (low, high))
        reasons: List[str] = []
        tags: List[str] = ["delta"]
        if low <= delta <= high:
            reasons.append(f"Delta {delta:.2f} inside target {low:.2f}-{high:.2f}")
        else:
            tags.append("delta-outside-range")
        return score, reasons, tags


class DteAlignmentScorer:
    key = "dte_alignment"
    default_weight = 0.20

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        dte = context.dte
        low, high = context.selection.dte_range
        score = range_alignment(float(dte), (float(low), float(high)))
        tags: List[str] = ["dte"]
        if not low <= dte <= high:
            tags.append("dte-outside-range")
        return score, [], tags


__all__ = ["DeltaAlignmentScorer", "DteAlignmentScorer"]
