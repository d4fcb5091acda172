from __future__ import annotations

from typing import List, Tuple

from .base import ScoreContext


class LiquidityScorer:
    """Volume (up to 0.4) + open interest (up to 0.3) + spread tightness (up to 0.3)."""

    key = "liquidity"
    default_weight = 0.20

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        contract = context.contract
        volume = contract.volume or 0
        open_interest = contract.open_interest or 0
        reasons: List[str] = []
        tags: List[str] = ["liquidity"]

        volume_score = min(0.4, volume / 1000)
        oi_score = min(0.3, open_interest / 2000)

        spread_pct = contract.spread_pct
        if spread_pct is None:
            spread_score = 0.3
        else:
            spread_score = max(0.0, 0.3 - spread_pct / 50)
            if spread_pct > 10:
                reasons.append(f"Wide spread ({spread_pct:.1f}%) may impact execution")
                tags.append("liquidity-warning")

        if open_interest > 1000:
            reasons.append(f"High open interest ({open_interest})")
        elif open_interest < 500:
            tags.append("thin-market")

        return volume_score + oi_score + spread_score, reasons, tags


__all__ = ["LiquidityScorer"]
