"""Convenient exports for strike scoring components."""

from .alignment import DeltaAlignmentScorer, DteAlignmentScorer
from .base import ScoreContext, StrikeScorer, range_alignment
from .engine import NEUTRAL_SCORE, SCORER_REGISTRY, StrikeOptimizer
from .extrinsic import ExtrinsicEfficiencyScorer
from .iv_rank import IVRankScorer
from .liquidity import LiquidityScorer

__all__ = [
    "DeltaAlignmentScorer",
    "DteAlignmentScorer",
    "ExtrinsicEfficiencyScorer",
    "IVRankScorer",
    "LiquidityScorer",
    "NEUTRAL_SCORE",
    "SCORER_REGISTRY",
    "ScoreContext",
    "StrikeOptimizer",
    "StrikeScorer",
    "range_alignment",
]
