from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator

from .ml import FeatureMap
from .option import OptionContract


class ScoreBreakdown(BaseModel):
    scorer: str
    weight: float
    raw_score: float
    weighted_score: float
    reasons: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class StrikeScore(BaseModel):
    total_score: float
    breakdowns: List[ScoreBreakdown] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ScoredCandidate(BaseModel):
    """A contract paired with its features and a score clamped to [0, 1]."""

    contract: OptionContract
    features: FeatureMap = Field(default_factory=dict)
    score: float
    reasons: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return max(0.0, min(1.0, float(value)))


__all__ = ["ScoreBreakdown", "ScoredCandidate", "StrikeScore"]
