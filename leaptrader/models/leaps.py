from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .option import OptionContract, OptionRight

LeapsStrategy = Literal["long_call", "long_put", "covered_call", "protective_put"]


class RiskReward(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk: float
    reward: float
    ratio: float


class PickMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_at: datetime
    expires_at: datetime
    source: str
    features: Dict[str, Any] = Field(default_factory=dict)


class LeapsPick(BaseModel):
    """A selected LEAPS contract; read-only once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    underlying: str
    contract: OptionContract
    strategy: LeapsStrategy
    confidence: float = Field(ge=0.0, le=1.0)
    target_price: Optional[float] = None
    stop_price: Optional[float] = None
    time_horizon: int
    risk_reward: RiskReward
    rationale: List[str] = Field(default_factory=list)
    metadata: PickMetadata

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        current = now or datetime.now(timezone.utc)
        expires_at = self.metadata.expires_at
        if expires_at.tzinfo is None and current.tzinfo is not None:
            expires_at = expires_at.replace(tzinfo=current.tzinfo)
        return current > expires_at


class SelectionMetadata(BaseModel):
    total_analyzed: int
    leaps_available: int
    screened_count: Optional[int] = None
    selection_reason: str


class LEAPSSelection(BaseModel):
    symbol: str
    selections: List[LeapsPick] = Field(default_factory=list)
    metadata: SelectionMetadata


class LEAPSSelectionCriteria(BaseModel):
    """Screening inputs for :class:`~leaptrader.strategy.ContractSelector`.

    Ranges are inclusive ``(low, high)`` pairs; ``None`` disables the check.
    """

    strategy: LeapsStrategy = "long_call"
    delta_range: Optional[Tuple[float, float]] = None
    dte_range: Optional[Tuple[int, int]] = None
    iv_range: Optional[Tuple[float, float]] = None
    min_volume: Optional[int] = None
    min_open_interest: Optional[int] = None
    option_types: Optional[List[OptionRight]] = None
    max_selections: Optional[int] = None
    min_score: Optional[float] = None

    @field_validator("delta_range", "dte_range", "iv_range")
    @classmethod
    def ordered_range(cls, value):
        if value is not None and value[0] > value[1]:
            raise ValueError(f"Range lower bound exceeds upper bound: {value}")
        return value


__all__ = [
    "LEAPSSelection",
    "LEAPSSelectionCriteria",
    "LeapsPick",
    "LeapsStrategy",
    "PickMetadata",
    "RiskReward",
    "SelectionMetadata",
]
