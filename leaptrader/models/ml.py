"""Request/response models exchanged with ML scoring engines.

Attribute names are snake_case; the JSON form is camelCase so payloads
match the remote ML service contract.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .option import OptionContract

FeatureValue = Union[bool, int, float, str]
FeatureMap = Dict[str, FeatureValue]
Side = Literal["long_call", "long_put"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StrikeSelectionContext(WireModel):
    side: Side
    delta_range: Tuple[float, float]
    dte_range: Tuple[int, int]
    iv_rank: Optional[float] = None


class StrikeCandidate(WireModel):
    contract: OptionContract
    features: Optional[FeatureMap] = None


class StrikeScoringRequest(WireModel):
    model: str
    as_of: datetime
    underlying_spot: float
    selection_context: StrikeSelectionContext
    candidates: List[StrikeCandidate] = Field(default_factory=list)


class ScoredStrike(WireModel):
    symbol: str
    score: float
    reasons: List[str] = Field(default_factory=list)


class StrikeScoringResponse(WireModel):
    model: str
    version: str
    scored: List[ScoredStrike] = Field(default_factory=list)


class EntryExitRequest(WireModel):
    model: str
    as_of: datetime
    underlying: str
    side: Side
    features: FeatureMap = Field(default_factory=dict)


class EntryExitResponse(WireModel):
    model: str
    version: str
    sl_pct_adj: float
    tp_pct_adj: float
    confidence: float
    reasons: List[str] = Field(default_factory=list)


class BacktestRequest(WireModel):
    model: str
    symbols: List[str]
    start: date
    end: date
    strategy: Literal["long_call_leaps", "long_put_leaps"]
    params: Dict[str, Any] = Field(default_factory=dict)


class BacktestMetrics(WireModel):
    trades: int
    win_rate: float
    avg_rr: float = Field(alias="avgRR")
    pnl: float
    max_dd: float = Field(alias="maxDD")
    sharpe: Optional[float] = None
    sortino: Optional[float] = None


class SymbolPnL(WireModel):
    symbol: str
    pnl: float
    trades: int


class BacktestResponse(WireModel):
    model: str
    metrics: BacktestMetrics
    by_symbol: List[SymbolPnL] = Field(default_factory=list)


__all__ = [
    "BacktestMetrics",
    "BacktestRequest",
    "BacktestResponse",
    "EntryExitRequest",
    "EntryExitResponse",
    "FeatureMap",
    "FeatureValue",
    "ScoredStrike",
    "Side",
    "StrikeCandidate",
    "StrikeScoringRequest",
    "StrikeScoringResponse",
    "StrikeSelectionContext",
    "SymbolPnL",
    "WireModel",
]
