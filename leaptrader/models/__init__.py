from .leaps import (
    LEAPSSelection,
    LEAPSSelectionCriteria,
    LeapsPick,
    PickMetadata,
    RiskReward,
    SelectionMetadata,
)
from .ml import (
    BacktestMetrics,
    BacktestRequest,
    BacktestResponse,
    EntryExitRequest,
    EntryExitResponse,
    FeatureMap,
    ScoredStrike,
    StrikeCandidate,
    StrikeScoringRequest,
    StrikeScoringResponse,
    StrikeSelectionContext,
    SymbolPnL,
)
from .option import MarketData, OptionContract, OptionGreeks, UnderlyingSnapshot, build_occ_symbol, parse_occ_symbol
from .scoring import ScoreBreakdown, ScoredCandidate, StrikeScore
from .serialization import deserialize_wire, serialize_selection, serialize_wire

__all__ = [
    "BacktestMetrics",
    "BacktestRequest",
    "BacktestResponse",
    "EntryExitRequest",
    "EntryExitResponse",
    "FeatureMap",
    "LEAPSSelection",
    "LEAPSSelectionCriteria",
    "LeapsPick",
    "MarketData",
    "OptionContract",
    "OptionGreeks",
    "PickMetadata",
    "RiskReward",
    "ScoreBreakdown",
    "ScoredCandidate",
    "ScoredStrike",
    "SelectionMetadata",
    "StrikeCandidate",
    "StrikeScoringRequest",
    "StrikeScoringResponse",
    "StrikeScore",
    "StrikeSelectionContext",
    "SymbolPnL",
    "UnderlyingSnapshot",
    "build_occ_symbol",
    "deserialize_wire",
    "parse_occ_symbol",
    "serialize_selection",
    "serialize_wire",
]
