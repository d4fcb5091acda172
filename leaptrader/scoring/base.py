from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Protocol, Tuple

from leaptrader.models.ml import FeatureValue, StrikeSelectionContext
from leaptrader.models.option import OptionContract


@dataclass(frozen=True)
class ScoreContext:
    """Information passed to each strike scorer."""

    contract: OptionContract
    features: Mapping[str, FeatureValue]
    selection: StrikeSelectionContext
    config: Dict[str, object]

    def get_weight(self, scorer_key: str, default: float) -> float:
        return float(self.config.get("weights", {}).get(scorer_key, default))

    def feature(self, key: str, default: Any = None) -> Any:
        return self.features.get(key, default)

    @property
    def abs_delta(self) -> float:
        return abs(self.contract.delta or 0.0)

    @property
    def dte(self) -> int:
        value = self.features.get("c_dte")
        return int(value) if value is not None else self.contract.days_to_expiration()


class StrikeScorer(Protocol):
    """Protocol each factor scorer must implement; raw scores lie in [0, 1]."""

    key: str
    default_weight: float

    def score(self, context: ScoreContext) -> Tuple[float, List[str], List[str]]:
        """Return raw score, reasoning strings, and tags."""


def range_alignment(value: float, target_range: Tuple[float, float]) -> float:
    """1.0 at the range midpoint, decaying linearly to 0 at half the range width."""

    low, high = target_range
    midpoint = (low + high) / 2
    distance = abs(value - midpoint)
    if distance == 0:
        return 1.0
    half_width = (high - low) * 0.5
    if half_width <= 0:
        return 0.0
    return max(0.0, 1 - distance / half_width)
