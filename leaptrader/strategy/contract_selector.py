"""LEAPS contract selection: filter, screen, score and rank an option chain."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Sequence

from leaptrader.features import FeatureBuilder
from leaptrader.models.leaps import (
    LEAPSSelection,
    LEAPSSelectionCriteria,
    LeapsPick,
    PickMetadata,
    RiskReward,
    SelectionMetadata,
)
from leaptrader.models.ml import FeatureMap
from leaptrader.models.option import OptionContract

logger = logging.getLogger(__name__)

LEAPS_MIN_DAYS = 365
SELECTOR_SOURCE = "contract-selector-v1.0"

CONTRACT_WEIGHTS: Dict[str, float] = {
    "delta": 0.25,
    "liquidity": 0.20,
    "time_value": 0.20,
    "spread": 0.15,
    "moneyness": 0.10,
    "iv": 0.10,
}


@dataclass
class ContractSelectorConfig:
    default_max_selections: int = 3
    default_min_score: float = 0.6
    enabled_strategies: List[str] = field(
        default_factory=lambda: ["long_call", "long_put", "covered_call", "protective_put"]
    )


@dataclass(frozen=True)
class ScoredContract:
    contract: OptionContract
    score: float
    features: FeatureMap
    insights: List[str]


class ContractSelector:
    """Pick long-dated contracts with a fixed, non-ML weighted score.

    Only contracts with more than 365 days to expiration are considered.
    Survivors of ``LEAPSSelectionCriteria`` screening are scored on delta
    fit, liquidity, time value, spread, moneyness and IV, and the best
    ``max_selections`` at or above ``min_score`` become picks.
    """

    def __init__(
        self,
        config: Optional[ContractSelectorConfig] = None,
        feature_builder: Optional[FeatureBuilder] = None,
    ) -> None:
        self.config = config or ContractSelectorConfig()
        self._features = feature_builder or FeatureBuilder()
        logger.info(f"LEAPS ContractSelector initialized: {self.config}")

    def select_contracts(
        self,
        symbol: str,
        options: Sequence[OptionContract],
        criteria: LEAPSSelectionCriteria,
        spot: float,
        as_of: Optional[date | datetime] = None,
    ) -> LEAPSSelection:
        as_of = as_of or datetime.now(timezone.utc)
        logger.info(f"Selecting LEAPS for {symbol} from {len(options)} contracts")

        if criteria.strategy not in self.config.enabled_strategies:
            raise ValueError(f"Strategy {criteria.strategy} is not enabled for contract selection")

        leaps = self.filter_for_leaps(options, as_of)
        if not leaps:
            logger.info(f"No LEAPS contracts available for {symbol}")
            return LEAPSSelection(
                symbol=symbol,
                selections=[],
                metadata=SelectionMetadata(
                    total_analyzed=len(options),
                    leaps_available=0,
                    selection_reason="No LEAPS contracts available",
                ),
            )

        screened = self.apply_screening_criteria(leaps, criteria, as_of)
        scored = self.score_contracts(screened, criteria, spot, as_of)
        selections = self._select_top(scored, criteria, as_of)

        logger.info(
            f"LEAPS selection for {symbol}: analyzed={len(options)} leaps={len(leaps)} "
            f"screened={len(screened)} selected={len(selections)}"
        )
        return LEAPSSelection(
            symbol=symbol,
            selections=selections,
            metadata=SelectionMetadata(
                total_analyzed=len(options),
                leaps_available=len(leaps),
                screened_count=len(screened),
                selection_reason=f"Selected {len(selections)} optimal LEAPS contracts",
            ),
        )

    async def select_from_router(
        self,
        symbol: str,
        router,
        criteria: LEAPSSelectionCriteria,
        as_of: Optional[date | datetime] = None,
    ) -> LEAPSSelection:
        """Fetch the chain and spot through an ``OptionsDataRouter`` and select."""

        underlying = await router.get_underlying_data(symbol)
        chain = await router.get_option_chain(symbol)
        return self.select_contracts(symbol, chain, criteria, underlying.price, as_of=as_of)

    @staticmethod
    def filter_for_leaps(options: Sequence[OptionContract], as_of: date | datetime) -> List[OptionContract]:
        return [option for option in options if option.is_leaps(as_of, min_days=LEAPS_MIN_DAYS)]

    @staticmethod
    def apply_screening_criteria(
        options: Sequence[OptionContract],
        criteria: LEAPSSelectionCriteria,
        as_of: date | datetime,
    ) -> List[OptionContract]:
        screened: List[OptionContract] = []
        for option in options:
            if criteria.delta_range:
                delta = abs(option.delta or 0.0)
                if not criteria.delta_range[0] <= delta <= criteria.delta_range[1]:
                    continue
            if criteria.dte_range:
                dte = option.days_to_expiration(as_of)
                if not criteria.dte_range[0] <= dte <= criteria.dte_range[1]:
                    continue
            # Contracts without an IV quote are not penalised by the IV range.
            if criteria.iv_range and option.implied_volatility:
                if not criteria.iv_range[0] <= option.implied_volatility <= criteria.iv_range[1]:
                    continue
            if criteria.min_volume and (option.volume or 0) < criteria.min_volume:
                continue
            if criteria.min_open_interest and (option.open_interest or 0) < criteria.min_open_interest:
                continue
            if criteria.option_types and option.right not in criteria.option_types:
                continue
            screened.append(option)
        return screened

    def score_contracts(
        self,
        options: Sequence[OptionContract],
        criteria: LEAPSSelectionCriteria,
        spot: float,
        as_of: date | datetime,
    ) -> List[ScoredContract]:
        """Score each contract and return them best first (stable for ties)."""

        scored = [
            ScoredContract(
                contract=contract,
                score=self.calculate_contract_score(contract, spot, criteria, as_of),
                features=self._features.build_contract_features(spot, contract, as_of=as_of),
                insights=self.generate_contract_insights(contract, spot, as_of),
            )
            for contract in options
        ]
        return sorted(scored, key=lambda item: item.score, reverse=True)

    @staticmethod
    def calculate_contract_score(
        contract: OptionContract,
        spot: float,
        criteria: LEAPSSelectionCriteria,
        as_of: date | datetime,
    ) -> float:
        score = 0.0

        if criteria.delta_range and contract.delta:
            target = sum(criteria.delta_range) / 2
            distance = abs(abs(contract.delta) - target)
            score += max(0.0, 1 - distance / 0.3) * CONTRACT_WEIGHTS["delta"]

        volume = contract.volume or 0
        open_interest = contract.open_interest or 0
        score += min(1.0, (volume / 1000 + open_interest / 5000) / 2) * CONTRACT_WEIGHTS["liquidity"]

        dte = contract.days_to_expiration(as_of)
        score += min(1.0, dte / 730) * CONTRACT_WEIGHTS["time_value"]

        if contract.bid and contract.ask and contract.bid > 0:
            mid = (contract.bid + contract.ask) / 2
            spread_fraction = (contract.ask - contract.bid) / mid
            score += max(0.0, 1 - spread_fraction / 0.1) * CONTRACT_WEIGHTS["spread"]

        score += _moneyness_score(contract, spot) * CONTRACT_WEIGHTS["moneyness"]

        iv = contract.implied_volatility
        if iv:
            if 0.20 <= iv <= 0.40:
                iv_score = 1.0
            elif 0.15 <= iv <= 0.50:
                iv_score = 0.7
            else:
                iv_score = 0.3
            score += iv_score * CONTRACT_WEIGHTS["iv"]

        return min(1.0, max(0.0, score))

    @staticmethod
    def generate_contract_insights(contract: OptionContract, spot: float, as_of: date | datetime) -> List[str]:
        insights = [f"{contract.days_to_expiration(as_of)} days to expiration - long-term LEAPS position"]

        if contract.delta:
            delta = abs(contract.delta)
            insights.append(f"Delta {delta:.3f} provides {delta * 100:.1f}% exposure to underlying moves")

        moneyness = contract.strike / spot if spot else 0.0
        if contract.right == "call":
            if moneyness > 1.1:
                insights.append("Significantly out-of-the-money call - high leverage potential")
            elif moneyness > 1.0:
                insights.append("Out-of-the-money call - balanced risk/reward")
            else:
                insights.append("In-the-money call - lower leverage, higher probability")

        if contract.volume and contract.volume > 100:
            insights.append(f"Good liquidity with {contract.volume} daily volume")
        else:
            insights.append("Limited liquidity - consider larger spreads")

        iv = contract.implied_volatility
        if iv and iv > 0.3:
            insights.append("High implied volatility - expensive premium but good for protection")
        elif iv and iv < 0.2:
            insights.append("Low implied volatility - attractive premium levels")
        return insights

    def _select_top(
        self,
        scored: Sequence[ScoredContract],
        criteria: LEAPSSelectionCriteria,
        as_of: date | datetime,
    ) -> List[LeapsPick]:
        max_selections = criteria.max_selections or self.config.default_max_selections
        min_score = criteria.min_score if criteria.min_score is not None else self.config.default_min_score
        qualified = [item for item in scored if item.score >= min_score][:max_selections]

        selected_at = datetime.now(timezone.utc)
        return [
            LeapsPick(
                id=f"leaps-{item.contract.symbol}-{index + 1}",
                underlying=item.contract.underlying,
                contract=item.contract,
                strategy=criteria.strategy,
                confidence=item.score,
                time_horizon=item.contract.days_to_expiration(as_of),
                risk_reward=calculate_risk_reward(item.contract),
                rationale=item.insights,
                metadata=PickMetadata(
                    selected_at=selected_at,
                    expires_at=datetime.combine(item.contract.expiration, time.min, tzinfo=timezone.utc),
                    source=SELECTOR_SOURCE,
                    features=dict(item.features),
                ),
            )
            for index, item in enumerate(qualified)
        ]


def calculate_risk_reward(contract: OptionContract) -> RiskReward:
    """Premium at risk against an assumed 20% move in the strike."""

    risk = contract.ask or contract.last or 0.0
    reward = contract.strike * 0.2
    return RiskReward(risk=risk, reward=reward, ratio=reward / max(risk, 0.01))


def _moneyness_score(contract: OptionContract, spot: float) -> float:
    if not spot:
        return 0.0
    moneyness = contract.strike / spot
    if contract.right == "call":
        if 1.05 <= moneyness <= 1.15:
            return 1.0
        if 1.0 <= moneyness <= 1.25:
            return 0.7
        return 0.3
    if 0.85 <= moneyness <= 0.95:
        return 1.0
    if 0.75 <= moneyness <= 1.0:
        return 0.7
    return 0.3


__all__ = [
    "CONTRACT_WEIGHTS",
    "ContractSelector",
    "ContractSelectorConfig",
    "LEAPS_MIN_DAYS",
    "ScoredContract",
    "calculate_risk_reward",
]
