from .contract_selector import (
    CONTRACT_WEIGHTS,
    LEAPS_MIN_DAYS,
    ContractSelector,
    ContractSelectorConfig,
    ScoredContract,
    calculate_risk_reward,
)

__all__ = [
    "CONTRACT_WEIGHTS",
    "ContractSelector",
    "ContractSelectorConfig",
    "LEAPS_MIN_DAYS",
    "ScoredContract",
    "calculate_risk_reward",
]
