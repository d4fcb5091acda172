"""Strike scoring, exit adjustments and model registry."""

from .engine import MLEngine, MLEngineCore
from .entry_exit import (
    EntryExitModel,
    EntryExitRecommendation,
    MarketRegime,
    neutral_recommendation,
    validate_recommendation,
)
from .http_client import MLEngineHttpClient
from .model_manager import (
    EnsembleConfig,
    EntryExitAdjustment,
    ModelManager,
    ModelMeta,
    ModelPerformanceWindow,
    ModelUsage,
    PerformanceWindowMetrics,
)
from .retry import RetryableMLError, RetryPolicy

__all__ = [
    "EnsembleConfig",
    "EntryExitAdjustment",
    "EntryExitModel",
    "EntryExitRecommendation",
    "MLEngine",
    "MLEngineCore",
    "MLEngineHttpClient",
    "MarketRegime",
    "ModelManager",
    "ModelMeta",
    "ModelPerformanceWindow",
    "ModelUsage",
    "PerformanceWindowMetrics",
    "RetryPolicy",
    "RetryableMLError",
    "neutral_recommendation",
    "validate_recommendation",
]
