"""In-memory model registry: metadata, ensembles, usage telemetry and health.

The registry is an explicitly constructed object. A fresh ``ModelManager`` is
empty; call :meth:`ModelManager.seed_defaults` to install the production
models. Models are never deleted: deprecation only flips their status, so
usage and performance history stay queryable for comparisons.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leaptrader.models.ml import FeatureValue

logger = logging.getLogger(__name__)

ModelType = Literal["strike_selection", "entry_exit", "strategy_improvement"]
ModelStatus = Literal["active", "deprecated", "testing"]
ModelHealth = Literal["healthy", "degraded", "unhealthy"]
RequestType = Literal["strike_scoring", "entry_exit", "backtest"]
PerformancePeriod = Literal["1h", "1d", "1w", "1m"]

MAX_USAGE_RECORDS = 1000
MAX_PERFORMANCE_RECORDS = 100
ENSEMBLE_SUFFIX = "-ensemble"
DEFAULT_HEALTH_INTERVAL = 300.0

HealthProbe = Callable[["ModelMeta"], Union[ModelHealth, Awaitable[ModelHealth]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ModelPerformanceSnapshot(BaseModel):
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1_score: Optional[float] = None
    sharpe_ratio: Optional[float] = None
    max_drawdown: Optional[float] = None
    total_trades: Optional[int] = None
    win_rate: Optional[float] = None
    avg_return: Optional[float] = None


class ModelDeployment(BaseModel):
    environment: Literal["development", "staging", "production"] = "development"
    region: Optional[str] = None
    instance: Optional[str] = None
    health: ModelHealth = "healthy"
    last_health_check: datetime = Field(default_factory=_utcnow)


class ModelMeta(BaseModel):
    """Registry record for a single model. Mutated only through ``ModelManager``."""

    name: str
    version: str
    type: ModelType
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    status: ModelStatus = "testing"
    performance: ModelPerformanceSnapshot = Field(default_factory=ModelPerformanceSnapshot)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    deployment: ModelDeployment = Field(default_factory=ModelDeployment)


class ModelUsage(BaseModel):
    model_name: str
    timestamp: datetime = Field(default_factory=_utcnow)
    request_type: RequestType
    response_time: float
    success: bool
    error: Optional[str] = None
    input_features: Optional[Dict[str, FeatureValue]] = None
    output_score: Optional[float] = None
    confidence: Optional[float] = None


class PerformanceWindowMetrics(BaseModel):
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    avg_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    avg_score: Optional[float] = None
    avg_confidence: Optional[float] = None
    error_rate: float = 0.0


class ModelPerformanceWindow(BaseModel):
    model_name: str
    period: PerformancePeriod
    metrics: PerformanceWindowMetrics
    timestamp: datetime = Field(default_factory=_utcnow)


class UsageStats(BaseModel):
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    avg_response_time: float = 0.0
    error_rate: float = 0.0


class ModelComparison(BaseModel):
    model1: Optional[ModelPerformanceWindow] = None
    model2: Optional[ModelPerformanceWindow] = None
    response_time_diff: float = 0.0
    error_rate_diff: float = 0.0
    score_diff: Optional[float] = None
    confidence_diff: Optional[float] = None


class EnsembleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    models: List[str]
    weights: List[float]

    @field_validator("weights")
    @classmethod
    def _non_negative(cls, value: List[float]) -> List[float]:
        if any(weight < 0 for weight in value):
            raise ValueError("Ensemble weights must be non-negative")
        return value


class EntryExitAdjustment(BaseModel):
    sl_pct_adj: float = 0.0
    tp_pct_adj: float = 0.0
    confidence: float = 0.5
    reasons: List[str] = Field(default_factory=list)


class ModelManager:
    """Owns model metadata, active pointers per task type and ensembles."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._models: Dict[str, ModelMeta] = {}
        self._active: Dict[str, str] = {}
        self._ensembles: Dict[str, EnsembleConfig] = {}
        self._usage: Dict[str, Deque[ModelUsage]] = {}
        self._performance: Dict[str, Deque[ModelPerformanceWindow]] = {}

    def seed_defaults(self) -> "ModelManager":
        """Register and activate the production strike and entry/exit models."""

        now = self._clock()
        self.register_model(
            ModelMeta(
                name="leaps-v1.2",
                version="1.2.0",
                type="strike_selection",
                created_at=now,
                last_updated=now,
                status="active",
                performance=ModelPerformanceSnapshot(
                    accuracy=0.78,
                    precision=0.82,
                    recall=0.75,
                    f1_score=0.78,
                    sharpe_ratio=1.45,
                    max_drawdown=0.12,
                    total_trades=1250,
                    win_rate=0.68,
                    avg_return=0.15,
                ),
                metadata={
                    "algorithm": "gradient_boosting",
                    "features": ["delta", "dte", "iv_rank", "liquidity", "extrinsic"],
                },
                deployment=ModelDeployment(
                    environment="production", region="us-east-1", instance="ml-engine-001", last_health_check=now
                ),
            )
        )
        self.register_model(
            ModelMeta(
                name="entry-exit-v1.0",
                version="1.0.0",
                type="entry_exit",
                created_at=now,
                last_updated=now,
                status="active",
                performance=ModelPerformanceSnapshot(
                    accuracy=0.71,
                    precision=0.68,
                    recall=0.73,
                    f1_score=0.70,
                    sharpe_ratio=1.23,
                    max_drawdown=0.15,
                    total_trades=890,
                    win_rate=0.65,
                    avg_return=0.12,
                ),
                metadata={
                    "algorithm": "random_forest",
                    "features": ["iv_rank", "rsi", "trend_days", "atr"],
                },
                deployment=ModelDeployment(
                    environment="production", region="us-east-1", instance="ml-engine-001", last_health_check=now
                ),
            )
        )
        self.activate_model("strike_selection", "leaps-v1.2")
        self.activate_model("entry_exit", "entry-exit-v1.0")
        self.create_ensemble(f"leaps-v1.2{ENSEMBLE_SUFFIX}", ["leaps-v1.2"], [1.0])
        logger.info(f"Model registry seeded with {len(self._models)} models")
        return self

    # -- registration and lifecycle -------------------------------------

    def register_model(self, model: ModelMeta) -> None:
        """Insert or replace a model record. Existing telemetry is kept."""

        replaced = model.name in self._models
        self._models[model.name] = model
        self._usage.setdefault(model.name, deque(maxlen=MAX_USAGE_RECORDS))
        self._performance.setdefault(model.name, deque(maxlen=MAX_PERFORMANCE_RECORDS))
        action = "replaced" if replaced else "registered"
        logger.info(f"Model {action}: {model.name} v{model.version} ({model.type}, status={model.status})")

    def activate_model(self, model_type: str, model_name: str) -> bool:
        model = self._models.get(model_name)
        if model is None:
            logger.warning(f"Cannot activate unknown model {model_name} for {model_type}")
            return False

        previous = self._active.get(model_type)
        self._active[model_type] = model_name
        model.status = "active"
        model.last_updated = self._clock()
        logger.info(f"Model activated for {model_type}: {model_name} (previous={previous or 'none'})")
        return True

    def deprecate_model(self, model_name: str) -> bool:
        model = self._models.get(model_name)
        if model is None:
            return False
        model.status = "deprecated"
        model.last_updated = self._clock()
        logger.info(f"Model deprecated: {model_name} ({model.type})")
        return True

    # -- queries ----------------------------------------------------------

    def get_active_model(self, model_type: str) -> Optional[str]:
        return self._active.get(model_type)

    def get_active_models(self) -> Dict[str, str]:
        return dict(self._active)

    def get_model_meta(self, model_name: str) -> Optional[ModelMeta]:
        return self._models.get(model_name)

    def get_model_version(self, model_name: str) -> str:
        model = self._models.get(model_name)
        return model.version if model else "unknown"

    def get_models_by_type(self, model_type: str) -> List[ModelMeta]:
        return [model for model in self._models.values() if model.type == model_type]

    def get_deprecated_models(self) -> List[ModelMeta]:
        return [model for model in self._models.values() if model.status == "deprecated"]

    # -- ensembles --------------------------------------------------------

    def create_ensemble(self, name: str, models: Sequence[str], weights: Sequence[float]) -> EnsembleConfig:
        if len(models) != len(weights):
            raise ValueError(f"Ensemble {name} needs one weight per model ({len(models)} != {len(weights)})")
        if not models:
            raise ValueError(f"Ensemble {name} must contain at least one model")
        ensemble = EnsembleConfig(name=name, models=list(models), weights=list(weights))
        self._ensembles[name] = ensemble
        logger.info(f"Ensemble created: {name} ({', '.join(models)})")
        return ensemble

    def get_ensemble(self, model_name: str) -> Optional[EnsembleConfig]:
        return self._ensembles.get(f"{model_name}{ENSEMBLE_SUFFIX}")

    def apply_ensemble(
        self,
        model_name: str,
        base_scores: Sequence[float],
        member_scores: Optional[Mapping[str, Sequence[float]]] = None,
    ) -> List[float]:
        """Blend per-member scores with the ensemble weights for ``model_name``.

        Members without their own scores in ``member_scores`` contribute
        ``base_scores``. When no ``{model_name}-ensemble`` exists the base
        scores are returned unchanged.
        """

        ensemble = self.get_ensemble(model_name)
        if ensemble is None:
            logger.debug(f"No ensemble for {model_name}; passing scores through")
            return list(base_scores)

        total_weight = sum(ensemble.weights)
        if total_weight <= 0:
            logger.warning(f"Ensemble {ensemble.name} has zero total weight; passing scores through")
            return list(base_scores)

        member_scores = member_scores or {}
        blended: List[float] = []
        for index, base in enumerate(base_scores):
            weighted = 0.0
            for member, weight in zip(ensemble.models, ensemble.weights):
                scores = member_scores.get(member)
                value = scores[index] if scores is not None and index < len(scores) else base
                weighted += value * weight
            blended.append(max(0.0, min(1.0, weighted / total_weight)))
        return blended

    def get_entry_exit_adjustment(
        self,
        model_name: str,
        underlying: str,
        side: str,
        features: Mapping[str, FeatureValue],
    ) -> EntryExitAdjustment:
        """Rule-based exit adjustment keyed on IV rank and trend only."""

        model = self._models.get(model_name)
        if model is None or model.type != "entry_exit":
            logger.warning(f"No entry/exit model named {model_name} for {underlying}")
            return EntryExitAdjustment()

        try:
            iv_rank = float(features.get("u_iv_rank") or 50)
            if iv_rank < 0:
                iv_rank = 50.0
            trend_days = float(features.get("u_trend_days") or 0)
        except (TypeError, ValueError):
            logger.exception(f"Entry/exit adjustment failed for {underlying} ({side})")
            return EntryExitAdjustment()

        adjustment = EntryExitAdjustment()
        if iv_rank > 80:
            adjustment.sl_pct_adj = -0.1
            adjustment.tp_pct_adj = 0.2
            adjustment.confidence = 0.7
            adjustment.reasons.append("High IV rank - tighter SL, extended TP")
        elif iv_rank < 20:
            adjustment.sl_pct_adj = 0.1
            adjustment.tp_pct_adj = -0.1
            adjustment.confidence = 0.6
            adjustment.reasons.append("Low IV rank - wider SL, tighter TP")

        if trend_days > 5:
            adjustment.tp_pct_adj += 0.1
            adjustment.confidence = min(1.0, adjustment.confidence + 0.1)
            adjustment.reasons.append("Strong trend - extended TP")
        return adjustment

    # -- telemetry --------------------------------------------------------

    def record_usage(self, usage: ModelUsage) -> None:
        self._usage.setdefault(usage.model_name, deque(maxlen=MAX_USAGE_RECORDS)).append(usage)
        logger.debug(
            f"Usage recorded for {usage.model_name}: {usage.request_type} "
            f"{usage.response_time:.1f}ms success={usage.success}"
        )

    def update_performance(self, model_name: str, window: ModelPerformanceWindow) -> None:
        self._performance.setdefault(model_name, deque(maxlen=MAX_PERFORMANCE_RECORDS)).append(window)
        logger.debug(
            f"Performance updated for {model_name} ({window.period}): "
            f"requests={window.metrics.total_requests} error_rate={window.metrics.error_rate:.3f}"
        )

    def get_model_performance(self, model_name: str, period: str) -> Optional[ModelPerformanceWindow]:
        """Latest performance window recorded for ``period``."""

        windows = [window for window in self._performance.get(model_name, ()) if window.period == period]
        if not windows:
            return None
        return max(windows, key=lambda window: window.timestamp)

    def get_model_usage_stats(self, model_name: str, hours: float = 24) -> UsageStats:
        cutoff = self._clock() - timedelta(hours=hours)
        recent = [usage for usage in self._usage.get(model_name, ()) if usage.timestamp > cutoff]
        if not recent:
            return UsageStats()

        total = len(recent)
        successful = sum(1 for usage in recent if usage.success)
        return UsageStats(
            total_requests=total,
            successful_requests=successful,
            failed_requests=total - successful,
            avg_response_time=sum(usage.response_time for usage in recent) / total,
            error_rate=(total - successful) / total,
        )

    def get_performance_metrics(self) -> Dict[str, Dict[str, Any]]:
        metrics: Dict[str, Dict[str, Any]] = {}
        for name, model in self._models.items():
            history = self._performance.get(name)
            latest = history[-1] if history else None
            metrics[name] = {
                "version": model.version,
                "type": model.type,
                "status": model.status,
                "performance": model.performance.model_dump(),
                "created_at": model.created_at,
                "last_updated": model.last_updated,
                "deployment": model.deployment.model_dump(),
                "latest_metrics": latest.model_dump() if latest else None,
            }
        return metrics

    def get_model_comparison(self, model1: str, model2: str, period: str = "1d") -> ModelComparison:
        first = self.get_model_performance(model1, period)
        second = self.get_model_performance(model2, period)
        if first is None or second is None:
            return ModelComparison(model1=first, model2=second)

        return ModelComparison(
            model1=first,
            model2=second,
            response_time_diff=first.metrics.avg_response_time - second.metrics.avg_response_time,
            error_rate_diff=first.metrics.error_rate - second.metrics.error_rate,
            score_diff=(first.metrics.avg_score or 0.0) - (second.metrics.avg_score or 0.0),
            confidence_diff=(first.metrics.avg_confidence or 0.0) - (second.metrics.avg_confidence or 0.0),
        )

    # -- health -----------------------------------------------------------

    def get_model_health(self, model_name: str) -> str:
        model = self._models.get(model_name)
        return model.deployment.health if model else "unknown"

    def update_model_health(self, model_name: str, health: ModelHealth) -> None:
        model = self._models.get(model_name)
        if model is None:
            return
        model.deployment.health = health
        model.deployment.last_health_check = self._clock()
        logger.info(f"Model health updated: {model_name} -> {health}")

    async def check_model_health(self, probe: Optional[HealthProbe] = None) -> Dict[str, str]:
        """Probe every registered model and store the result.

        Without a ``probe`` the health is derived from the last hour of usage.
        A probe that raises marks the model unhealthy.
        """

        probe = probe or self._usage_health
        results: Dict[str, str] = {}
        for name, model in list(self._models.items()):
            try:
                outcome = probe(model)
                health = await outcome if asyncio.iscoroutine(outcome) else outcome
            except Exception:
                logger.exception(f"Health check failed for model {name}")
                health = "unhealthy"
            self.update_model_health(name, health)
            results[name] = health
        return results

    async def monitor_health(
        self,
        interval: float = DEFAULT_HEALTH_INTERVAL,
        iterations: Optional[int] = None,
        probe: Optional[HealthProbe] = None,
    ) -> None:
        """Run :meth:`check_model_health` every ``interval`` seconds.

        Runs forever unless ``iterations`` is given; cancel the task to stop it.
        """

        completed = 0
        while iterations is None or completed < iterations:
            await self.check_model_health(probe)
            completed += 1
            if iterations is not None and completed >= iterations:
                break
            await asyncio.sleep(interval)

    def _usage_health(self, model: ModelMeta) -> ModelHealth:
        stats = self.get_model_usage_stats(model.name, hours=1)
        if stats.total_requests == 0 or stats.error_rate < 0.05:
            return "healthy"
        if stats.error_rate < 0.25:
            return "degraded"
        return "unhealthy"


__all__ = [
    "EnsembleConfig",
    "EntryExitAdjustment",
    "ModelComparison",
    "ModelDeployment",
    "ModelManager",
    "ModelMeta",
    "ModelPerformanceSnapshot",
    "ModelPerformanceWindow",
    "ModelUsage",
    "PerformanceWindowMetrics",
    "UsageStats",
]
