"""Environment aware configuration loader."""

from __future__ import annotations

import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaptrader.models.leaps import LEAPSSelectionCriteria, LeapsStrategy
from leaptrader.scoring.config import DEFAULT_SCORER_CONFIG

DEFAULT_SETTINGS: Dict[str, Any] = {
    "watchlists": {
        "default": ["SPY", "QQQ"],
    },
    "scoring": copy.deepcopy(DEFAULT_SCORER_CONFIG),
    "cache": {
        "chain_ttl_seconds": 30,
        "quote_ttl_seconds": 5,
        "underlying_ttl_seconds": 10,
    },
    "circuit_breaker": {
        "failure_threshold": 5,
        "reset_timeout_ms": 60000,
        "success_threshold": 3,
        "timeout_ms": 30000,
    },
    "ml_service": {
        "enabled": False,
        "base_url": "http://localhost:8000",
    },
    "data": {
        "providers": [
            {"name": "yfinance", "priority": 0},
        ],
    },
}

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
ENVIRONMENT_VARIABLE = "APP_ENV"
ML_API_KEY_VARIABLE = "ML_SERVICE_API_KEY"


class ScoringSettings(BaseModel):
    """Strike scoring configuration handed to ``StrikeOptimizer``."""

    model_config = ConfigDict(extra="allow")

    enabled: List[str] = Field(default_factory=lambda: list(DEFAULT_SCORER_CONFIG.get("enabled", [])))
    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORER_CONFIG.get("weights", {})))
    score_bounds: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCORER_CONFIG.get("score_bounds", {})))

    @field_validator("weights", mode="before")
    @classmethod
    def _coerce_weights(cls, value: Mapping[str, Any]) -> Dict[str, float]:
        return {key: float(val) for key, val in dict(value or {}).items()}

    def to_engine_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "enabled": list(self.enabled),
            "weights": dict(self.weights),
            "score_bounds": dict(self.score_bounds),
        }
        config.update(self.model_extra or {})
        return config


class CacheSettings(BaseModel):
    chain_ttl_seconds: float = 30
    quote_ttl_seconds: float = 5
    underlying_ttl_seconds: float = 10


class CircuitBreakerSettings(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_ms: int = Field(default=60000, ge=0)
    success_threshold: int = Field(default=3, ge=1)
    timeout_ms: Optional[int] = Field(default=30000, ge=1)


class RetrySettings(BaseModel):
    base_delay_ms: float = 500
    max_delay_ms: float = 16000
    max_retries: int = Field(default=3, ge=0)
    jitter_ms: float = 300
    default_retry_after: float = 2.0


class MLServiceSettings(BaseModel):
    enabled: bool = False
    base_url: str = "http://localhost:8000"
    api_key: Optional[str] = None
    timeout_seconds: float = 10.0
    strike_model: str = "leaps-v1.2"
    entry_exit_model: str = "entry-exit-v1.0"
    retry: RetrySettings = Field(default_factory=RetrySettings)


class LeapsSettings(BaseModel):
    strategy: LeapsStrategy = "long_call"
    delta_range: Optional[Tuple[float, float]] = (0.5, 0.85)
    dte_range: Optional[Tuple[int, int]] = None
    iv_range: Optional[Tuple[float, float]] = None
    min_volume: Optional[int] = None
    min_open_interest: Optional[int] = 100
    max_selections: int = 3
    min_score: float = 0.6

    def to_criteria(self, **overrides: Any) -> LEAPSSelectionCriteria:
        values = self.model_dump()
        values.update(overrides)
        return LEAPSSelectionCriteria(**values)


class BacktestSettings(BaseModel):
    stop_loss_multiple: float = 0.65
    take_profit_multiple: float = 2.0
    max_hold_days: int = 365
    seed: int = Field(default=0, ge=0)
    initial_capital: float = 100_000.0
    max_positions: int = 5
    position_size_percent: float = 5.0


class ProviderSettings(BaseModel):
    name: str
    priority: int = 0
    enabled: bool = True
    settings: Dict[str, Any] = Field(default_factory=dict)


class DataSettings(BaseModel):
    providers: List[ProviderSettings] = Field(default_factory=list)
    health_canary_symbol: str = "SPY240119C00400000"

    @model_validator(mode="after")
    def _unique_providers(self) -> "DataSettings":
        names = [provider.name.lower() for provider in self.providers]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate data providers configured: {names}")
        return self


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()


class AppSettings(BaseModel):
    """Fully resolved application settings loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    env: str
    watchlists: Dict[str, List[str]]
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    ml_service: MLServiceSettings = Field(default_factory=MLServiceSettings)
    leaps: LeapsSettings = Field(default_factory=LeapsSettings)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("env")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        return value.lower()

    @field_validator("watchlists", mode="before")
    @classmethod
    def _coerce_watchlists(cls, value: Mapping[str, Any]) -> Dict[str, List[str]]:
        return {key: [str(item).upper() for item in items or []] for key, items in dict(value or {}).items()}

    def get_watchlist(self, name: str = "default") -> List[str]:
        return list(self.watchlists.get(name, []))

    def scoring_dict(self) -> Dict[str, Any]:
        return self.scoring.to_engine_config()


def _deep_merge(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            existing = base.get(key)
            if isinstance(existing, MutableMapping):
                base[key] = _deep_merge(copy.deepcopy(existing), value)
            else:
                base[key] = copy.deepcopy(value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping at the root.")
    return data


def _build_settings(env: str) -> AppSettings:
    config_path = CONFIG_DIR / f"{env}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file for environment '{env}' not found at {config_path}")

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    merged = _deep_merge(merged, _load_yaml(config_path))
    merged["env"] = env

    api_key = os.getenv(ML_API_KEY_VARIABLE)
    if api_key:
        merged.setdefault("ml_service", {})["api_key"] = api_key
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=None)
def _cached_settings(env: str) -> AppSettings:
    return _build_settings(env)


def get_settings(env: Optional[str] = None) -> AppSettings:
    """Load settings for the requested environment (default: APP_ENV or 'dev')."""

    resolved_env = (env or os.getenv(ENVIRONMENT_VARIABLE, "dev")).strip().lower()
    return _cached_settings(resolved_env)


def reset_settings_cache() -> None:
    """Clear the cached settings, primarily used during tests."""

    _cached_settings.cache_clear()


__all__ = [
    "AppSettings",
    "BacktestSettings",
    "CacheSettings",
    "CircuitBreakerSettings",
    "DataSettings",
    "LeapsSettings",
    "LoggingSettings",
    "MLServiceSettings",
    "ProviderSettings",
    "RetrySettings",
    "ScoringSettings",
    "get_settings",
    "reset_settings_cache",
]
