"""LEAPS strategy backtesting."""

from .engine import (
    BacktestParams,
    BacktestResult,
    BacktestSummary,
    Backtester,
    EquityPoint,
    SymbolPerformance,
    Trade,
)
from .market import ChainSource, RouterChainSource, SyntheticChainSource, black_scholes
from .metrics import max_consecutive_losses, max_drawdown, sharpe_ratio, sortino_ratio

__all__ = [
    "BacktestParams",
    "BacktestResult",
    "BacktestSummary",
    "Backtester",
    "ChainSource",
    "EquityPoint",
    "RouterChainSource",
    "SymbolPerformance",
    "SyntheticChainSource",
    "Trade",
    "black_scholes",
    "max_consecutive_losses",
    "max_drawdown",
    "sharpe_ratio",
    "sortino_ratio",
]
