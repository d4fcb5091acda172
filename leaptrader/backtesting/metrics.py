"""Trade-level performance statistics.

Every function returns ``0.0`` (or ``0``) for empty input instead of NaN so
summaries of runs without trades stay all-zero.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

_EPSILON = 1e-12


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Mean over population standard deviation of per-trade returns."""

    values = np.asarray(returns, dtype=float)
    if values.size == 0:
        return 0.0
    std = float(values.std())
    return 0.0 if std <= _EPSILON else float(values.mean()) / std


def sortino_ratio(returns: Sequence[float]) -> float:
    """Mean over the deviation of returns that fall below the mean."""

    values = np.asarray(returns, dtype=float)
    if values.size == 0:
        return 0.0
    mean = float(values.mean())
    downside = values[values < mean]
    if downside.size == 0:
        return 0.0
    deviation = float(np.sqrt(np.mean((downside - mean) ** 2)))
    return 0.0 if deviation <= _EPSILON else mean / deviation


def max_drawdown(pnls: Sequence[float], initial_capital: float) -> float:
    """Largest ``(peak - capital) / peak`` while folding P&L in order."""

    values = np.asarray(pnls, dtype=float)
    if values.size == 0 or initial_capital <= 0:
        return 0.0
    capital = initial_capital + np.cumsum(values)
    peaks = np.maximum.accumulate(np.concatenate(([initial_capital], capital)))[1:]
    return max(0.0, float(((peaks - capital) / peaks).max()))


def max_consecutive_losses(pnls: Sequence[float]) -> int:
    longest = 0
    current = 0
    for pnl in pnls:
        if pnl <= 0:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


__all__ = ["max_consecutive_losses", "max_drawdown", "sharpe_ratio", "sortino_ratio"]
