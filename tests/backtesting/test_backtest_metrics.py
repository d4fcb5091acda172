from __future__ import annotations

import pytest

from leaptrader.backtesting import max_consecutive_losses, max_drawdown, sharpe_ratio, sortino_ratio


def test_sharpe_ratio_uses_population_deviation():
    assert sharpe_ratio([0.1, 0.3]) == pytest.approx(2.0)


def test_sortino_ratio_uses_returns_below_mean():
    # mean 0.1; downside deviations are -0.3 and -0.1
    assert sortino_ratio([-0.2, 0.0, 0.5]) == pytest.approx(0.1 / (0.05**0.5))


@pytest.mark.parametrize("metric", [sharpe_ratio, sortino_ratio])
def test_degenerate_inputs_return_zero(metric):
    assert metric([]) == 0.0
    assert metric([0.05, 0.05, 0.05]) == 0.0


def test_max_drawdown_tracks_running_peak():
    assert max_drawdown([100.0, -300.0, 50.0], 1_000.0) == pytest.approx(300.0 / 1_100.0)


def test_max_drawdown_from_initial_capital():
    assert max_drawdown([-200.0, 100.0], 1_000.0) == pytest.approx(0.2)


def test_max_drawdown_without_losses():
    assert max_drawdown([10.0, 20.0], 1_000.0) == 0.0
    assert max_drawdown([], 1_000.0) == 0.0


def test_max_consecutive_losses_counts_flat_trades():
    assert max_consecutive_losses([120.0, -40.0, 0.0, -15.0, 80.0, -5.0]) == 3
    assert max_consecutive_losses([]) == 0
