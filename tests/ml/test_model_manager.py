from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from leaptrader.ml import EnsembleConfig, ModelManager, ModelMeta, ModelPerformanceWindow, ModelUsage
from leaptrader.ml.model_manager import MAX_USAGE_RECORDS, PerformanceWindowMetrics

NOW = datetime(2025, 1, 2, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager() -> ModelManager:
    return ModelManager(clock=lambda: NOW).seed_defaults()


def usage(model="leaps-v1.2", success=True, minutes_ago=5, response_time=20.0) -> ModelUsage:
    return ModelUsage(
        model_name=model,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        request_type="strike_scoring",
        response_time=response_time,
        success=success,
    )


def window(model, period="1d", minutes_ago=0, **metrics) -> ModelPerformanceWindow:
    return ModelPerformanceWindow(
        model_name=model,
        period=period,
        metrics=PerformanceWindowMetrics(**metrics),
        timestamp=NOW - timedelta(minutes=minutes_ago),
    )


class TestRegistry:
    def test_fresh_manager_is_empty(self):
        manager = ModelManager()

        assert manager.get_active_models() == {}
        assert manager.get_model_version("leaps-v1.2") == "unknown"
        assert manager.get_model_health("leaps-v1.2") == "unknown"

    def test_seeded_defaults(self, manager):
        assert manager.get_active_models() == {"strike_selection": "leaps-v1.2", "entry_exit": "entry-exit-v1.0"}
        assert manager.get_model_version("leaps-v1.2") == "1.2.0"
        assert manager.get_ensemble("leaps-v1.2").weights == [1.0]
        assert [model.name for model in manager.get_models_by_type("entry_exit")] == ["entry-exit-v1.0"]

    def test_activate_and_deprecate(self, manager):
        manager.register_model(ModelMeta(name="leaps-v1.3", version="1.3.0", type="strike_selection"))

        assert manager.activate_model("strike_selection", "leaps-v1.3") is True
        assert manager.deprecate_model("leaps-v1.2") is True
        assert manager.get_active_model("strike_selection") == "leaps-v1.3"
        assert manager.get_model_meta("leaps-v1.3").status == "active"
        assert [model.name for model in manager.get_deprecated_models()] == ["leaps-v1.2"]
        assert manager.get_model_version("leaps-v1.2") == "1.2.0"

    def test_unknown_models_are_rejected(self, manager):
        assert manager.activate_model("strike_selection", "ghost") is False
        assert manager.deprecate_model("ghost") is False
        assert manager.get_active_model("strike_selection") == "leaps-v1.2"

    def test_reregistering_keeps_usage_history(self, manager):
        manager.record_usage(usage())

        manager.register_model(ModelMeta(name="leaps-v1.2", version="1.2.1", type="strike_selection"))

        assert manager.get_model_version("leaps-v1.2") == "1.2.1"
        assert manager.get_model_usage_stats("leaps-v1.2").total_requests == 1


class TestEnsembles:
    def test_weighted_blend_of_member_scores(self, manager):
        manager.create_ensemble("blend-ensemble", ["a", "b"], [3.0, 1.0])

        blended = manager.apply_ensemble("blend", [0.5, 0.5], {"a": [1.0, 0.2], "b": [0.0, 0.6]})

        assert blended == pytest.approx([0.75, 0.3])

    def test_missing_members_contribute_base_scores(self, manager):
        manager.create_ensemble("blend-ensemble", ["a", "b"], [1.0, 1.0])

        assert manager.apply_ensemble("blend", [0.4], {"a": [0.8]}) == pytest.approx([0.6])

    def test_no_ensemble_passes_scores_through(self, manager):
        assert manager.apply_ensemble("unknown-model", [0.1, 0.9]) == [0.1, 0.9]

    def test_zero_total_weight_passes_scores_through(self, manager):
        manager.create_ensemble("muted-ensemble", ["a"], [0.0])

        assert manager.apply_ensemble("muted", [0.42], {"a": [1.0]}) == [0.42]

    def test_blend_is_clamped(self, manager):
        manager.create_ensemble("hot-ensemble", ["a"], [1.0])

        assert manager.apply_ensemble("hot", [0.5], {"a": [1.7]}) == [1.0]

    def test_invalid_ensembles(self, manager):
        with pytest.raises(ValueError):
            manager.create_ensemble("x-ensemble", ["a", "b"], [1.0])
        with pytest.raises(ValueError):
            manager.create_ensemble("x-ensemble", [], [])
        with pytest.raises(ValueError):
            EnsembleConfig(name="x-ensemble", models=["a"], weights=[-1.0])


class TestEntryExitAdjustment:
    def test_high_iv_rank_and_trend(self, manager):
        adjustment = manager.get_entry_exit_adjustment(
            "entry-exit-v1.0", "AAPL", "long_call", {"u_iv_rank": 90.0, "u_trend_days": 6}
        )

        assert adjustment.sl_pct_adj == pytest.approx(-0.1)
        assert adjustment.tp_pct_adj == pytest.approx(0.3)
        assert adjustment.confidence == pytest.approx(0.8)
        assert len(adjustment.reasons) == 2

    def test_low_iv_rank(self, manager):
        adjustment = manager.get_entry_exit_adjustment("entry-exit-v1.0", "AAPL", "long_put", {"u_iv_rank": 12.0})

        assert (adjustment.sl_pct_adj, adjustment.tp_pct_adj, adjustment.confidence) == pytest.approx(
            (0.1, -0.1, 0.6)
        )

    def test_missing_iv_rank_sentinel_is_neutral(self, manager):
        adjustment = manager.get_entry_exit_adjustment("entry-exit-v1.0", "AAPL", "long_call", {"u_iv_rank": -1})

        assert adjustment.reasons == []
        assert adjustment.confidence == 0.5

    def test_wrong_model_type_is_neutral(self, manager):
        adjustment = manager.get_entry_exit_adjustment("leaps-v1.2", "AAPL", "long_call", {"u_iv_rank": 90.0})

        assert adjustment.sl_pct_adj == 0.0
        assert adjustment.reasons == []


class TestTelemetry:
    def test_usage_stats_only_count_recent_requests(self, manager):
        manager.record_usage(usage(success=True, response_time=10.0))
        manager.record_usage(usage(success=False, response_time=30.0))
        manager.record_usage(usage(minutes_ago=60 * 30))

        stats = manager.get_model_usage_stats("leaps-v1.2", hours=24)

        assert stats.total_requests == 2
        assert stats.failed_requests == 1
        assert stats.avg_response_time == pytest.approx(20.0)
        assert stats.error_rate == pytest.approx(0.5)

    def test_usage_history_is_bounded(self, manager):
        for _ in range(MAX_USAGE_RECORDS + 5):
            manager.record_usage(usage())

        assert manager.get_model_usage_stats("leaps-v1.2").total_requests == MAX_USAGE_RECORDS

    def test_latest_performance_window_per_period(self, manager):
        manager.update_performance("leaps-v1.2", window("leaps-v1.2", minutes_ago=1, total_requests=5))
        manager.update_performance("leaps-v1.2", window("leaps-v1.2", minutes_ago=10, total_requests=3))
        manager.update_performance("leaps-v1.2", window("leaps-v1.2", period="1h", total_requests=9))

        latest = manager.get_model_performance("leaps-v1.2", "1d")

        assert latest.metrics.total_requests == 5
        assert manager.get_model_performance("leaps-v1.2", "1w") is None

    def test_model_comparison(self, manager):
        manager.update_performance(
            "leaps-v1.2", window("leaps-v1.2", avg_response_time=40.0, error_rate=0.1, avg_score=0.7)
        )
        manager.update_performance(
            "entry-exit-v1.0", window("entry-exit-v1.0", avg_response_time=25.0, error_rate=0.02, avg_score=0.6)
        )

        comparison = manager.get_model_comparison("leaps-v1.2", "entry-exit-v1.0")

        assert comparison.response_time_diff == pytest.approx(15.0)
        assert comparison.error_rate_diff == pytest.approx(0.08)
        assert comparison.score_diff == pytest.approx(0.1)

    def test_comparison_with_missing_window(self, manager):
        comparison = manager.get_model_comparison("leaps-v1.2", "entry-exit-v1.0")

        assert comparison.model1 is None
        assert comparison.score_diff is None

    def test_performance_metrics_summary(self, manager):
        metrics = manager.get_performance_metrics()

        assert set(metrics) == {"leaps-v1.2", "entry-exit-v1.0"}
        assert metrics["leaps-v1.2"]["status"] == "active"
        assert metrics["leaps-v1.2"]["latest_metrics"] is None


class TestHealth:
    @pytest.mark.asyncio
    async def test_usage_based_health(self, manager):
        for _ in range(9):
            manager.record_usage(usage())
        manager.record_usage(usage(success=False))

        results = await manager.check_model_health()

        assert results == {"leaps-v1.2": "degraded", "entry-exit-v1.0": "healthy"}
        assert manager.get_model_health("leaps-v1.2") == "degraded"

    @pytest.mark.asyncio
    async def test_failing_probe_marks_unhealthy(self, manager):
        async def probe(model):
            if model.type == "entry_exit":
                raise ConnectionError("ml-engine-001 unreachable")
            return "healthy"

        results = await manager.check_model_health(probe)

        assert results["entry-exit-v1.0"] == "unhealthy"
        assert results["leaps-v1.2"] == "healthy"

    @pytest.mark.asyncio
    async def test_monitor_runs_requested_iterations(self, manager):
        calls = []

        def probe(model):
            calls.append(model.name)
            return "healthy"

        await asyncio.wait_for(manager.monitor_health(interval=0, iterations=3, probe=probe), timeout=5)

        assert len(calls) == 6
