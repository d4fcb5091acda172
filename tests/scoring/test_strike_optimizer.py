from __future__ import annotations

from datetime import datetime, timezone

import pytest

from leaptrader.features import FeatureBuilder
from leaptrader.models.ml import StrikeCandidate, StrikeSelectionContext
from leaptrader.models.option import UnderlyingSnapshot
from leaptrader.scoring import NEUTRAL_SCORE, LiquidityScorer, StrikeOptimizer, range_alignment

AS_OF = datetime(2025, 1, 2, tzinfo=timezone.utc)
SPOT = 180.0


def build_candidate(contract, iv_rank=25.0) -> StrikeCandidate:
    snapshot = UnderlyingSnapshot(symbol=contract.underlying, spot=SPOT, iv_rank=iv_rank)
    features = FeatureBuilder().build_combined_features(snapshot, contract, as_of=AS_OF)
    return StrikeCandidate(contract=contract, features=features)


def build_context(**overrides) -> StrikeSelectionContext:
    values = {"side": "long_call", "delta_range": (0.55, 0.70), "dte_range": (365, 730), "iv_rank": 25.0}
    values.update(overrides)
    return StrikeSelectionContext(**values)


def test_scores_are_bounded_and_in_input_order(contract_factory):
    candidates = [
        build_candidate(contract_factory(strike=strike, delta=delta))
        for strike, delta in ((140.0, 0.82), (170.0, 0.62), (210.0, 0.31))
    ]

    scores = StrikeOptimizer().score_candidates(candidates, build_context())

    assert len(scores) == 3
    assert all(0.0 <= score <= 1.0 for score in scores)
    assert scores[1] == max(scores)


def test_delta_near_range_midpoint_beats_range_edge(contract_factory):
    optimizer = StrikeOptimizer()
    context = build_context()
    centred = build_candidate(contract_factory(delta=0.65))
    edge = build_candidate(contract_factory(delta=0.55))

    centred_score, edge_score = optimizer.score_candidates([centred, edge], context)

    assert centred_score > edge_score


def test_failing_scorer_yields_neutral_scores(contract_factory):
    class ExplodingScorer:
        key = "exploding"
        default_weight = 1.0

        def score(self, context):
            raise RuntimeError("model weights missing")

    optimizer = StrikeOptimizer(scorers=[ExplodingScorer()])
    candidates = [build_candidate(contract_factory()), build_candidate(contract_factory(strike=150.0))]

    assert optimizer.score_candidates(candidates, build_context()) == [NEUTRAL_SCORE, NEUTRAL_SCORE]


def test_weight_override_changes_breakdown(contract_factory):
    candidate = build_candidate(contract_factory())
    context = build_context()

    baseline = StrikeOptimizer().score_with_breakdown(candidate, context)
    boosted = StrikeOptimizer({"weights": {"liquidity": 0.5}}).score_with_breakdown(candidate, context)

    base_liquidity = next(b for b in baseline.breakdowns if b.scorer == "liquidity")
    boosted_liquidity = next(b for b in boosted.breakdowns if b.scorer == "liquidity")
    assert boosted_liquidity.weight == 0.5
    assert boosted_liquidity.weighted_score > base_liquidity.weighted_score


def test_custom_score_bounds_are_respected(contract_factory):
    optimizer = StrikeOptimizer({"score_bounds": {"min": 0.2, "max": 0.4}})

    score = optimizer.score_with_breakdown(build_candidate(contract_factory(delta=0.62)), build_context())

    assert 0.2 <= score.total_score <= 0.4


def test_enabled_list_limits_scorers():
    optimizer = StrikeOptimizer({"enabled": ["liquidity", "unknown"]})

    assert optimizer.enabled_scorers == ["liquidity"]


def test_rank_sorts_best_first_with_insights(contract_factory):
    thin = contract_factory(strike=200.0, delta=0.35, volume=20, open_interest=40)
    liquid = contract_factory(strike=165.0, delta=0.63)

    ranked = StrikeOptimizer().rank([build_candidate(thin), build_candidate(liquid)], build_context())

    assert ranked[0].contract == liquid
    assert "Low volume - consider higher volume alternatives" in ranked[1].reasons
    assert "Low open interest - limited liquidity" in ranked[1].reasons
    assert any(reason.startswith("Delta 0.35 below target range") for reason in ranked[1].reasons)


def test_liquidity_scorer_flags_wide_spreads(contract_factory):
    optimizer = StrikeOptimizer(scorers=[LiquidityScorer()])
    wide = build_candidate(contract_factory(bid=10.0, ask=13.0))

    score = optimizer.score_with_breakdown(wide, build_context())

    assert "liquidity-warning" in score.tags
    assert any("Wide spread" in reason for reason in score.reasons)


@pytest.mark.parametrize(
    "value, expected",
    [(0.625, 1.0), (0.55, 0.0), (0.70, 0.0), (0.5875, 0.5), (0.9, 0.0)],
)
def test_range_alignment(value, expected):
    assert range_alignment(value, (0.55, 0.70)) == pytest.approx(expected)
