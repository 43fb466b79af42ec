import pytest

from gepa_engine.core.objectives import MultiObjectiveEvaluator
from gepa_engine.models import EvaluationStatus, ObjectiveScores

from conftest import make_candidate, make_result


def _scores(success_rate, latency, cost, variance, completed=4):
    return ObjectiveScores(
        success_rate=success_rate,
        mean_latency_ms=latency,
        mean_cost=cost,
        score_variance=variance,
        mean_quality=success_rate,
        completed=completed,
        total=4,
    )


def test_score_aggregates_results():
    results = [
        make_result("c", EvaluationStatus.SUCCESS, duration_ms=100, token_cost=10, quality_score=1.0),
        make_result("c", EvaluationStatus.FAILED, duration_ms=300, token_cost=20, quality_score=0.0),
        make_result("c", EvaluationStatus.TIMEOUT, duration_ms=500, token_cost=0, quality_score=0.0),
    ]
    scores = MultiObjectiveEvaluator().score(results)

    assert scores.success_rate == pytest.approx(1 / 3)
    assert scores.mean_latency_ms == pytest.approx(300)
    assert scores.mean_cost == pytest.approx(15)
    assert scores.score_variance == pytest.approx(0.25)
    assert scores.completed == 2
    assert scores.total == 3


def test_cancelled_units_are_excluded_from_totals():
    results = [
        make_result("c", EvaluationStatus.SUCCESS),
        make_result("c", EvaluationStatus.CANCELLED, duration_ms=0),
    ]
    scores = MultiObjectiveEvaluator().score(results)
    assert scores.total == 1
    assert scores.success_rate == 1.0


def test_normalize_inverts_minimized_objectives():
    raw = {
        "fast": _scores(0.5, latency=100, cost=10, variance=0.0),
        "slow": _scores(1.0, latency=300, cost=30, variance=0.2),
    }
    vectors = MultiObjectiveEvaluator().normalize(raw)

    assert vectors["fast"] == (0.0, 1.0, 1.0, 1.0)
    assert vectors["slow"] == (1.0, 0.0, 0.0, 0.0)


def test_normalize_degenerate_range_and_no_completed_units():
    raw = {
        "a": _scores(0.5, 100, 10, 0.0),
        "b": _scores(0.5, 100, 10, 0.0),
        "dead": _scores(0.0, 0, 0, 0.0, completed=0),
    }
    vectors = MultiObjectiveEvaluator().normalize(raw)

    assert vectors["a"] == (0.5, 0.5, 0.5, 0.5)
    assert vectors["dead"] == (0.0, 0.0, 0.0, 0.0)


def test_normalized_vectors_stay_in_unit_range():
    raw = {str(i): _scores(i / 5, 50 * i, 3 * i, 0.01 * i) for i in range(6)}
    for vector in MultiObjectiveEvaluator().normalize(raw).values():
        assert all(0.0 <= value <= 1.0 for value in vector)


def test_score_population_returns_scored_copies():
    first, second = make_candidate("first"), make_candidate("second")
    results = {
        first.id: [make_result(first.id, EvaluationStatus.SUCCESS, duration_ms=50)],
        second.id: [make_result(second.id, EvaluationStatus.FAILED, duration_ms=80)],
    }
    scored = MultiObjectiveEvaluator().score_population([first, second], results)

    assert first.raw_scores is None
    assert [c.id for c in scored] == [first.id, second.id]
    assert scored[0].objectives[0] == 1.0
    assert scored[1].objectives[0] == 0.0


def test_weighted_display_order_is_stable():
    evaluator = MultiObjectiveEvaluator({"latency": 0.0, "cost": 0.0, "robustness": 0.0})
    low = make_candidate("low", objectives=(0.2, 1.0, 1.0, 1.0))
    high = make_candidate("high", objectives=(0.9, 0.0, 0.0, 0.0))
    tie = make_candidate("tie", objectives=(0.9, 0.5, 0.5, 0.5))
    unscored = make_candidate("unscored")

    ordered = evaluator.rank_for_display([unscored, low, high, tie])

    assert [c.text for c in ordered] == ["high", "tie", "low", "unscored"]
    assert evaluator.weighted_score((0.9, 0.0, 0.0, 0.0)) == pytest.approx(0.9)
