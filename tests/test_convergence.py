import pytest

from gepa_engine.core.convergence import ConvergenceDetector, regression_slope
from gepa_engine.core.mutation_rate import MutationRateScheduler
from gepa_engine.models import ConvergenceSignal, ConvergenceStatus, OptimizationConfig


def _config(**overrides):
    settings = dict(
        max_generations=100,
        plateau_window=3,
        plateau_epsilon=0.01,
        diversity_threshold=0.15,
        diversity_patience=3,
        hypervolume_window=3,
        hypervolume_epsilon=0.01,
    )
    settings.update(overrides)
    return OptimizationConfig(**settings)


def _improving(detector, generations, start=0.0):
    report = None
    for i in range(generations):
        value = start + 0.1 * (i + 1)
        report = detector.record_generation(value, value / 2, 0.8, value)
    return report


def test_evaluation_budget_exhausts_exactly_at_fifth_generation():
    detector = ConvergenceDetector(_config(max_evaluations=50, population_size=10))
    for generation in range(1, 6):
        report = detector.record_generation(0.1 * generation, 0.05, 0.8, 0.1 * generation, evaluations=10)
        if generation < 5:
            assert report.status == ConvergenceStatus.RUNNING
    assert report.status == ConvergenceStatus.BUDGET_EXHAUSTED
    assert report.reason == ConvergenceSignal.BUDGET
    assert detector.state.evaluations == 50


def test_cost_and_generation_budgets():
    by_cost = ConvergenceDetector(_config(max_cost=5.0))
    assert by_cost.record_generation(0.1, 0.1, 0.8, 0.1, evaluations=1, cost=6.0).reason == ConvergenceSignal.BUDGET

    by_generations = ConvergenceDetector(_config(max_generations=2))
    assert not by_generations.record_generation(0.1, 0.1, 0.8, 0.1).should_stop
    assert by_generations.record_generation(0.2, 0.1, 0.8, 0.2).status == ConvergenceStatus.BUDGET_EXHAUSTED


def test_budget_wins_over_other_signals():
    detector = ConvergenceDetector(_config(max_generations=3))
    report = None
    for _ in range(3):
        report = detector.record_generation(0.5, 0.5, 0.0, 0.5)
    assert report.reason == ConvergenceSignal.BUDGET
    assert report.triggered == (ConvergenceSignal.BUDGET,)


def test_fitness_plateau():
    detector = ConvergenceDetector(_config(hypervolume_window=50))
    _improving(detector, 2)
    report = None
    for _ in range(3):
        report = detector.record_generation(0.2, 0.1, 0.8, 0.2 + 0.1 * len(detector.state.hypervolume))
    assert report.status == ConvergenceStatus.CONVERGED
    assert report.reason == ConvergenceSignal.FITNESS_PLATEAU


def test_steady_improvement_keeps_running():
    detector = ConvergenceDetector(_config())
    report = _improving(detector, 8)
    assert report.status == ConvergenceStatus.RUNNING
    assert report.diversity_trend == "stable"


def test_diversity_collapse_needs_patience():
    detector = ConvergenceDetector(_config(plateau_window=50, hypervolume_window=50))
    reports = [detector.record_generation(0.1 * i, 0.0, 0.05, 0.1 * i) for i in range(1, 4)]
    assert not reports[1].should_stop
    assert reports[2].reason == ConvergenceSignal.DIVERSITY_COLLAPSE


def test_diversity_streak_resets_when_diversity_recovers():
    detector = ConvergenceDetector(_config(plateau_window=50, hypervolume_window=50))
    for i, diversity in enumerate((0.05, 0.05, 0.5, 0.05, 0.05), 1):
        report = detector.record_generation(0.1 * i, 0.0, diversity, 0.1 * i)
    assert report.status == ConvergenceStatus.RUNNING
    assert detector.state.low_diversity_streak == 2


def test_hypervolume_saturation():
    detector = ConvergenceDetector(_config(plateau_window=50))
    report = None
    for i in range(4):
        report = detector.record_generation(0.1 * (i + 1), 0.0, 0.8, 0.5)
    assert report.reason == ConvergenceSignal.HYPERVOLUME_SATURATION


def test_reason_follows_configured_priority():
    priority = (
        ConvergenceSignal.DIVERSITY_COLLAPSE,
        ConvergenceSignal.FITNESS_PLATEAU,
        ConvergenceSignal.HYPERVOLUME_SATURATION,
    )
    detector = ConvergenceDetector(_config(convergence_priority=priority, diversity_patience=4))
    report = None
    for _ in range(4):
        report = detector.record_generation(0.5, 0.5, 0.0, 0.5)
    assert set(report.triggered) == set(priority)
    assert report.reason == ConvergenceSignal.DIVERSITY_COLLAPSE

    default = ConvergenceDetector(_config(diversity_patience=4))
    for _ in range(4):
        report = default.record_generation(0.5, 0.5, 0.0, 0.5)
    assert report.reason == ConvergenceSignal.HYPERVOLUME_SATURATION


def test_warning_when_two_signals_are_near():
    detector = ConvergenceDetector(_config(plateau_window=4, hypervolume_window=50))
    detector.record_generation(0.5, 0.5, 0.8, 0.1)
    detector.record_generation(0.5, 0.5, 0.8, 0.2)
    report = detector.record_generation(0.505, 0.5, 0.2, 0.3)

    assert report.status == ConvergenceStatus.RUNNING
    assert ConvergenceSignal.FITNESS_PLATEAU in report.near
    assert ConvergenceSignal.DIVERSITY_COLLAPSE in report.near
    assert report.warning


def test_terminal_detector_refuses_more_records():
    detector = ConvergenceDetector(_config(max_generations=1))
    detector.record_generation(0.1, 0.1, 0.8, 0.1)
    with pytest.raises(RuntimeError):
        detector.record_generation(0.2, 0.1, 0.8, 0.2)


def test_negative_usage_is_rejected_and_state_is_a_copy():
    detector = ConvergenceDetector(_config())
    with pytest.raises(ValueError):
        detector.add_usage(-1, 0.0)
    detector.state.best_fitness.append(99.0)
    assert detector.state.best_fitness == []


def test_resumed_detector_counts_completed_generations():
    detector = ConvergenceDetector(_config(max_generations=3), completed_generations=2)
    assert detector.record_generation(0.1, 0.1, 0.8, 0.1).reason == ConvergenceSignal.BUDGET


def test_diversity_trend_uses_regression_slope():
    assert regression_slope([0.1, 0.2, 0.3]) == pytest.approx(0.1)
    assert regression_slope([0.4]) == 0.0
    detector = ConvergenceDetector(_config(plateau_window=50, hypervolume_window=50, diversity_threshold=0.0))
    report = None
    for i, diversity in enumerate((0.9, 0.7, 0.5, 0.3), 1):
        report = detector.record_generation(0.1 * i, 0.0, diversity, 0.1 * i)
    assert report.diversity_trend == "decreasing"


def test_mutation_rate_rises_on_low_diversity_and_is_capped():
    scheduler = MutationRateScheduler(base_rate=0.15, min_rate=0.05, max_rate=0.5, diversity_threshold=0.3)
    assert scheduler.update(0.1, [0.5]) == pytest.approx(0.225)
    for _ in range(10):
        scheduler.update(0.1, [0.5])
    assert scheduler.rate == 0.5


def test_mutation_rate_rises_on_warning_and_decays_on_steady_progress():
    scheduler = MutationRateScheduler()
    assert MutationRateScheduler().update(0.9, [0.1], warning=True) == pytest.approx(0.225)
    assert scheduler.update(0.9, [0.1, 0.2]) == pytest.approx(0.15)
    assert scheduler.update(0.9, [0.1, 0.2, 0.3]) == pytest.approx(0.12)
    for _ in range(20):
        scheduler.update(0.9, [0.1, 0.2, 0.3])
    assert scheduler.rate == pytest.approx(0.05)


def test_evaluation_budget_counts_whole_candidates():
    config = _config(max_evaluations=10)

    per_case = ConvergenceDetector(config, units_per_candidate=4)
    report = per_case.record_generation(0.5, 0.5, 0.8, 0.5, evaluations=8)
    assert report.status == ConvergenceStatus.BUDGET_EXHAUSTED
    assert per_case.remaining_evaluations() == 2

    per_unit = ConvergenceDetector(config)
    assert per_unit.record_generation(0.5, 0.5, 0.8, 0.5, evaluations=8).status == ConvergenceStatus.RUNNING
