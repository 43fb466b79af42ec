from gepa_engine.analysis import FailureKind, TrajectoryInspector
from gepa_engine.analysis.trajectory import PatternKind
from gepa_engine.models import EvaluationStatus, Trajectory, TrajectoryStep

from conftest import make_result


def _steps(*reasonings, **step_fields):
    return tuple(
        TrajectoryStep(index=i, reasoning=reasoning, **step_fields)
        for i, reasoning in enumerate(reasonings)
    )


def test_timeout_without_trajectory():
    result = make_result("c", EvaluationStatus.TIMEOUT, reason="timeout after 1.0s")
    insights = TrajectoryInspector().inspect(result)

    assert insights.failed
    assert [p.kind for p in insights.failure_points] == [FailureKind.TIMEOUT]


def test_error_step_and_constraint_violation():
    trajectory = Trajectory(
        steps=(
            TrajectoryStep(index=0, action="call tool", error="KeyError: 'price'"),
            TrajectoryStep(index=1, action="answer", observation="Output is not allowed: too long"),
        ),
        output="long answer",
        expected="short",
    )
    result = make_result("c", EvaluationStatus.FAILED, quality_score=0.0, trajectory=trajectory)
    kinds = [p.kind for p in TrajectoryInspector().inspect(result).failure_points]

    assert FailureKind.ERROR in kinds
    assert FailureKind.CONSTRAINT_VIOLATION in kinds
    assert FailureKind.INCORRECT_OUTPUT in kinds


def test_circular_and_contradicting_reasoning():
    circular = Trajectory(steps=_steps("The total is the sum of items", "The total is the sum of items"))
    contradiction = Trajectory(steps=_steps("The review is positive overall", "The review is not positive overall"))
    inspector = TrajectoryInspector()

    circular_points = inspector.inspect(make_result("c", EvaluationStatus.FAILED, quality_score=0.0, trajectory=circular))
    contradiction_points = inspector.inspect(
        make_result("c", EvaluationStatus.FAILED, quality_score=0.0, trajectory=contradiction)
    )

    assert any(p.kind == FailureKind.CIRCULAR_REASONING and p.step_index == 1 for p in circular_points.failure_points)
    assert any(p.kind == FailureKind.CONTRADICTION for p in contradiction_points.failure_points)


def test_first_uncertain_step_is_marked_as_divergence():
    trajectory = Trajectory(steps=_steps("Read the input", "Maybe the answer is neutral", "I guess neutral"))
    insights = TrajectoryInspector().inspect(
        make_result("c", EvaluationStatus.FAILED, quality_score=0.0, trajectory=trajectory)
    )
    divergence = [p for p in insights.failure_points if p.kind == FailureKind.DIVERGENCE]
    assert [p.step_index for p in divergence] == [1]


def test_success_patterns():
    trajectory = Trajectory(
        steps=_steps("First find the sentiment words", "Then verify the label matches"),
        success=True,
        quality_score=1.0,
        output="positive",
        expected="positive",
    )
    insights = TrajectoryInspector().inspect(make_result("c", EvaluationStatus.SUCCESS, trajectory=trajectory))
    kinds = {p.kind for p in insights.success_patterns}

    assert not insights.failed
    assert insights.failure_points == []
    assert kinds == {PatternKind.VERIFICATION, PatternKind.STEPWISE_REASONING, PatternKind.EXACT_OUTPUT, PatternKind.EFFICIENT}


def test_low_quality_success_is_inspected_for_failures():
    trajectory = Trajectory(success=True, quality_score=0.2, output="meh", expected="great")
    result = make_result("c", EvaluationStatus.SUCCESS, quality_score=0.2, trajectory=trajectory)
    insights = TrajectoryInspector(low_score_threshold=0.5).inspect(result)

    assert [p.kind for p in insights.failure_points] == [FailureKind.INCORRECT_OUTPUT]
    assert "Expected: great" in insights.describe()
