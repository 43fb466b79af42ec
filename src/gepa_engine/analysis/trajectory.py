"""Heuristic inspection of execution trajectories."""

from enum import Enum
from itertools import combinations
from typing import List, Optional

from pydantic import BaseModel, Field

from ..similarity import text_similarity
from ..models import EvaluationResult, EvaluationStatus, Trajectory

HEDGING_MARKERS = ("maybe", "not sure", "i guess", "assume", "unclear", "probably")
VIOLATION_MARKERS = ("violat", "not allowed", "invalid format", "constraint", "forbidden")
VERIFICATION_MARKERS = ("verify", "double-check", "double check", "confirm", "check")
NEGATION_MARKERS = (" not ", "n't", " never ", " no ")
CONTRADICTION_SIMILARITY = 0.6
REPETITION_SIMILARITY = 0.9
EFFICIENT_STEP_COUNT = 2
MAX_EVIDENCE_CHARS = 200


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    ERROR = "error"
    CONSTRAINT_VIOLATION = "constraint_violation"
    CONTRADICTION = "contradiction"
    CIRCULAR_REASONING = "circular_reasoning"
    DIVERGENCE = "divergence"
    INCORRECT_OUTPUT = "incorrect_output"


class PatternKind(str, Enum):
    VERIFICATION = "verification"
    STEPWISE_REASONING = "stepwise_reasoning"
    EXACT_OUTPUT = "exact_output"
    EFFICIENT = "efficient"


class FailurePoint(BaseModel):
    kind: FailureKind
    step_index: Optional[int] = None
    description: str
    evidence: str = ""


class SuccessPattern(BaseModel):
    kind: PatternKind
    description: str


class TrajectoryInsights(BaseModel):
    """What went wrong or right in one evaluation unit."""

    candidate_id: str
    task_case_id: str
    status: EvaluationStatus
    quality_score: float = Field(ge=0.0, le=1.0)
    output: str = ""
    expected: Optional[str] = None
    failure_points: List[FailurePoint] = Field(default_factory=list)
    success_patterns: List[SuccessPattern] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status != EvaluationStatus.SUCCESS

    def describe(self) -> str:
        """Render insights as plain text for a reflection prompt."""
        lines = [f"Status: {self.status.value}, quality={self.quality_score:.2f}"]
        if self.output:
            lines.append(f"Output: {_clip(self.output)}")
        if self.expected is not None:
            lines.append(f"Expected: {_clip(self.expected)}")
        for point in self.failure_points:
            where = f" at step {point.step_index}" if point.step_index is not None else ""
            lines.append(f"Failure ({point.kind.value}{where}): {point.description}")
            if point.evidence:
                lines.append(f"  Evidence: {point.evidence}")
        for pattern in self.success_patterns:
            lines.append(f"Worked ({pattern.kind.value}): {pattern.description}")
        return "\n".join(lines)


def _clip(text: str) -> str:
    text = text.strip()
    return text if len(text) <= MAX_EVIDENCE_CHARS else text[:MAX_EVIDENCE_CHARS] + "..."


def _has_any(text: str, markers) -> bool:
    lowered = f" {text.lower()} "
    return any(marker in lowered for marker in markers)


class TrajectoryInspector:
    """Locates failure points and success patterns in trajectories."""

    def __init__(self, low_score_threshold: float = 0.5):
        """Initialize inspector with the quality threshold for low-scoring runs."""
        self.low_score_threshold = low_score_threshold

    def is_low_scoring(self, result: EvaluationResult) -> bool:
        return not result.success or result.quality_score < self.low_score_threshold

    def inspect(self, result: EvaluationResult) -> TrajectoryInsights:
        """Build insights for one evaluation result."""
        trajectory = result.trajectory
        insights = TrajectoryInsights(
            candidate_id=result.candidate_id,
            task_case_id=result.task_case_id,
            status=result.status,
            quality_score=result.quality_score,
            output=trajectory.output if trajectory else "",
            expected=trajectory.expected if trajectory else None,
        )
        if self.is_low_scoring(result):
            insights.failure_points = self._failure_points(result)
        else:
            insights.success_patterns = self._success_patterns(trajectory)
        return insights

    def _failure_points(self, result: EvaluationResult) -> List[FailurePoint]:
        points: List[FailurePoint] = []
        if result.status == EvaluationStatus.TIMEOUT:
            points.append(FailurePoint(kind=FailureKind.TIMEOUT, description=result.reason or "timed out"))
        elif result.status in (EvaluationStatus.ERROR, EvaluationStatus.CANCELLED):
            points.append(FailurePoint(kind=FailureKind.ERROR, description=result.reason or "execution error"))

        trajectory = result.trajectory
        if trajectory is None:
            return points

        for step in trajectory.steps:
            if step.error:
                points.append(FailurePoint(
                    kind=FailureKind.ERROR,
                    step_index=step.index,
                    description="step raised an error",
                    evidence=_clip(step.error),
                ))
            elif _has_any(step.observation, VIOLATION_MARKERS):
                points.append(FailurePoint(
                    kind=FailureKind.CONSTRAINT_VIOLATION,
                    step_index=step.index,
                    description="observation reports a violated constraint",
                    evidence=_clip(step.observation),
                ))

        points.extend(self._reasoning_issues(trajectory))

        if not any(p.kind == FailureKind.DIVERGENCE for p in points) and trajectory.steps:
            divergent = next(
                (s for s in trajectory.steps if _has_any(s.reasoning, HEDGING_MARKERS)),
                None,
            )
            if divergent is not None:
                points.append(FailurePoint(
                    kind=FailureKind.DIVERGENCE,
                    step_index=divergent.index,
                    description="reasoning became uncertain here",
                    evidence=_clip(divergent.reasoning),
                ))

        if trajectory.expected is not None and trajectory.output.strip() != trajectory.expected.strip():
            points.append(FailurePoint(
                kind=FailureKind.INCORRECT_OUTPUT,
                step_index=trajectory.steps[-1].index if trajectory.steps else None,
                description=f"expected {_clip(trajectory.expected)!r}",
                evidence=_clip(trajectory.output),
            ))
        return points

    def _reasoning_issues(self, trajectory: Trajectory) -> List[FailurePoint]:
        """Repeated or self-contradicting reasoning steps."""
        points = []
        steps = [s for s in trajectory.steps if s.reasoning.strip()]
        for first, second in combinations(steps, 2):
            similarity = text_similarity(first.reasoning, second.reasoning)
            negation_flipped = (
                _has_any(first.reasoning, NEGATION_MARKERS) != _has_any(second.reasoning, NEGATION_MARKERS)
            )
            if similarity >= CONTRADICTION_SIMILARITY and negation_flipped:
                points.append(FailurePoint(
                    kind=FailureKind.CONTRADICTION,
                    step_index=second.index,
                    description=f"contradicts step {first.index}",
                    evidence=_clip(second.reasoning),
                ))
            elif similarity >= REPETITION_SIMILARITY:
                points.append(FailurePoint(
                    kind=FailureKind.CIRCULAR_REASONING,
                    step_index=second.index,
                    description=f"repeats step {first.index}",
                    evidence=_clip(second.reasoning),
                ))
        return points

    def _success_patterns(self, trajectory: Optional[Trajectory]) -> List[SuccessPattern]:
        if trajectory is None:
            return []
        patterns = []
        text = " ".join(f"{s.reasoning} {s.action}" for s in trajectory.steps)
        if _has_any(text, VERIFICATION_MARKERS):
            patterns.append(SuccessPattern(kind=PatternKind.VERIFICATION, description="verified its answer"))
        if sum(1 for s in trajectory.steps if s.reasoning.strip()) >= 2:
            patterns.append(SuccessPattern(kind=PatternKind.STEPWISE_REASONING, description="reasoned step by step"))
        if trajectory.expected is not None and trajectory.output.strip() == trajectory.expected.strip():
            patterns.append(SuccessPattern(kind=PatternKind.EXACT_OUTPUT, description="output matched the expected format exactly"))
        if 0 < len(trajectory.steps) <= EFFICIENT_STEP_COUNT:
            patterns.append(SuccessPattern(kind=PatternKind.EFFICIENT, description=f"finished in {len(trajectory.steps)} steps"))
        return patterns
