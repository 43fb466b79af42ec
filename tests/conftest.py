import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from gepa_engine.clients import BaseLLMClient
from gepa_engine.errors import EvaluationFailed
from gepa_engine.models import (
    EvaluationResult,
    EvaluationStatus,
    ObjectiveScores,
    OptimizationConfig,
    PromptCandidate,
    TaskCase,
    Trajectory,
    TrajectoryStep,
)

KEYWORDS = ("step by step", "verify", "concise", "format")


class FakeLLMClient(BaseLLMClient):
    """Returns scripted responses in order, then the default response."""

    def __init__(self, responses: Sequence[str] = (), default: str = "", error: Optional[Exception] = None, delay: float = 0.0):
        self.responses = list(responses)
        self.default = default
        self.error = error
        self.delay = delay
        self.calls: List[List[Dict[str, str]]] = []

    def _next(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0) if self.responses else self.default

    async def achat_completion(self, messages, temperature=None, max_tokens=None, json_mode=False, **kwargs):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next(messages)

    def chat_completion(self, messages, temperature=None, max_tokens=None, json_mode=False, **kwargs):
        return self._next(messages)


def keyword_trajectory(candidate: PromptCandidate, case: TaskCase) -> Trajectory:
    """Succeeds when the prompt mentions the keyword the case asks for."""
    keyword = case.input["keyword"]
    success = keyword in candidate.text.lower()
    output = case.expected if success else "unsure"
    return Trajectory(
        steps=(
            TrajectoryStep(index=0, reasoning=f"Looking for {keyword}", action="scan", observation="done"),
        ),
        success=success,
        quality_score=1.0 if success else 0.2,
        token_cost=float(len(candidate.text) // 4),
        output=output,
        expected=case.expected,
    )


async def keyword_harness(candidate: PromptCandidate, case: TaskCase) -> Trajectory:
    return keyword_trajectory(candidate, case)


def make_cases(count: int = 4) -> List[TaskCase]:
    return [
        TaskCase(id=f"case-{i}", input={"keyword": KEYWORDS[i % len(KEYWORDS)]}, expected="ok")
        for i in range(count)
    ]


def make_candidate(
    text: str = "Answer the question.",
    objectives: Optional[Sequence[float]] = None,
    success_rate: float = 0.5,
    generation: int = 0,
    candidate_id: Optional[str] = None,
) -> PromptCandidate:
    fields = {"text": text, "generation": generation}
    if candidate_id is not None:
        fields["id"] = candidate_id
    if objectives is not None:
        fields["objectives"] = tuple(objectives)
        fields["raw_scores"] = ObjectiveScores(
            success_rate=success_rate,
            mean_latency_ms=10.0,
            mean_cost=5.0,
            score_variance=0.0,
            mean_quality=success_rate,
            completed=4,
            total=4,
        )
    return PromptCandidate(**fields)


def make_result(
    candidate_id: str,
    status: EvaluationStatus = EvaluationStatus.SUCCESS,
    duration_ms: float = 100.0,
    token_cost: float = 10.0,
    quality_score: float = 1.0,
    case_id: str = "case-0",
    trajectory: Optional[Trajectory] = None,
    reason: Optional[str] = None,
) -> EvaluationResult:
    return EvaluationResult(
        candidate_id=candidate_id,
        task_case_id=case_id,
        status=status,
        duration_ms=duration_ms,
        token_cost=token_cost,
        quality_score=quality_score,
        trajectory=trajectory,
        reason=reason,
    )


@pytest.fixture
def task_cases() -> List[TaskCase]:
    return make_cases()


@pytest.fixture
def fast_config(tmp_path) -> OptimizationConfig:
    return OptimizationConfig(
        runs_dir=str(tmp_path / "runs"),
        seed=7,
        population_size=6,
        max_generations=3,
        concurrency=4,
        eval_timeout_seconds=5.0,
        diversity_threshold=0.0,
        similarity_threshold=0.99,
    )


@pytest.fixture
def failing_harness():
    async def harness(candidate, case):
        raise EvaluationFailed("tool crashed")

    return harness
