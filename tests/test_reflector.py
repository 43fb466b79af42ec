import asyncio
import json

import pytest

from gepa_engine.analysis import ReflectionAnalyzer
from gepa_engine.errors import LLMError, ReflectionFailed
from gepa_engine.models import EvaluationStatus, OptimizationConfig, SuggestionCategory, Trajectory

from conftest import FakeLLMClient, make_candidate, make_result

SUGGESTIONS = json.dumps({
    "suggestions": [
        {"category": "constraint", "rationale": "Answers were too long", "proposed_text": "Reply with one word", "confidence": 0.9},
        {"category": "example", "rationale": "No labelled example", "confidence": 0.4},
    ]
})


def _failed(candidate_id, case_id="case-0"):
    trajectory = Trajectory(output="it is probably good", expected="positive")
    return make_result(
        candidate_id, EvaluationStatus.FAILED, quality_score=0.0, case_id=case_id, trajectory=trajectory
    )


def test_reflect_candidate_returns_ranked_suggestions():
    candidate = make_candidate("Classify the review.")
    llm = FakeLLMClient([SUGGESTIONS])
    analyzer = ReflectionAnalyzer(llm, OptimizationConfig())
    results = [_failed(candidate.id), make_result(candidate.id, EvaluationStatus.TIMEOUT, case_id="case-1")]

    suggestions = asyncio.run(analyzer.reflect_candidate(candidate, results))

    assert [s.category for s in suggestions] == [SuggestionCategory.CONSTRAINT, SuggestionCategory.EXAMPLE]
    assert suggestions[0].source_confidence == pytest.approx(0.5)
    prompt = llm.calls[0][-1]["content"]
    assert "Classify the review." in prompt
    assert "Expected: positive" in prompt
    assert llm.calls[0][0]["role"] == "system"


def test_no_failures_means_no_llm_call():
    candidate = make_candidate()
    llm = FakeLLMClient([SUGGESTIONS])
    success = make_result(candidate.id, trajectory=Trajectory(success=True, quality_score=1.0, output="ok", expected="ok"))

    suggestions = asyncio.run(ReflectionAnalyzer(llm, OptimizationConfig()).reflect_candidate(candidate, [success]))

    assert suggestions == []
    assert llm.calls == []


def test_llm_error_raises_reflection_failed():
    candidate = make_candidate()
    analyzer = ReflectionAnalyzer(FakeLLMClient(error=LLMError("server down")), OptimizationConfig())
    with pytest.raises(ReflectionFailed):
        asyncio.run(analyzer.reflect_candidate(candidate, [_failed(candidate.id)]))


def test_analyze_by_candidate_falls_back_to_empty_on_failure():
    good, bad = make_candidate("good prompt"), make_candidate("bad prompt")
    llm = FakeLLMClient(default=SUGGESTIONS)
    analyzer = ReflectionAnalyzer(llm, OptimizationConfig())

    async def run():
        slow = ReflectionAnalyzer(FakeLLMClient(default=SUGGESTIONS, delay=1.0), OptimizationConfig(reflection_timeout_seconds=0.05))
        timed_out = await slow.analyze_by_candidate([_failed(bad.id)], {bad.id: bad})
        grouped = await analyzer.analyze_by_candidate(
            [_failed(good.id), _failed(bad.id)], {good.id: good, bad.id: bad}
        )
        return timed_out, grouped

    timed_out, grouped = asyncio.run(run())

    assert timed_out == {bad.id: []}
    assert set(grouped) == {good.id, bad.id}
    assert all(len(group) == 2 for group in grouped.values())


def test_analyze_flattens_and_ranks():
    first, second = make_candidate("first"), make_candidate("second")
    llm = FakeLLMClient(default=SUGGESTIONS)
    suggestions = asyncio.run(
        ReflectionAnalyzer(llm, OptimizationConfig()).analyze(
            [_failed(first.id), _failed(second.id)], {first.id: first, second.id: second}
        )
    )
    assert len(suggestions) == 4
    assert suggestions[0].confidence == 0.9


def test_unparseable_response_yields_no_suggestions():
    candidate = make_candidate()
    analyzer = ReflectionAnalyzer(FakeLLMClient(default="No comment."), OptimizationConfig())
    grouped = asyncio.run(analyzer.analyze_by_candidate([_failed(candidate.id)], {candidate.id: candidate}))
    assert grouped == {candidate.id: []}
