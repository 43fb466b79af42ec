"""LLM reflection on execution trajectories."""

import asyncio
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..clients import BaseLLMClient
from ..errors import LLMError, ReflectionFailed
from ..models import EvaluationResult, OptimizationConfig, PromptCandidate, ReflectionSuggestion
from .suggestions import dedupe_suggestions, parse_suggestions, rank_suggestions
from .trajectory import TrajectoryInsights, TrajectoryInspector

MAX_SUCCESS_EXAMPLES = 2
NO_EXAMPLES_TEXT = "(none)"


class ReflectionAnalyzer:
    """Produces ranked improvement suggestions from evaluation results."""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        config: OptimizationConfig,
        inspector: Optional[TrajectoryInspector] = None,
    ):
        """Initialize analyzer with LLM client and reflection settings."""
        self.llm = llm_client
        self.config = config
        self.inspector = inspector or TrajectoryInspector(config.low_score_threshold)

    async def analyze(
        self,
        results: Sequence[EvaluationResult],
        candidates: Mapping[str, PromptCandidate],
    ) -> List[ReflectionSuggestion]:
        """Ranked suggestions for all candidates that have results."""
        by_candidate = await self.analyze_by_candidate(results, candidates)
        return rank_suggestions([s for group in by_candidate.values() for s in group])

    async def analyze_by_candidate(
        self,
        results: Sequence[EvaluationResult],
        candidates: Mapping[str, PromptCandidate],
    ) -> Dict[str, List[ReflectionSuggestion]]:
        """Reflect on each candidate concurrently; failures yield no suggestions."""
        grouped: Dict[str, List[EvaluationResult]] = defaultdict(list)
        for result in results:
            if result.candidate_id in candidates:
                grouped[result.candidate_id].append(result)

        ids = list(grouped)
        outcomes = await asyncio.gather(
            *(self.reflect_candidate(candidates[cid], grouped[cid]) for cid in ids),
            return_exceptions=True,
        )

        suggestions: Dict[str, List[ReflectionSuggestion]] = {}
        for cid, outcome in zip(ids, outcomes):
            if isinstance(outcome, ReflectionFailed):
                logger.warning(f"{outcome}; falling back to generic mutation")
                suggestions[cid] = []
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                suggestions[cid] = outcome
        total = sum(len(s) for s in suggestions.values())
        logger.info(f"Reflection produced {total} suggestions for {len(ids)} candidates")
        return suggestions

    async def reflect_candidate(
        self,
        candidate: PromptCandidate,
        results: Sequence[EvaluationResult],
    ) -> List[ReflectionSuggestion]:
        """Ask the LLM for suggestions for one candidate.

        Raises ReflectionFailed when the LLM errors, times out or returns
        nothing usable.
        """
        insights = [self.inspector.inspect(r) for r in results]
        failures = [i for i in insights if i.failure_points or i.failed]
        successes = [i for i in insights if not i.failed and i.success_patterns]
        if not failures:
            logger.debug(f"No failures to reflect on for {candidate.id}")
            return []

        prompt = self.build_prompt(candidate.text, failures, successes)
        try:
            response = await self.llm.complete(
                prompt,
                system=self.config.reflection_system_prompt,
                temperature=self.config.reflection_temperature,
                timeout=self.config.reflection_timeout_seconds,
                json_mode=True,
            )
        except LLMError as e:
            raise ReflectionFailed(candidate.id, str(e)) from e

        source_confidence = sum(1 for r in results if r.completed) / len(results)
        parsed = parse_suggestions(response, candidate.id, source_confidence)
        ranked = rank_suggestions(dedupe_suggestions(parsed, self.config.suggestion_dedup_threshold))
        logger.debug(f"Reflection for {candidate.id}: {len(ranked)} suggestions")
        return ranked

    def build_prompt(
        self,
        prompt_text: str,
        failures: Sequence[TrajectoryInsights],
        successes: Sequence[TrajectoryInsights],
    ) -> str:
        """Fill the reflection template with failure and success summaries."""
        limit = self.config.max_trajectories_per_reflection
        return self.config.reflection_template.format(
            prompt_text=prompt_text,
            failures_text=self._format(failures[:limit]),
            successes_text=self._format(successes[:MAX_SUCCESS_EXAMPLES]),
            max_suggestions=self.config.max_suggestions_per_parent,
        )

    @staticmethod
    def _format(insights: Sequence[TrajectoryInsights]) -> str:
        if not insights:
            return NO_EXAMPLES_TEXT
        return "\n\n".join(
            f"--- Example {i} ---\n{item.describe()}"
            for i, item in enumerate(insights, 1)
        )
