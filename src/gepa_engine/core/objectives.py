"""Multi-objective scoring of evaluation results."""

import math
from statistics import mean, pvariance
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from ..models import (
    OBJECTIVE_NAMES,
    EvaluationResult,
    EvaluationStatus,
    ObjectiveScores,
    PromptCandidate,
)
from ..models.metrics import MINIMIZED_OBJECTIVES

DEGENERATE_RANGE_VALUE = 0.5
RANGE_EPSILON = 1e-12


class MultiObjectiveEvaluator:
    """Turns evaluation results into raw and normalized objective vectors.

    Normalization is min-max over the evaluated population, inverted for
    minimized objectives, so every dimension of an ObjectiveVector is in
    [0, 1] with higher being better.
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        """Initialize evaluator with optional objective weights for display ordering."""
        self.weights = {name: 1.0 for name in OBJECTIVE_NAMES}
        if weights:
            self.weights.update(weights)

    def score(self, results: Sequence[EvaluationResult]) -> ObjectiveScores:
        """Aggregate one candidate's results into raw objective scores."""
        attempted = [r for r in results if r.status != EvaluationStatus.CANCELLED] or list(results)
        completed = [r for r in attempted if r.completed]
        total = len(attempted)

        success_rate = sum(1 for r in attempted if r.success) / total if total else 0.0
        latency = mean(r.duration_ms for r in attempted) if attempted else 0.0
        cost = mean(r.token_cost for r in completed) if completed else 0.0
        qualities = [r.quality_score for r in completed]
        variance = pvariance(qualities) if len(qualities) > 1 else 0.0

        return ObjectiveScores(
            success_rate=success_rate,
            mean_latency_ms=latency,
            mean_cost=cost,
            score_variance=variance,
            mean_quality=mean(qualities) if qualities else 0.0,
            completed=len(completed),
            total=total,
        )

    def normalize(self, raw: Mapping[str, ObjectiveScores]) -> Dict[str, Tuple[float, ...]]:
        """Normalize raw scores of a population into objective vectors.

        Candidates with no completed results get an all-zeros vector and do
        not influence the normalization range.
        """
        scored = {cid: s for cid, s in raw.items() if s.completed > 0}
        bounds: Dict[str, Tuple[float, float]] = {}
        for name in OBJECTIVE_NAMES:
            values = [s.raw_value(name) for s in scored.values()]
            if values:
                bounds[name] = (min(values), max(values))

        vectors: Dict[str, Tuple[float, ...]] = {}
        for cid, scores in raw.items():
            if cid not in scored:
                vectors[cid] = tuple(0.0 for _ in OBJECTIVE_NAMES)
                continue
            vector = []
            for name in OBJECTIVE_NAMES:
                low, high = bounds[name]
                if high - low < RANGE_EPSILON:
                    vector.append(DEGENERATE_RANGE_VALUE)
                    continue
                value = (scores.raw_value(name) - low) / (high - low)
                if name in MINIMIZED_OBJECTIVES:
                    value = 1.0 - value
                vector.append(min(1.0, max(0.0, value)))
            vectors[cid] = tuple(vector)
        return vectors

    def score_population(
        self,
        candidates: Sequence[PromptCandidate],
        results_by_candidate: Mapping[str, Sequence[EvaluationResult]],
    ) -> List[PromptCandidate]:
        """Return copies of candidates with raw scores and normalized vectors.

        Candidates with new results are (re)scored; previously scored
        candidates keep their raw scores. All vectors are renormalized.
        """
        updated = []
        for candidate in candidates:
            if candidate.id in results_by_candidate:
                candidate = candidate.with_updates(
                    raw_scores=self.score(results_by_candidate[candidate.id])
                )
            updated.append(candidate)

        raw = {c.id: c.raw_scores for c in updated if c.raw_scores is not None}
        vectors = self.normalize(raw)
        logger.debug(f"Normalized objectives for {len(vectors)} candidates")
        return [
            c.with_updates(objectives=vectors[c.id]) if c.id in vectors else c
            for c in updated
        ]

    def weighted_score(self, vector: Sequence[float]) -> float:
        """Weighted sum of a normalized objective vector."""
        total_weight = sum(self.weights.values())
        if total_weight <= 0 or not vector:
            return 0.0
        return sum(
            self.weights.get(name, 0.0) * value
            for name, value in zip(OBJECTIVE_NAMES, vector)
        ) / total_weight

    def rank_for_display(self, candidates: Sequence[PromptCandidate]) -> List[PromptCandidate]:
        """Order candidates by weighted score; ties keep insertion order."""
        return sorted(
            candidates,
            key=lambda c: -self.weighted_score(c.objectives) if c.objectives else math.inf,
        )
