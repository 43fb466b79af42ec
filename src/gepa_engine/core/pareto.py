"""Pareto ranking, crowding distance and frontier maintenance."""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..models import ParetoFrontier, PromptCandidate, vector_dominates
from .hypervolume import hypervolume

Vector = Tuple[float, ...]


def dominates(a: Sequence[float], b: Sequence[float]) -> bool:
    """Check if objective vector a Pareto-dominates b."""
    return vector_dominates(a, b)


def non_dominated_sort(vectors: Sequence[Sequence[float]]) -> List[List[int]]:
    """Split vector indices into fronts; front 0 is non-dominated."""
    n = len(vectors)
    dominated_by: List[List[int]] = [[] for _ in range(n)]
    domination_count = [0] * n

    for i in range(n):
        for j in range(i + 1, n):
            if dominates(vectors[i], vectors[j]):
                dominated_by[i].append(j)
                domination_count[j] += 1
            elif dominates(vectors[j], vectors[i]):
                dominated_by[j].append(i)
                domination_count[i] += 1

    fronts: List[List[int]] = []
    current = [i for i in range(n) if domination_count[i] == 0]
    while current:
        fronts.append(current)
        following = []
        for i in current:
            for j in dominated_by[i]:
                domination_count[j] -= 1
                if domination_count[j] == 0:
                    following.append(j)
        current = sorted(following)
    return fronts


def crowding_distances(vectors: Sequence[Sequence[float]]) -> List[float]:
    """Crowding distance of each vector within one front.

    Boundary members of every objective get infinite distance.
    """
    n = len(vectors)
    if n <= 2:
        return [math.inf] * n
    distances = [0.0] * n
    for dim in range(len(vectors[0])):
        order = sorted(range(n), key=lambda i: (vectors[i][dim], i))
        low = vectors[order[0]][dim]
        high = vectors[order[-1]][dim]
        distances[order[0]] = math.inf
        distances[order[-1]] = math.inf
        if high - low <= 0:
            continue
        for pos in range(1, n - 1):
            idx = order[pos]
            if math.isinf(distances[idx]):
                continue
            distances[idx] += (
                vectors[order[pos + 1]][dim] - vectors[order[pos - 1]][dim]
            ) / (high - low)
    return distances


class ParetoFrontierManager:
    """Maintains the Pareto frontier of scored candidates."""

    def __init__(self, frontier_cap: int = 20, reference_point: Optional[Sequence[float]] = None):
        """Initialize manager with frontier size cap and hypervolume reference."""
        self.frontier_cap = frontier_cap
        self.reference_point = reference_point

    def update_frontier(self, population: Sequence[PromptCandidate], generation: int = 0) -> ParetoFrontier:
        """Rank scored candidates and build the capped front-0 snapshot.

        Deterministic for a given population order; unscored candidates are
        ignored.
        """
        scored = [c for c in population if c.objectives is not None]
        if not scored:
            return ParetoFrontier(generation=generation)

        vectors = [tuple(c.objectives) for c in scored]
        fronts = non_dominated_sort(vectors)

        ranks: Dict[str, int] = {}
        population_crowding: Dict[str, float] = {}
        for rank, front in enumerate(fronts):
            distances = crowding_distances([vectors[i] for i in front])
            for i, distance in zip(front, distances):
                ranks[scored[i].id] = rank
                population_crowding[scored[i].id] = distance

        front0 = self._trim([scored[i] for i in fronts[0]])
        front_vectors = [tuple(c.objectives) for c in front0]
        crowding = dict(zip((c.id for c in front0), crowding_distances(front_vectors)))
        volume = hypervolume(front_vectors, self.reference_point)

        logger.debug(
            f"Pareto frontier: {len(front0)} / {len(scored)} candidates, "
            f"{len(fronts)} fronts, HV={volume:.4f}"
        )
        return ParetoFrontier(
            generation=generation,
            candidate_ids=tuple(c.id for c in front0),
            hypervolume=volume,
            crowding_distance=crowding,
            ranks=ranks,
            population_crowding=population_crowding,
            fronts=tuple(tuple(scored[i].id for i in front) for front in fronts),
        )

    def _trim(self, front: List[PromptCandidate]) -> List[PromptCandidate]:
        """Drop least-crowded members until the front fits the cap."""
        members = list(front)
        while len(members) > self.frontier_cap:
            distances = crowding_distances([tuple(c.objectives) for c in members])
            removable = [i for i, d in enumerate(distances) if not math.isinf(d)]
            if self.frontier_cap < 2 or not removable:
                # only boundary points remain
                removable = list(range(len(members)))
            victim = min(removable, key=lambda i: (distances[i], -i))
            logger.debug(f"Trimming frontier member {members[victim].id}")
            del members[victim]
        return members

    def annotate(self, population: Sequence[PromptCandidate], frontier: ParetoFrontier) -> List[PromptCandidate]:
        """Copy rank and crowding distance onto scored candidates."""
        annotated = []
        for candidate in population:
            if candidate.id in frontier.ranks:
                candidate = candidate.with_updates(
                    pareto_rank=frontier.ranks[candidate.id],
                    crowding_distance=frontier.population_crowding.get(candidate.id),
                )
            annotated.append(candidate)
        return annotated

    def frontier_members(self, population: Sequence[PromptCandidate], frontier: ParetoFrontier) -> List[PromptCandidate]:
        """Resolve frontier ids against a population, in frontier order."""
        by_id = {c.id: c for c in population}
        return [by_id[cid] for cid in frontier.candidate_ids if cid in by_id]
