"""Parent selection: elitism, crowded tournaments and fitness sharing."""

import math
import random
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..models import ParetoFrontier, PromptCandidate


def sharing(distance: float, radius: float, alpha: float) -> float:
    """Sharing function: 1 - (d / r) ** alpha inside the niche, else 0."""
    if distance >= radius:
        return 0.0
    return 1.0 - (distance / radius) ** alpha


def euclidean(a: Sequence[float], b: Sequence[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


class SelectionMechanism:
    """Chooses the next generation's parent set."""

    def __init__(
        self,
        tournament_size: int = 3,
        elite_cap: int = 5,
        niche_radius: float = 0.1,
        sharing_alpha: float = 1.0,
        rng: Optional[random.Random] = None,
    ):
        """Initialize selection with tournament, elitism and niching parameters."""
        self.tournament_size = tournament_size
        self.elite_cap = elite_cap
        self.niche_radius = niche_radius
        self.sharing_alpha = sharing_alpha
        self.rng = rng or random.Random()

    def niche_counts(self, candidates: Sequence[PromptCandidate]) -> Dict[str, float]:
        """Niche count of each candidate in objective space, self included."""
        counts = {}
        for candidate in candidates:
            counts[candidate.id] = sum(
                sharing(
                    euclidean(candidate.objectives, other.objectives),
                    self.niche_radius,
                    self.sharing_alpha,
                )
                for other in candidates
            )
        return counts

    def elites(
        self,
        candidates: Sequence[PromptCandidate],
        frontier: ParetoFrontier,
        cap: int,
    ) -> List[PromptCandidate]:
        """Front-0 members carried over unchanged, most isolated first."""
        if cap <= 0:
            return []
        front = [c for c in candidates if frontier.ranks.get(c.id) == 0]
        front.sort(key=lambda c: -frontier.population_crowding.get(c.id, 0.0))
        return front[:cap]

    def tournament(
        self,
        pool: Sequence[PromptCandidate],
        frontier: ParetoFrontier,
        niche_counts: Dict[str, float],
    ) -> PromptCandidate:
        """Pick one winner from a niche-weighted tournament."""
        entrants = self._draw(pool, niche_counts, min(self.tournament_size, len(pool)))

        def key(c: PromptCandidate):
            return (frontier.ranks.get(c.id, math.inf), -frontier.population_crowding.get(c.id, 0.0))

        best_key = min(key(c) for c in entrants)
        best = [c for c in entrants if key(c) == best_key]
        return self.rng.choice(best)

    def _draw(
        self,
        pool: Sequence[PromptCandidate],
        niche_counts: Dict[str, float],
        k: int,
    ) -> List[PromptCandidate]:
        """Weighted sampling without replacement; crowded niches are drawn less."""
        remaining = list(pool)
        drawn = []
        for _ in range(k):
            weights = [1.0 / max(niche_counts.get(c.id, 1.0), 1.0) for c in remaining]
            choice = self.rng.choices(range(len(remaining)), weights=weights, k=1)[0]
            drawn.append(remaining.pop(choice))
        return drawn

    def select(
        self,
        population: Sequence[PromptCandidate],
        frontier: ParetoFrontier,
        count: int,
    ) -> List[PromptCandidate]:
        """Select up to count distinct parents: elites first, then tournaments."""
        scored = [c for c in population if c.objectives is not None and c.id in frontier.ranks]
        if count <= 0 or not scored:
            return []

        elites = self.elites(scored, frontier, min(count, self.elite_cap))
        selected = list(elites)
        chosen = {c.id for c in selected}
        pool = [c for c in scored if c.id not in chosen]
        niche = self.niche_counts(scored)

        while len(selected) < count and pool:
            winner = self.tournament(pool, frontier, niche)
            selected.append(winner)
            pool = [c for c in pool if c.id != winner.id]

        logger.debug(
            f"Selected {len(selected)} parents "
            f"({len(elites)} elites)"
        )
        return selected
