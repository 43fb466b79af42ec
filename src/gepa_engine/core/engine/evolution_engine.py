"""Evolution engine for offspring generation."""

import random
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from ...errors import MutationExhausted
from ...models import OptimizationConfig, PromptCandidate, ReflectionSuggestion
from ...similarity import max_similarity
from ..crossover import PromptCrossover
from ..io.mutation_logger import MutationLogger
from ..mutator import PromptMutator

MIN_CROSSOVER_POPULATION = 2
SEED_BITS = 32


def _round_robin(
    batches: Sequence[Tuple[PromptCandidate, List[PromptCandidate]]],
) -> Iterator[Tuple[PromptCandidate, PromptCandidate]]:
    """Interleave children so every parent contributes before any contributes twice."""
    depth = max((len(children) for _, children in batches), default=0)
    for i in range(depth):
        for parent, children in batches:
            if i < len(children):
                yield parent, children[i]


class EvolutionEngine:
    """Generate offspring for each generation by mutation and crossover."""

    def __init__(
        self,
        config: OptimizationConfig,
        mutator: PromptMutator,
        crossover: PromptCrossover,
        mutation_logger: Optional[MutationLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize evolution engine."""
        self.config = config
        self.mutator = mutator
        self.crossover = crossover
        self.mutation_logger = mutation_logger
        self.rng = rng or random.Random()

    def generate_offspring(
        self,
        parents: Sequence[PromptCandidate],
        suggestions: Dict[str, List[ReflectionSuggestion]],
        population: Sequence[PromptCandidate],
        generation: int,
        mutation_rate: float,
    ) -> List[PromptCandidate]:
        """Up to the offspring budget of new, sufficiently distinct candidates."""
        if not parents:
            return []
        budget = self.config.offspring_budget
        crossover_count = self._get_crossover_offspring_count(budget, len(parents))
        existing = [c.text for c in population]
        offspring: List[PromptCandidate] = []

        offspring.extend(self._generate_crossover_offspring(parents, crossover_count, existing, generation))
        mutation_budget = budget - len(offspring)
        offspring.extend(
            self._generate_mutation_offspring(
                parents, suggestions, mutation_budget, existing, generation, mutation_rate
            )
        )

        logger.info(
            f"Generation {generation}: {len(offspring)} offspring "
            f"({sum(1 for c in offspring if len(c.lineage.parent_ids) > 1)} crossover)"
        )
        return offspring

    def _generate_mutation_offspring(
        self,
        parents: Sequence[PromptCandidate],
        suggestions: Dict[str, List[ReflectionSuggestion]],
        budget: int,
        existing: List[str],
        generation: int,
        mutation_rate: float,
    ) -> List[PromptCandidate]:
        """Cycle through parents until the mutation budget is spent."""
        offspring: List[PromptCandidate] = []
        rounds = 0
        while len(offspring) < budget and rounds < budget:
            rounds += 1
            batches = [
                (
                    parent,
                    self.mutator.mutate(
                        parent,
                        suggestions.get(parent.id, []) if rounds == 1 else [],
                        rng_seed=self.rng.getrandbits(SEED_BITS),
                        generation=generation,
                        mutation_rate=mutation_rate,
                    ),
                )
                for parent in parents
            ]
            for parent, child in _round_robin(batches):
                if len(offspring) >= budget:
                    break
                accepted = self._accept(child, existing)
                existing.append(accepted.text)
                offspring.append(accepted)
                self._log(accepted, [parent], suggestions.get(parent.id, []))
        return offspring

    def _generate_crossover_offspring(
        self,
        parents: Sequence[PromptCandidate],
        count: int,
        existing: List[str],
        generation: int,
    ) -> List[PromptCandidate]:
        """Recombine random parent pairs; incompatible pairs are skipped."""
        offspring: List[PromptCandidate] = []
        for parent_a, parent_b in self._select_crossover_pairs(parents, count):
            child = self.crossover.crossover(
                parent_a, parent_b, rng_seed=self.rng.getrandbits(SEED_BITS), generation=generation
            )
            if child is None:
                continue
            accepted = self._accept(child, existing)
            existing.append(accepted.text)
            offspring.append(accepted)
            self._log(accepted, [parent_a, parent_b])
        return offspring

    def _accept(self, child: PromptCandidate, existing: Sequence[str]) -> PromptCandidate:
        """Diversify a child; keep the last attempt when retries run out."""
        try:
            return self._diversify(child, existing)
        except MutationExhausted as e:
            logger.warning(f"{e}; accepting offspring {e.offspring.id}")
            return e.offspring

    def _diversify(self, child: PromptCandidate, existing: Sequence[str]) -> PromptCandidate:
        """Perturb a child until it is distinct enough from the population."""
        similarity = max_similarity(child.text, existing)
        attempts = 0
        while similarity > self.config.similarity_threshold:
            if attempts >= self.config.diversity_retry_cap:
                raise MutationExhausted(child, attempts, similarity)
            child = self.mutator.perturb(child, rng_seed=self.rng.getrandbits(SEED_BITS))
            similarity = max_similarity(child.text, existing)
            attempts += 1
        if attempts:
            logger.debug(f"Offspring diversified after {attempts} attempts ({similarity:.1%} similar)")
        return child

    def _select_crossover_pairs(
        self,
        parents: Sequence[PromptCandidate],
        count: int,
    ) -> List[Tuple[PromptCandidate, PromptCandidate]]:
        """Select distinct parent pairs for crossover."""
        if len(parents) < MIN_CROSSOVER_POPULATION or count <= 0:
            return []
        pairs = [
            (parents[i], parents[j])
            for i in range(len(parents))
            for j in range(i + 1, len(parents))
        ]
        self.rng.shuffle(pairs)
        return pairs[:min(count, len(pairs))]

    def _get_crossover_offspring_count(self, budget: int, parent_count: int) -> int:
        """Calculate number of crossover offspring."""
        if self.config.crossover_rate <= 0 or parent_count < MIN_CROSSOVER_POPULATION:
            return 0
        return min(budget, int(round(budget * self.config.crossover_rate)))

    def _log(
        self,
        child: PromptCandidate,
        parents: Sequence[PromptCandidate],
        suggestions: Sequence[ReflectionSuggestion] = (),
    ) -> None:
        if self.mutation_logger:
            self.mutation_logger.append(child, parents, suggestions)
