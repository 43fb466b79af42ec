"""Adaptive mutation rate scheduling."""

from typing import Sequence

from loguru import logger

INCREASE_FACTOR = 1.5
DECAY_FACTOR = 0.8
STEADY_GENERATIONS = 2


class MutationRateScheduler:
    """Raises the mutation rate when diversity drops, lowers it during steady progress."""

    def __init__(
        self,
        base_rate: float = 0.15,
        min_rate: float = 0.05,
        max_rate: float = 0.5,
        diversity_threshold: float = 0.3,
        improvement_epsilon: float = 0.01,
    ):
        """Initialize scheduler with rate bounds and adaptation thresholds."""
        self.base_rate = base_rate
        self.min_rate = min_rate
        self.max_rate = max_rate
        self.diversity_threshold = diversity_threshold
        self.improvement_epsilon = improvement_epsilon
        self.rate = base_rate

    def update(self, diversity: float, best_fitness: Sequence[float], warning: bool = False) -> float:
        """Adapt the rate to the latest generation and return it."""
        previous = self.rate
        if warning or diversity < self.diversity_threshold:
            self.rate = min(self.max_rate, self.rate * INCREASE_FACTOR)
        elif self._steady(best_fitness):
            self.rate = max(self.min_rate, self.rate * DECAY_FACTOR)

        if self.rate != previous:
            logger.debug(f"Mutation rate {previous:.3f} -> {self.rate:.3f} (diversity={diversity:.3f})")
        return self.rate

    def _steady(self, best_fitness: Sequence[float]) -> bool:
        if len(best_fitness) <= STEADY_GENERATIONS:
            return False
        recent = best_fitness[-(STEADY_GENERATIONS + 1):]
        return all(b - a > self.improvement_epsilon for a, b in zip(recent, recent[1:]))
