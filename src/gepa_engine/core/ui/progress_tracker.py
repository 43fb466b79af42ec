"""Progress tracker for optimization runs using tqdm."""

import time
from types import TracebackType
from typing import Optional, Type

from tqdm import tqdm


class ProgressTracker:
    """Track optimization progress with tqdm."""

    def __init__(self, num_generations: int, disable: bool = False):
        """Initialize progress tracker."""
        self.num_generations = num_generations
        self.disable = disable
        self.baseline_fitness: Optional[float] = None
        self.best_fitness = 0.0
        self._pbar: Optional[tqdm] = None
        self._start_time: Optional[float] = None

    def start(self) -> None:
        """Start the progress bar."""
        self._start_time = time.time()
        self._pbar = tqdm(
            total=self.num_generations,
            desc="GEPA Optimization",
            unit="gen",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
            dynamic_ncols=True,
            disable=self.disable,
        )

    def close(self) -> None:
        """Close the progress bar."""
        if self._pbar:
            self._pbar.close()
            self._pbar = None

    def __enter__(self) -> "ProgressTracker":
        """Enter progress context."""
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        """Exit progress context."""
        self.close()

    def set_start_generation(self, start_generation: int) -> None:
        """Advance progress for resumed runs."""
        if start_generation > 0 and self._pbar is not None:
            self._pbar.update(min(start_generation, self.num_generations))

    def update_generation(self, generation: int, best_fitness: float, hypervolume: float, mutation_rate: float) -> None:
        """Update generation progress with fitness and hypervolume."""
        if self.baseline_fitness is None:
            self.baseline_fitness = best_fitness
        self.best_fitness = max(self.best_fitness, best_fitness)
        improvement = (self.best_fitness - self.baseline_fitness) * 100
        if self._pbar:
            self._pbar.set_postfix({
                "gen": f"{generation + 1}/{self.num_generations}",
                "best": f"{self.best_fitness:.1%}",
                "impr": f"{improvement:+.1f}%",
                "hv": f"{hypervolume:.3f}",
                "mut": f"{mutation_rate:.2f}",
            })

    def advance(self, amount: int = 1) -> None:
        """Advance progress by amount."""
        if self._pbar:
            self._pbar.update(amount)
