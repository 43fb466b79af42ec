"""Convergence tracking models."""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

DEFAULT_MAX_HISTORY = 100


class ConvergenceSignal(str, Enum):
    BUDGET = "budget"
    HYPERVOLUME_SATURATION = "hypervolume_saturation"
    FITNESS_PLATEAU = "fitness_plateau"
    DIVERSITY_COLLAPSE = "diversity_collapse"


class ConvergenceStatus(str, Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"


class ConvergenceState(BaseModel):
    """Per-generation history and monotonic resource counters."""

    best_fitness: List[float] = Field(default_factory=list)
    mean_fitness: List[float] = Field(default_factory=list)
    diversity: List[float] = Field(default_factory=list)
    hypervolume: List[float] = Field(default_factory=list)
    generations: int = Field(default=0, ge=0)
    evaluations: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)
    low_diversity_streak: int = Field(default=0, ge=0)
    max_history: int = Field(default=DEFAULT_MAX_HISTORY, ge=2)

    def record(
        self,
        best_fitness: float,
        mean_fitness: float,
        diversity: float,
        hypervolume: float,
        evaluations: int,
        cost: float,
        diversity_threshold: float,
    ) -> None:
        """Append one generation of metrics and add resource deltas."""
        if evaluations < 0 or cost < 0:
            raise ValueError("Resource counters only grow; deltas must be non-negative")
        for series, value in (
            (self.best_fitness, best_fitness),
            (self.mean_fitness, mean_fitness),
            (self.diversity, diversity),
            (self.hypervolume, hypervolume),
        ):
            series.append(value)
            if len(series) > self.max_history:
                del series[0]
        self.generations += 1
        self.evaluations += evaluations
        self.cost += cost
        if diversity < diversity_threshold:
            self.low_diversity_streak += 1
        else:
            self.low_diversity_streak = 0

    def add_usage(self, evaluations: int, cost: float) -> None:
        """Account for evaluations that did not produce a generation record."""
        if evaluations < 0 or cost < 0:
            raise ValueError("Resource counters only grow; deltas must be non-negative")
        self.evaluations += evaluations
        self.cost += cost


class ConvergenceReport(BaseModel):
    """Outcome of one convergence check."""

    status: ConvergenceStatus = ConvergenceStatus.RUNNING
    reason: Optional[ConvergenceSignal] = None
    triggered: Tuple[ConvergenceSignal, ...] = ()
    near: Tuple[ConvergenceSignal, ...] = ()
    warning: bool = False
    diversity_trend: str = "stable"

    @property
    def should_stop(self) -> bool:
        return self.status != ConvergenceStatus.RUNNING
