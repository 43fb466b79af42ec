"""Convergence and budget detection across generations."""

import math
from typing import List, Optional, Sequence

from loguru import logger

from ..models import (
    ConvergenceReport,
    ConvergenceSignal,
    ConvergenceState,
    ConvergenceStatus,
    OptimizationConfig,
)
from ..models.convergence import DEFAULT_MAX_HISTORY

NEAR_FACTOR = 1.5
TREND_WINDOW = 5
TREND_SLOPE = 0.01


def regression_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    numerator = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(values))
    denominator = sum((i - mean_x) ** 2 for i in range(n))
    return numerator / denominator if denominator else 0.0


class ConvergenceDetector:
    """Decides after each generation whether to stop.

    Budget exhaustion always wins. Other signals are OR-ed and the reported
    reason follows the configured priority order.
    """

    def __init__(self, config: OptimizationConfig, completed_generations: int = 0, units_per_candidate: int = 1):
        """Initialize detector; resumed runs pass the generations already completed.

        units_per_candidate is the number of evaluations one candidate costs;
        the evaluation budget is spent once less than that remains.
        """
        self.config = config
        self.units_per_candidate = max(1, units_per_candidate)
        self._state = ConvergenceState(
            generations=completed_generations,
            max_history=max(DEFAULT_MAX_HISTORY, config.plateau_window + 1, config.hypervolume_window + 1)
        )
        self.status = ConvergenceStatus.RUNNING

    @property
    def state(self) -> ConvergenceState:
        """Read-only copy of the tracked state."""
        return self._state.model_copy(deep=True)

    def add_usage(self, evaluations: int, cost: float) -> None:
        """Count resources spent outside a completed generation."""
        self._state.add_usage(evaluations, cost)

    def record_generation(
        self,
        best_fitness: float,
        mean_fitness: float,
        diversity: float,
        hypervolume: float,
        evaluations: int = 0,
        cost: float = 0.0,
    ) -> ConvergenceReport:
        """Record one generation's metrics and check for termination."""
        if self.status != ConvergenceStatus.RUNNING:
            raise RuntimeError(f"Detector already terminal: {self.status.value}")
        self._state.record(
            best_fitness=best_fitness,
            mean_fitness=mean_fitness,
            diversity=diversity,
            hypervolume=hypervolume,
            evaluations=evaluations,
            cost=cost,
            diversity_threshold=self.config.diversity_threshold,
        )
        return self.check()

    def check(self) -> ConvergenceReport:
        """Evaluate every signal against the current state."""
        trend = self.diversity_trend()
        if self.budget_exhausted():
            self.status = ConvergenceStatus.BUDGET_EXHAUSTED
            logger.info(f"Budget exhausted after {self._state.generations} generations")
            return ConvergenceReport(
                status=self.status,
                reason=ConvergenceSignal.BUDGET,
                triggered=(ConvergenceSignal.BUDGET,),
                diversity_trend=trend,
            )

        checks = {
            ConvergenceSignal.HYPERVOLUME_SATURATION: self.hypervolume_saturated,
            ConvergenceSignal.FITNESS_PLATEAU: self.fitness_plateaued,
            ConvergenceSignal.DIVERSITY_COLLAPSE: self.diversity_collapsed,
        }
        triggered = tuple(signal for signal, check in checks.items() if check())
        near = tuple(s for s in self._near_signals() if s not in triggered)

        if triggered:
            self.status = ConvergenceStatus.CONVERGED
            reason = self._first_by_priority(triggered)
            logger.info(
                f"Converged: {reason.value} "
                f"(signals: {', '.join(s.value for s in triggered)})"
            )
            return ConvergenceReport(
                status=self.status,
                reason=reason,
                triggered=triggered,
                near=near,
                diversity_trend=trend,
            )

        warning = len(near) >= 2
        if warning:
            logger.warning(
                f"Approaching convergence: {', '.join(s.value for s in near)}"
            )
        return ConvergenceReport(near=near, warning=warning, diversity_trend=trend)

    def _first_by_priority(self, triggered: Sequence[ConvergenceSignal]) -> ConvergenceSignal:
        return next(signal for signal in self.config.convergence_priority if signal in triggered)

    def budget_exhausted(self) -> bool:
        state = self._state
        config = self.config
        if state.generations >= config.max_generations:
            return True
        remaining = self.remaining_evaluations()
        if remaining is not None and remaining < self.units_per_candidate:
            return True
        if config.max_cost is not None and state.cost >= config.max_cost:
            return True
        return False

    def remaining_evaluations(self) -> Optional[int]:
        if self.config.max_evaluations is None:
            return None
        return max(0, self.config.max_evaluations - self._state.evaluations)

    def fitness_plateaued(self) -> bool:
        """Best fitness improved by no more than epsilon over the window."""
        history = self._state.best_fitness
        window = self.config.plateau_window
        if len(history) <= window:
            return False
        return history[-1] - history[-1 - window] <= self.config.plateau_epsilon

    def diversity_collapsed(self) -> bool:
        return self._state.low_diversity_streak >= self.config.diversity_patience

    def hypervolume_saturated(self) -> bool:
        """Relative hypervolume growth over the window fell below epsilon."""
        history = self._state.hypervolume
        window = self.config.hypervolume_window
        if len(history) <= window:
            return False
        return self._growth(history[-1 - window], history[-1]) < self.config.hypervolume_epsilon

    @staticmethod
    def _growth(before: float, after: float) -> float:
        if before > 0:
            return (after - before) / before
        return math.inf if after > 0 else 0.0

    def _near_signals(self) -> List[ConvergenceSignal]:
        """Signals within half their threshold of triggering."""
        near = []
        config = self.config

        best = self._state.best_fitness
        half_window = max(1, config.plateau_window // 2)
        if len(best) > half_window:
            improvement = best[-1] - best[-1 - half_window]
            if improvement <= config.plateau_epsilon * NEAR_FACTOR:
                near.append(ConvergenceSignal.FITNESS_PLATEAU)

        diversity = self._state.diversity
        if diversity and diversity[-1] < config.diversity_threshold * NEAR_FACTOR:
            near.append(ConvergenceSignal.DIVERSITY_COLLAPSE)

        volumes = self._state.hypervolume
        half_window = max(1, config.hypervolume_window // 2)
        if len(volumes) > half_window:
            growth = self._growth(volumes[-1 - half_window], volumes[-1])
            if growth < config.hypervolume_epsilon * NEAR_FACTOR:
                near.append(ConvergenceSignal.HYPERVOLUME_SATURATION)
        return near

    def diversity_trend(self) -> str:
        """'increasing', 'decreasing' or 'stable' over recent generations."""
        slope = regression_slope(self._state.diversity[-TREND_WINDOW:])
        if slope > TREND_SLOPE:
            return "increasing"
        if slope < -TREND_SLOPE:
            return "decreasing"
        return "stable"
