"""Objective metrics for multi-objective prompt optimization."""

from typing import Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Fixed objective order of every ObjectiveVector; all normalized so higher is better
OBJECTIVE_NAMES: Tuple[str, ...] = ("accuracy", "latency", "cost", "robustness")
MINIMIZED_OBJECTIVES: Tuple[str, ...] = ("latency", "cost", "robustness")


class ObjectiveScores(BaseModel):
    """Raw per-candidate metrics aggregated from evaluation results."""

    model_config = ConfigDict(frozen=True)

    success_rate: float = Field(ge=0.0, le=1.0, description="Successful units ratio")
    mean_latency_ms: float = Field(ge=0.0, description="Average unit duration")
    mean_cost: float = Field(ge=0.0, description="Average token cost per unit")
    score_variance: float = Field(ge=0.0, description="Variance of quality scores")
    mean_quality: float = Field(ge=0.0, le=1.0, description="Average quality score")
    completed: int = Field(ge=0, description="Units that ran to completion")
    total: int = Field(ge=0, description="Units attempted")

    def raw_value(self, objective: str) -> float:
        """Return the raw value backing a named objective."""
        if objective == "accuracy":
            return self.success_rate
        if objective == "latency":
            return self.mean_latency_ms
        if objective == "cost":
            return self.mean_cost
        if objective == "robustness":
            return self.score_variance
        raise KeyError(f"Unknown objective '{objective}'")

    def __str__(self) -> str:
        return (
            f"Acc={self.success_rate:.2%}, Lat={self.mean_latency_ms:.0f}ms, "
            f"Cost={self.mean_cost:.1f}, Var={self.score_variance:.3f}"
        )


def vector_dominates(a: Sequence[float], b: Sequence[float]) -> bool:
    """Check if vector a Pareto-dominates vector b (all objectives maximized)."""
    if len(a) != len(b):
        raise ValueError(f"Objective vectors differ in length: {len(a)} != {len(b)}")
    better_or_equal = all(x >= y for x, y in zip(a, b))
    strictly_better = any(x > y for x, y in zip(a, b))
    return better_or_equal and strictly_better
