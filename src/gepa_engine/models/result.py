"""Optimization result models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .candidate import PromptCandidate
from .convergence import ConvergenceSignal


class OptimizerPhase(str, Enum):
    INITIALIZING = "initializing"
    EVALUATING = "evaluating"
    REFLECTING = "reflecting"
    MUTATING = "mutating"
    SELECTING = "selecting"
    CHECKING_CONVERGENCE = "checking_convergence"
    TERMINATED = "terminated"


class TerminationReason(str, Enum):
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"


class GenerationSummary(BaseModel):
    """Metrics recorded for one completed generation."""

    generation: int
    population_size: int
    evaluated_units: int
    completed_units: int
    best_fitness: float
    mean_fitness: float
    diversity: float
    hypervolume: float
    frontier_size: int
    mutation_rate: float
    offspring: int
    warning: bool = False


class OptimizationResult(BaseModel):
    """GEPA optimization result with final Pareto frontier."""

    run_id: str
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    termination: TerminationReason
    convergence_signal: Optional[ConvergenceSignal] = None
    failure_reason: Optional[str] = None
    generations_completed: int = 0
    pareto_frontier: List[PromptCandidate] = Field(default_factory=list)
    recommended_prompt: Optional[PromptCandidate] = None
    hypervolume: float = 0.0
    total_evaluations: int = 0
    total_cost: float = 0.0
    history: List[GenerationSummary] = Field(default_factory=list)
    checkpoint_errors: List[str] = Field(default_factory=list)
