"""Data models for GEPA optimization."""

from .candidate import Lineage, MutationOperator, PromptCandidate
from .config import PROFILE_PRESETS, SUPPORTED_PROFILES, OptimizationConfig
from .convergence import (
    ConvergenceReport,
    ConvergenceSignal,
    ConvergenceState,
    ConvergenceStatus,
)
from .dataset import TaskCase, Trajectory, TrajectoryStep, load_task_cases
from .evaluation import EvaluationResult, EvaluationStatus
from .frontier import ParetoFrontier
from .metrics import OBJECTIVE_NAMES, ObjectiveScores, vector_dominates
from .population import Population
from .result import GenerationSummary, OptimizationResult, OptimizerPhase, TerminationReason
from .suggestion import ReflectionSuggestion, SuggestionCategory

__all__ = [
    "PromptCandidate",
    "Lineage",
    "MutationOperator",
    "OptimizationConfig",
    "PROFILE_PRESETS",
    "SUPPORTED_PROFILES",
    "ConvergenceReport",
    "ConvergenceSignal",
    "ConvergenceState",
    "ConvergenceStatus",
    "TaskCase",
    "Trajectory",
    "TrajectoryStep",
    "load_task_cases",
    "EvaluationResult",
    "EvaluationStatus",
    "ParetoFrontier",
    "OBJECTIVE_NAMES",
    "ObjectiveScores",
    "vector_dominates",
    "Population",
    "GenerationSummary",
    "OptimizationResult",
    "OptimizerPhase",
    "TerminationReason",
    "ReflectionSuggestion",
    "SuggestionCategory",
]
