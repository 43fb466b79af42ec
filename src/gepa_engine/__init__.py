"""GEPA - Genetic-Pareto Prompt Optimizer."""

from .analysis import ReflectionAnalyzer, TrajectoryInspector
from .clients import BaseLLMClient, LLMClient
from .config import Settings, configure_logging, get_settings
from .core import (
    ConvergenceDetector,
    EvaluationScheduler,
    ExecutionHarness,
    GEPAOptimizer,
    JsonPopulationStore,
    LLMExecutionHarness,
    MultiObjectiveEvaluator,
    ParetoFrontierManager,
    PopulationStore,
    PromptCrossover,
    PromptMutator,
    SelectionMechanism,
    default_compare_fn,
)
from .errors import (
    EvaluationFailed,
    GEPAError,
    InsufficientResults,
    LLMError,
    MutationExhausted,
    PersistenceError,
    ReflectionFailed,
)
from .models import (
    EvaluationResult,
    OptimizationConfig,
    OptimizationResult,
    ParetoFrontier,
    PromptCandidate,
    ReflectionSuggestion,
    TaskCase,
    TerminationReason,
    Trajectory,
    TrajectoryStep,
    load_task_cases,
)
from .visualization import LineageVisualizer

__version__ = "0.1.0"

__all__ = [
    "GEPAOptimizer",
    "ExecutionHarness",
    "LLMExecutionHarness",
    "EvaluationScheduler",
    "ReflectionAnalyzer",
    "TrajectoryInspector",
    "PromptMutator",
    "PromptCrossover",
    "MultiObjectiveEvaluator",
    "ParetoFrontierManager",
    "SelectionMechanism",
    "ConvergenceDetector",
    "PopulationStore",
    "JsonPopulationStore",
    "BaseLLMClient",
    "LLMClient",
    "LineageVisualizer",
    "Settings",
    "get_settings",
    "configure_logging",
    "OptimizationConfig",
    "OptimizationResult",
    "ParetoFrontier",
    "PromptCandidate",
    "ReflectionSuggestion",
    "TaskCase",
    "TerminationReason",
    "Trajectory",
    "TrajectoryStep",
    "load_task_cases",
    "default_compare_fn",
    "GEPAError",
    "EvaluationFailed",
    "InsufficientResults",
    "ReflectionFailed",
    "MutationExhausted",
    "PersistenceError",
    "LLMError",
]
