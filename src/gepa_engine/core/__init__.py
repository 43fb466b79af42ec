"""Core GEPA optimization engine."""

from .convergence import ConvergenceDetector
from .crossover import PromptCrossover
from .engine.optimizer import GEPAOptimizer
from .harness import ExecutionHarness, LLMExecutionHarness, default_compare_fn
from .hypervolume import contributions, hypervolume
from .mutation_rate import MutationRateScheduler
from .mutator import PromptMutator
from .objectives import MultiObjectiveEvaluator
from .pareto import ParetoFrontierManager, crowding_distances, non_dominated_sort
from .scheduler import EvaluationScheduler
from .selection import SelectionMechanism
from .state.state_manager import JsonPopulationStore, PopulationStore

__all__ = [
    "GEPAOptimizer",
    "ConvergenceDetector",
    "PromptCrossover",
    "ExecutionHarness",
    "LLMExecutionHarness",
    "default_compare_fn",
    "hypervolume",
    "contributions",
    "MutationRateScheduler",
    "PromptMutator",
    "MultiObjectiveEvaluator",
    "ParetoFrontierManager",
    "crowding_distances",
    "non_dominated_sort",
    "EvaluationScheduler",
    "SelectionMechanism",
    "JsonPopulationStore",
    "PopulationStore",
]
