"""GEPA Optimizer - Main genetic-Pareto optimization algorithm."""

import asyncio
import random
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from loguru import logger
from rich.console import Console

from ...analysis import ReflectionAnalyzer
from ...clients import BaseLLMClient
from ...errors import InsufficientResults, PersistenceError
from ...models import (
    ConvergenceReport,
    ConvergenceSignal,
    ConvergenceStatus,
    EvaluationResult,
    EvaluationStatus,
    GenerationSummary,
    Lineage,
    OBJECTIVE_NAMES,
    MutationOperator,
    OptimizationConfig,
    OptimizationResult,
    OptimizerPhase,
    ParetoFrontier,
    Population,
    PromptCandidate,
    ReflectionSuggestion,
    TaskCase,
    TerminationReason,
)
from ...similarity import population_diversity
from ...visualization import LineageVisualizer
from ..convergence import ConvergenceDetector
from ..crossover import PromptCrossover
from ..harness import ExecutionHarness
from ..io.mutation_logger import MutationLogger
from ..io.result_builder import ResultBuilder
from ..mutation_rate import MutationRateScheduler
from ..mutator import PromptMutator
from ..objectives import MultiObjectiveEvaluator
from ..pareto import ParetoFrontierManager
from ..scheduler import EvaluationScheduler
from ..selection import SelectionMechanism
from ..state.state_manager import JsonPopulationStore, PopulationStore
from ..ui.progress_tracker import ProgressTracker
from .evolution_engine import EvolutionEngine

SEED_BITS = 32
EVALUATION_ATTEMPTS = 2
CANCELLED_REASON = "cancelled"
# below the normalized worst so candidates worst on one objective still add volume
HYPERVOLUME_REFERENCE = -0.1


class GEPAOptimizer:
    """Genetic-Pareto optimizer for prompt engineering.

    Drives the generation loop Evaluating -> Reflecting -> Mutating ->
    Selecting -> CheckingConvergence until convergence, budget exhaustion
    or failure. It is the only writer of the population.
    """

    def __init__(
        self,
        harness: Union[ExecutionHarness, Callable[..., Any]],
        config: OptimizationConfig,
        llm_client: Optional[BaseLLMClient] = None,
        store: Optional[PopulationStore] = None,
        visualizer: Optional[LineageVisualizer] = None,
        console: Optional[Console] = None,
        show_progress: bool = True,
    ):
        """Initialize GEPA optimizer.

        Without an llm_client, reflection is skipped and every offspring comes
        from generic mutation operators.
        """
        self.config = config
        self.console = console or Console()
        self.show_progress = show_progress
        self.rng = random.Random(config.seed)

        self.scheduler = EvaluationScheduler(harness, config.min_success_fraction)
        self.objectives = MultiObjectiveEvaluator(config.objective_weights)
        self.frontier_manager = ParetoFrontierManager(
            config.frontier_cap, reference_point=(HYPERVOLUME_REFERENCE,) * len(OBJECTIVE_NAMES)
        )
        self.selection = SelectionMechanism(
            tournament_size=config.tournament_size,
            elite_cap=config.elite_cap,
            niche_radius=config.niche_radius,
            sharing_alpha=config.sharing_alpha,
            rng=random.Random(self.rng.getrandbits(SEED_BITS)),
        )
        self.reflector = ReflectionAnalyzer(llm_client, config) if llm_client else None
        self.mutator = PromptMutator(config.max_suggestions_per_parent)
        self.crossover = PromptCrossover()
        self.mutation_logger = MutationLogger(Path(config.runs_dir)) if config.runs_dir else None
        self.evolution_engine = EvolutionEngine(
            config=config,
            mutator=self.mutator,
            crossover=self.crossover,
            mutation_logger=self.mutation_logger,
            rng=random.Random(self.rng.getrandbits(SEED_BITS)),
        )
        self.result_builder = ResultBuilder(self.objectives, self.console)
        self.visualizer = visualizer
        self.store = store

        self.run_id: Optional[str] = None
        self.phase = OptimizerPhase.INITIALIZING
        self.phase_history: List[OptimizerPhase] = []
        self.population: Optional[Population] = None
        self.frontier: Optional[ParetoFrontier] = None
        self.detector = ConvergenceDetector(config)
        self.rate_scheduler = self._new_rate_scheduler()
        self.history: List[GenerationSummary] = []
        self.checkpoint_errors: List[str] = []
        self._parents: List[str] = []
        self._results: Dict[str, List[EvaluationResult]] = {}
        self._scored: List[PromptCandidate] = []
        self._pending_usage: Tuple[int, float] = (0, 0.0)

    def optimize(
        self,
        seed_prompts: Sequence[str],
        task_cases: Sequence[TaskCase],
        resume_from: Optional[str] = None,
    ) -> OptimizationResult:
        """Run GEPA optimization."""
        return asyncio.run(self.aoptimize(seed_prompts, task_cases, resume_from=resume_from))

    async def aoptimize(
        self,
        seed_prompts: Sequence[str],
        task_cases: Sequence[TaskCase],
        resume_from: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OptimizationResult:
        """Run GEPA optimization inside a running event loop."""
        if not task_cases:
            raise ValueError("At least one task case is required")
        started_at = datetime.now()
        self._transition(OptimizerPhase.INITIALIZING)
        self.population = self._initialize_population(seed_prompts, resume_from)
        self._reset_run_state(self.population.generation, len(task_cases))
        self._log_run_settings(len(task_cases))
        if self.visualizer:
            self.visualizer.start()

        termination: Optional[TerminationReason] = None
        signal: Optional[ConvergenceSignal] = None
        failure_reason: Optional[str] = None

        with ProgressTracker(self.config.max_generations, disable=not self.show_progress) as progress:
            progress.set_start_generation(self.population.generation)
            while termination is None:
                try:
                    report, summary = await self._run_generation(task_cases, cancel_event)
                except InsufficientResults as e:
                    termination = TerminationReason.FAILED
                    if cancel_event is not None and cancel_event.is_set():
                        logger.warning(f"Generation {self.population.generation} cancelled: {e}")
                        failure_reason = CANCELLED_REASON
                    else:
                        logger.error(f"Generation {self.population.generation} failed: {e}")
                        failure_reason = str(e)
                    break

                self.history.append(summary)
                progress.update_generation(
                    summary.generation, summary.best_fitness, summary.hypervolume, summary.mutation_rate
                )
                progress.advance()

                if report.status == ConvergenceStatus.BUDGET_EXHAUSTED:
                    termination, signal = TerminationReason.BUDGET_EXHAUSTED, ConvergenceSignal.BUDGET
                elif report.status == ConvergenceStatus.CONVERGED:
                    termination, signal = TerminationReason.CONVERGED, report.reason
                elif cancel_event is not None and cancel_event.is_set():
                    termination, failure_reason = TerminationReason.FAILED, CANCELLED_REASON

        self._flush_usage()
        self._transition(OptimizerPhase.TERMINATED)
        state = self.detector.state
        frontier = self.frontier_manager.frontier_members(self._scored, self.frontier) if self.frontier else []
        result = self.result_builder.build(
            run_id=self.run_id or "gepa_run",
            started_at=started_at,
            termination=termination,
            frontier=frontier,
            hypervolume=self.frontier.hypervolume if self.frontier else 0.0,
            history=list(self.history),
            total_evaluations=state.evaluations,
            total_cost=state.cost,
            convergence_signal=signal,
            failure_reason=failure_reason,
            checkpoint_errors=list(self.checkpoint_errors),
        )
        self.result_builder.log_result(result)
        if self.config.runs_dir:
            self.result_builder.save_results(result, Path(self.config.runs_dir))
        if self.visualizer:
            self.visualizer.show_final(result.pareto_frontier)
        return result

    def _transition(self, phase: OptimizerPhase) -> None:
        logger.debug(f"Phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.phase_history.append(phase)

    def _new_rate_scheduler(self) -> MutationRateScheduler:
        return MutationRateScheduler(
            base_rate=self.config.base_mutation_rate,
            min_rate=self.config.min_mutation_rate,
            max_rate=self.config.max_mutation_rate,
            diversity_threshold=self.config.mutation_diversity_threshold,
            improvement_epsilon=self.config.plateau_epsilon,
        )

    def _reset_run_state(self, completed_generations: int, task_count: int = 1) -> None:
        """Fresh per-run trackers so an optimizer can be reused."""
        self.detector = ConvergenceDetector(self.config, completed_generations, units_per_candidate=task_count)
        self.rate_scheduler = self._new_rate_scheduler()
        self.frontier = None
        self.history = []
        self.checkpoint_errors = []
        self._parents = []
        self._results = {}
        self._scored = []
        self._pending_usage = (0, 0.0)
        if self.mutation_logger:
            self.mutation_logger.set_run_id(self.run_id or "gepa_run")

    def _initialize_population(self, seed_prompts: Sequence[str], resume_from: Optional[str]) -> Population:
        """Load a checkpoint or build generation 0 from seed prompts."""
        if resume_from:
            return self._resume_from_state(resume_from)

        self.run_id = f"gepa_run_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        texts: List[str] = []
        for prompt in seed_prompts:
            text = prompt.strip()
            if text and text not in texts:
                texts.append(text)
        if not texts:
            raise ValueError("At least one non-empty seed prompt is required")
        if len(texts) > self.config.population_size:
            logger.warning(
                f"{len(texts)} seed prompts exceed population size "
                f"{self.config.population_size}; keeping the first {self.config.population_size}"
            )
            texts = texts[:self.config.population_size]

        population = Population(generation=0, size_bound=self.config.population_size)
        for text in texts:
            population.add(PromptCandidate(
                text=text,
                generation=0,
                lineage=Lineage(operators=(MutationOperator.SEED,), notes="Seed prompt"),
            ))
        if self.store is None and self.config.runs_dir:
            self.store = JsonPopulationStore.for_run(self.config.runs_dir, self.run_id)
        logger.info(f"Starting GEPA optimization: {self.run_id}")
        return population

    def _resume_from_state(self, resume_from: str) -> Population:
        """Restore population from a previous run."""
        store = JsonPopulationStore(resume_from)
        population = store.load_population()
        if population is None:
            raise PersistenceError(f"No saved state at {store.path}")
        if population.size_bound != self.config.population_size:
            logger.warning(
                f"Checkpoint population bound {population.size_bound} differs from "
                f"config {self.config.population_size}; using config"
            )
            population = Population(
                generation=population.generation,
                size_bound=max(self.config.population_size, len(population)),
                members=dict(population.members),
            )
        self.store = store
        self.run_id = store.path.parent.name
        logger.info(f"Resuming GEPA optimization: {self.run_id} at generation {population.generation}")
        return population

    def _log_run_settings(self, task_count: int) -> None:
        """Log core run settings."""
        logger.info(f"Max generations: {self.config.max_generations}")
        logger.info(f"Population: {self.config.population_size}, offspring: {self.config.offspring_budget}")
        logger.info(f"Task cases: {task_count}, concurrency: {self.config.concurrency}")

    def _log_generation_header(self, generation: int) -> None:
        """Log generation header."""
        logger.info(f"\n{'='*60}")
        logger.info(f"Generation {generation}/{self.config.max_generations}")
        logger.info(f"{'='*60}")

    async def _run_generation(
        self,
        task_cases: Sequence[TaskCase],
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[ConvergenceReport, GenerationSummary]:
        """Execute a single generation."""
        population = self.population
        generation = population.generation
        self._log_generation_header(generation)

        self._transition(OptimizerPhase.EVALUATING)
        pending = self._budgeted(population.pending(), len(task_cases))
        results = await self._evaluate(pending, task_cases, cancel_event)
        grouped: Dict[str, List[EvaluationResult]] = defaultdict(list)
        for result in results:
            grouped[result.candidate_id].append(result)
        self._results.update(grouped)

        scored = self.objectives.score_population(population.candidates, grouped)
        self.frontier = self.frontier_manager.update_frontier(scored, generation)
        self._scored = self.frontier_manager.annotate(scored, self.frontier)
        population.reset(self._scored)
        if self.visualizer:
            self.visualizer.update_generation(generation, self._scored)

        self._transition(OptimizerPhase.REFLECTING)
        parents = self._mutation_parents(population)
        suggestions = await self._reflect(parents)

        self._transition(OptimizerPhase.MUTATING)
        offspring = self.evolution_engine.generate_offspring(
            parents=parents,
            suggestions=suggestions,
            population=population.candidates,
            generation=generation + 1,
            mutation_rate=self.rate_scheduler.rate,
        )[:self.config.population_size]

        self._transition(OptimizerPhase.SELECTING)
        survivors = self.selection.select(
            population.evaluated(),
            self.frontier,
            self.config.population_size - len(offspring),
        )
        self._parents = [c.id for c in survivors]
        next_population = Population(generation=generation + 1, size_bound=population.size_bound)
        next_population.reset(survivors + offspring)
        self._results = {cid: r for cid, r in self._results.items() if cid in next_population}
        self.population = next_population
        self._checkpoint(next_population)

        self._transition(OptimizerPhase.CHECKING_CONVERGENCE)
        evaluated = [c for c in self._scored if c.evaluated]
        best = max((c.fitness for c in evaluated), default=0.0)
        mean = sum(c.fitness for c in evaluated) / len(evaluated) if evaluated else 0.0
        diversity = population_diversity([c.text for c in next_population])
        units, cost = self._pending_usage
        self._pending_usage = (0, 0.0)
        report = self.detector.record_generation(
            best_fitness=best,
            mean_fitness=mean,
            diversity=diversity,
            hypervolume=self.frontier.hypervolume,
            evaluations=units,
            cost=cost,
        )
        rate = self.rate_scheduler.update(diversity, self.detector.state.best_fitness, report.warning)
        logger.info(
            f"Generation {generation}: best={best:.2%}, mean={mean:.2%}, "
            f"diversity={diversity:.3f} ({report.diversity_trend}), "
            f"HV={self.frontier.hypervolume:.4f}, frontier={len(self.frontier)}"
        )

        summary = GenerationSummary(
            generation=generation,
            population_size=len(self._scored),
            evaluated_units=len(results),
            completed_units=sum(1 for r in results if r.completed),
            best_fitness=best,
            mean_fitness=mean,
            diversity=diversity,
            hypervolume=self.frontier.hypervolume,
            frontier_size=len(self.frontier),
            mutation_rate=rate,
            offspring=len(offspring),
            warning=report.warning,
        )
        return report, summary

    def _budgeted(self, pending: List[PromptCandidate], task_count: int) -> List[PromptCandidate]:
        """Limit pending candidates to what the evaluation budget still allows."""
        remaining = self.detector.remaining_evaluations()
        if remaining is None:
            return pending
        # units spent by an attempt in this generation are not recorded yet
        allowed = max(0, remaining - self._pending_usage[0]) // task_count
        if len(pending) > allowed:
            logger.warning(f"Evaluation budget allows {allowed} of {len(pending)} pending candidates")
        return pending[:allowed]

    async def _evaluate(
        self,
        candidates: List[PromptCandidate],
        task_cases: Sequence[TaskCase],
        cancel_event: Optional[asyncio.Event],
    ) -> List[EvaluationResult]:
        """Evaluate candidates, retrying once at half concurrency."""
        if not candidates:
            return []
        concurrency = self.config.concurrency
        for attempt in range(1, EVALUATION_ATTEMPTS + 1):
            try:
                results = await self.scheduler.evaluate(
                    candidates,
                    task_cases,
                    concurrency=concurrency,
                    timeout_per_eval=self.config.eval_timeout_seconds,
                    generation_timeout=self.config.generation_timeout_seconds,
                    cancel_event=cancel_event,
                )
                self._count_usage(results)
                return results
            except InsufficientResults as e:
                self._count_usage(e.results)
                cancelled = cancel_event is not None and cancel_event.is_set()
                if attempt == EVALUATION_ATTEMPTS or cancelled:
                    raise
                candidates = self._budgeted(candidates, len(task_cases))
                if not candidates:
                    logger.warning(f"{e}; evaluation budget leaves no room for a retry")
                    raise
                concurrency = max(1, concurrency // 2)
                logger.warning(f"{e}; retrying with concurrency {concurrency}")
        return []

    def _count_usage(self, results: Sequence[EvaluationResult]) -> None:
        units, cost = self._pending_usage
        attempted = [r for r in results if r.status != EvaluationStatus.CANCELLED]
        self._pending_usage = (units + len(attempted), cost + sum(r.token_cost for r in attempted))

    def _flush_usage(self) -> None:
        units, cost = self._pending_usage
        if units or cost:
            self.detector.add_usage(units, cost)
        self._pending_usage = (0, 0.0)

    def _mutation_parents(self, population: Population) -> List[PromptCandidate]:
        """Parents chosen by the previous selection, or every evaluated member."""
        parents = [
            population.get(cid) for cid in self._parents
            if cid in population and population.get(cid).evaluated
        ]
        return parents or population.evaluated()

    async def _reflect(self, parents: Sequence[PromptCandidate]) -> Dict[str, List[ReflectionSuggestion]]:
        if self.reflector is None or not parents:
            return {}
        results = [r for p in parents for r in self._results.get(p.id, [])]
        if not results:
            return {}
        return await self.reflector.analyze_by_candidate(results, {p.id: p for p in parents})

    def _checkpoint(self, population: Population) -> None:
        """Persist the population; failures are logged and the run continues."""
        if self.store is None:
            return
        try:
            self.store.save_population(population)
        except PersistenceError as e:
            logger.warning(f"Checkpoint failed: {e}")
            self.checkpoint_errors.append(str(e))
