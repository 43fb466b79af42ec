"""Optimization result builder."""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import yaml
from loguru import logger
from rich.console import Console
from rich.table import Table

from ...models import (
    OBJECTIVE_NAMES,
    ConvergenceSignal,
    GenerationSummary,
    OptimizationResult,
    PromptCandidate,
    TerminationReason,
)
from ..objectives import MultiObjectiveEvaluator

METRICS_FILENAME = "metrics.json"
PROMPT_FILENAME = "recommended_prompt.txt"
FRONTIER_FILENAME = "pareto_frontier.yaml"


class ResultBuilder:
    """Build, print and save optimization results."""

    def __init__(self, objectives: MultiObjectiveEvaluator, console: Optional[Console] = None):
        """Initialize result builder."""
        self.objectives = objectives
        self.console = console or Console()

    def build(
        self,
        run_id: str,
        started_at: datetime,
        termination: TerminationReason,
        frontier: Sequence[PromptCandidate],
        hypervolume: float,
        history: List[GenerationSummary],
        total_evaluations: int,
        total_cost: float,
        convergence_signal: Optional[ConvergenceSignal] = None,
        failure_reason: Optional[str] = None,
        checkpoint_errors: Optional[List[str]] = None,
    ) -> OptimizationResult:
        """Build optimization result with the frontier in display order."""
        ordered = self.objectives.rank_for_display(frontier)
        finished_at = datetime.now()
        return OptimizationResult(
            run_id=run_id,
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=(finished_at - started_at).total_seconds(),
            termination=termination,
            convergence_signal=convergence_signal,
            failure_reason=failure_reason,
            generations_completed=len(history),
            pareto_frontier=ordered,
            recommended_prompt=ordered[0] if ordered else None,
            hypervolume=hypervolume,
            total_evaluations=total_evaluations,
            total_cost=total_cost,
            history=history,
            checkpoint_errors=checkpoint_errors or [],
        )

    def log_result(self, result: OptimizationResult) -> None:
        """Log optimization result."""
        if result.termination == TerminationReason.FAILED:
            logger.error(f"Optimization failed after {result.duration_seconds:.1f}s: {result.failure_reason}")
        else:
            logger.success(
                f"Optimization complete in {result.duration_seconds:.1f}s "
                f"({result.termination.value}"
                f"{': ' + result.convergence_signal.value if result.convergence_signal else ''})"
            )
        self._print_results(result)

    def _print_results(self, result: OptimizationResult) -> None:
        """Print optimization results."""
        self.console.print("\n[bold green]GEPA Optimization Results[/bold green]\n")
        self.console.print(f"Run ID: [cyan]{result.run_id}[/cyan]")
        self.console.print(f"Duration: [cyan]{result.duration_seconds:.1f}s[/cyan]")
        self.console.print(f"Termination: [cyan]{result.termination.value}[/cyan]")
        self.console.print(f"Generations: [cyan]{result.generations_completed}[/cyan]")
        self.console.print(
            f"Evaluations: [cyan]{result.total_evaluations}[/cyan], "
            f"cost: [cyan]{result.total_cost:.1f}[/cyan], "
            f"hypervolume: [cyan]{result.hypervolume:.4f}[/cyan]\n"
        )

        if not result.pareto_frontier:
            self.console.print("[yellow]No Pareto frontier: no generation completed[/yellow]")
            return

        table = Table(title=f"Pareto Frontier ({len(result.pareto_frontier)} candidates)")
        table.add_column("#", justify="right")
        table.add_column("Gen", justify="right")
        for name in OBJECTIVE_NAMES:
            table.add_column(name.capitalize(), justify="right")
        table.add_column("Raw")

        for i, candidate in enumerate(result.pareto_frontier, 1):
            marker = "*" if result.recommended_prompt and candidate.id == result.recommended_prompt.id else ""
            vector = candidate.objectives or ()
            table.add_row(
                f"{marker}{i}",
                str(candidate.generation),
                *[f"{value:.2f}" for value in vector],
                str(candidate.raw_scores or ""),
            )
        self.console.print(table)
        if result.recommended_prompt:
            self.console.print("\n[green]* RECOMMENDED[/green]")

    def save_results(self, result: OptimizationResult, runs_dir: Path) -> Path:
        """Save optimization results to disk."""
        run_dir = Path(runs_dir) / result.run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        metrics_file = run_dir / METRICS_FILENAME
        with open(metrics_file, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "run_id": result.run_id,
                    "duration_seconds": result.duration_seconds,
                    "termination": result.termination.value,
                    "convergence_signal": (
                        result.convergence_signal.value if result.convergence_signal else None
                    ),
                    "failure_reason": result.failure_reason,
                    "generations_completed": result.generations_completed,
                    "total_evaluations": result.total_evaluations,
                    "total_cost": result.total_cost,
                    "hypervolume": result.hypervolume,
                    "recommended_scores": (
                        result.recommended_prompt.raw_scores.model_dump()
                        if result.recommended_prompt and result.recommended_prompt.raw_scores
                        else None
                    ),
                    "pareto_frontier_size": len(result.pareto_frontier),
                    "history": [summary.model_dump() for summary in result.history],
                },
                f,
                indent=2,
                ensure_ascii=False,
            )

        if result.recommended_prompt:
            prompt_file = run_dir / PROMPT_FILENAME
            prompt_file.write_text(result.recommended_prompt.text, encoding="utf-8")

        pareto_file = run_dir / FRONTIER_FILENAME
        with open(pareto_file, "w", encoding="utf-8") as f:
            pareto_data = {
                "frontier": [
                    {
                        "id": c.id,
                        "generation": c.generation,
                        "objectives": dict(zip(OBJECTIVE_NAMES, c.objectives or ())),
                        "raw_scores": c.raw_scores.model_dump() if c.raw_scores else None,
                        "parents": list(c.lineage.parent_ids),
                        "operators": [op.value for op in c.lineage.operators],
                        "prompt": c.text,
                    }
                    for c in result.pareto_frontier
                ]
            }
            yaml.dump(pareto_data, f, allow_unicode=True, default_flow_style=False)

        logger.success(f"Results saved to: {run_dir}")
        return run_dir
