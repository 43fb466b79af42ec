"""Offspring lineage logging."""

import json
from pathlib import Path
from typing import Optional, Sequence

from ...models import PromptCandidate, ReflectionSuggestion

MUTATION_LOG_FILENAME = "mutation_log.jsonl"
MUTATION_LOG_MAX_SUGGESTIONS = 5
MUTATION_LOG_MAX_TEXT_LENGTH = 200


class MutationLogger:
    """Append one JSON line per offspring with its lineage and suggestions."""

    def __init__(self, runs_dir: Path):
        """Initialize mutation logger."""
        self.runs_dir = Path(runs_dir)
        self.run_id: Optional[str] = None

    def set_run_id(self, run_id: str) -> None:
        """Set current run id."""
        self.run_id = run_id

    @property
    def log_path(self) -> Path:
        return self.runs_dir / (self.run_id or "gepa_run") / MUTATION_LOG_FILENAME

    def append(
        self,
        candidate: PromptCandidate,
        parents: Sequence[PromptCandidate],
        suggestions: Sequence[ReflectionSuggestion] = (),
    ) -> None:
        """Append mutation log entry."""
        log_path = self.log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "run_id": self.run_id,
            "generation": candidate.generation,
            "candidate_id": candidate.id,
            "parent_ids": list(candidate.lineage.parent_ids),
            "operators": [op.value for op in candidate.lineage.operators],
            "notes": candidate.lineage.notes,
            "parent_fitness": [p.fitness for p in parents],
            "suggestions": [
                self._format_suggestion(s)
                for s in list(suggestions)[:MUTATION_LOG_MAX_SUGGESTIONS]
            ],
        }
        with open(log_path, "a", encoding="utf-8") as log_file:
            log_file.write(json.dumps(payload, ensure_ascii=False) + "\n")

    def _format_suggestion(self, suggestion: ReflectionSuggestion) -> dict:
        """Format a suggestion for logs."""
        return {
            "category": suggestion.category.value,
            "confidence": suggestion.confidence,
            "rationale": suggestion.rationale[:MUTATION_LOG_MAX_TEXT_LENGTH],
        }
