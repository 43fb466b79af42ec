"""Prompt candidate model for evolutionary optimization."""

import uuid
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .metrics import ObjectiveScores, vector_dominates


class MutationOperator(str, Enum):
    """Operators recorded in candidate lineage."""

    SEED = "seed"
    EDIT = "edit"
    ADD = "add"
    DELETE = "delete"
    REPLACE = "replace"
    CROSSOVER = "crossover"


class Lineage(BaseModel):
    """Parents and operators that produced a candidate."""

    model_config = ConfigDict(frozen=True)

    parent_ids: Tuple[str, ...] = ()
    operators: Tuple[MutationOperator, ...] = ()
    notes: Optional[str] = None


def new_candidate_id() -> str:
    return str(uuid.uuid4())


class PromptCandidate(BaseModel):
    """Immutable prompt candidate in the evolutionary population.

    Scoring and ranking never mutate a candidate; they produce annotated
    copies through ``with_updates``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_candidate_id)
    text: str = Field(description="Prompt text")
    generation: int = Field(ge=0, description="Generation number")
    lineage: Lineage = Field(default_factory=Lineage)
    raw_scores: Optional[ObjectiveScores] = None
    objectives: Optional[Tuple[float, ...]] = None
    pareto_rank: Optional[int] = None
    crowding_distance: Optional[float] = None

    @property
    def evaluated(self) -> bool:
        return self.raw_scores is not None

    @property
    def fitness(self) -> float:
        """Scalar fitness: success rate, 0.0 when not evaluated."""
        return self.raw_scores.success_rate if self.raw_scores else 0.0

    def dominates(self, other: "PromptCandidate") -> bool:
        """Check if this candidate Pareto-dominates another candidate."""
        if self.objectives is None or other.objectives is None:
            return False
        return vector_dominates(self.objectives, other.objectives)

    def with_updates(self, **changes: Any) -> "PromptCandidate":
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=changes)

    def __str__(self) -> str:
        scores = self.raw_scores if self.raw_scores else "unevaluated"
        return f"Candidate(gen={self.generation}, {scores})"
