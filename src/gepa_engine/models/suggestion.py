"""Reflection suggestion models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .candidate import MutationOperator


class SuggestionCategory(str, Enum):
    CLARIFICATION = "clarification"
    CONSTRAINT = "constraint"
    EXAMPLE = "example"
    STRUCTURE = "structure"


class ReflectionSuggestion(BaseModel):
    """Targeted improvement proposed for one candidate."""

    model_config = ConfigDict(frozen=True)

    category: SuggestionCategory
    rationale: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    target_candidate_id: str
    operation: Optional[MutationOperator] = None
    target_text: Optional[str] = None
    proposed_text: Optional[str] = None
    source_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    support: int = Field(default=1, ge=1, description="Merged duplicate count")

    @property
    def specificity(self) -> float:
        """Heuristic in [0, 1]: concrete spans and longer rationales rank higher."""
        score = 0.0
        if self.target_text:
            score += 0.3
        if self.proposed_text:
            score += 0.3
        score += 0.4 * min(1.0, len(self.rationale.split()) / 25)
        return score

    @property
    def rank_score(self) -> float:
        return (
            self.confidence
            * self.source_confidence
            * (0.5 + 0.5 * self.specificity)
            * (1.0 + 0.1 * (self.support - 1))
        )
