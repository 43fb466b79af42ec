"""Evaluation result models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .dataset import Trajectory


class EvaluationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"


COMPLETED_STATUSES = (EvaluationStatus.SUCCESS, EvaluationStatus.FAILED)


class EvaluationResult(BaseModel):
    """Outcome of one (candidate, task case) evaluation unit."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    task_case_id: str
    status: EvaluationStatus
    duration_ms: float = Field(default=0.0, ge=0.0)
    token_cost: float = Field(default=0.0, ge=0.0)
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    trajectory: Optional[Trajectory] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == EvaluationStatus.SUCCESS

    @property
    def completed(self) -> bool:
        """True when the harness ran to the end, whether or not the task succeeded."""
        return self.status in COMPLETED_STATUSES
