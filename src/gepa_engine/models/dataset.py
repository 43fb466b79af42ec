"""Task case and trajectory models."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .candidate import new_candidate_id


class TaskCase(BaseModel):
    """One task instance a prompt candidate is evaluated against."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_candidate_id)
    input: Dict[str, Any]
    expected: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TrajectoryStep(BaseModel):
    """Single reasoning/action/observation step of an execution."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    reasoning: str = ""
    action: str = ""
    observation: str = ""
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class Trajectory(BaseModel):
    """Execution trace returned by a harness for one task case."""

    model_config = ConfigDict(frozen=True)

    steps: Tuple[TrajectoryStep, ...] = ()
    success: bool = False
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    token_cost: float = Field(default=0.0, ge=0.0)
    output: str = ""
    expected: Optional[str] = None


def load_task_cases(path: Union[str, Path]) -> List[TaskCase]:
    """Load task cases from a JSONL file, one object per line."""
    cases = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON: {e}") from e
            cases.append(TaskCase(**data))
    return cases
