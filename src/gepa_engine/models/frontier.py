"""Pareto frontier snapshot model."""

from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ParetoFrontier(BaseModel):
    """Non-dominated set of one generation plus population-wide rankings."""

    model_config = ConfigDict(frozen=True)

    generation: int = Field(ge=0)
    candidate_ids: Tuple[str, ...] = ()
    hypervolume: float = Field(default=0.0, ge=0.0)
    crowding_distance: Dict[str, float] = Field(default_factory=dict)
    ranks: Dict[str, int] = Field(default_factory=dict)
    population_crowding: Dict[str, float] = Field(default_factory=dict)
    fronts: Tuple[Tuple[str, ...], ...] = ()

    def __contains__(self, candidate_id: object) -> bool:
        return candidate_id in self.candidate_ids

    def __len__(self) -> int:
        return len(self.candidate_ids)
