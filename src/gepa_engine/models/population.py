"""Population container owned by the optimizer."""

from typing import Dict, Iterable, Iterator, List

from pydantic import BaseModel, Field

from .candidate import PromptCandidate


class Population(BaseModel):
    """Ordered, id-unique set of candidates for one generation."""

    generation: int = Field(default=0, ge=0)
    size_bound: int = Field(ge=1)
    members: Dict[str, PromptCandidate] = Field(default_factory=dict)

    def add(self, candidate: PromptCandidate) -> None:
        """Add a new candidate; ids must be unique."""
        if candidate.id in self.members:
            raise ValueError(f"Candidate {candidate.id} already in population")
        self.members[candidate.id] = candidate

    def replace(self, candidate: PromptCandidate) -> None:
        """Swap in an annotated copy of an existing member."""
        if candidate.id not in self.members:
            raise KeyError(candidate.id)
        self.members[candidate.id] = candidate

    def reset(self, candidates: Iterable[PromptCandidate]) -> None:
        """Replace all members, keeping the given order."""
        self.members = {}
        for candidate in candidates:
            self.add(candidate)
        if len(self.members) > self.size_bound:
            raise ValueError(
                f"Population size {len(self.members)} exceeds bound {self.size_bound}"
            )

    def get(self, candidate_id: str) -> PromptCandidate:
        return self.members[candidate_id]

    @property
    def candidates(self) -> List[PromptCandidate]:
        return list(self.members.values())

    def evaluated(self) -> List[PromptCandidate]:
        return [c for c in self.members.values() if c.evaluated]

    def pending(self) -> List[PromptCandidate]:
        return [c for c in self.members.values() if not c.evaluated]

    def __contains__(self, candidate_id: object) -> bool:
        return candidate_id in self.members

    def __iter__(self) -> Iterator[PromptCandidate]:  # type: ignore[override]
        return iter(list(self.members.values()))

    def __len__(self) -> int:
        return len(self.members)
