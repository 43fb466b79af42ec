"""Error taxonomy for GEPA optimization."""

from typing import Any, List, Optional


class GEPAError(Exception):
    """Base class for all optimizer errors."""


class EvaluationFailed(GEPAError):
    """A single (candidate, task case) unit failed to execute.

    Raised by execution harnesses to report a failed run. The scheduler
    records it as an ``error`` result and never lets it abort a batch.
    """

    def __init__(self, reason: str, trajectory: Optional[Any] = None):
        super().__init__(reason)
        self.reason = reason
        self.trajectory = trajectory


class InsufficientResults(GEPAError):
    """Too few units of a batch completed to score the generation."""

    def __init__(self, completed: int, total: int, required_fraction: float, results: Optional[List[Any]] = None):
        super().__init__(
            f"Only {completed}/{total} evaluations completed "
            f"(required fraction {required_fraction:.0%})"
        )
        self.completed = completed
        self.total = total
        self.required_fraction = required_fraction
        self.results = results or []


class ReflectionFailed(GEPAError):
    """Reflection for one candidate produced no usable suggestions."""

    def __init__(self, candidate_id: str, reason: str):
        super().__init__(f"Reflection failed for {candidate_id}: {reason}")
        self.candidate_id = candidate_id
        self.reason = reason


class MutationExhausted(GEPAError):
    """Diversity retries ran out; carries the last offspring produced."""

    def __init__(self, offspring: Any, attempts: int, similarity: float):
        super().__init__(
            f"Offspring still {similarity:.1%} similar after {attempts} attempts"
        )
        self.offspring = offspring
        self.attempts = attempts
        self.similarity = similarity


class PersistenceError(GEPAError):
    """Saving or loading a checkpoint failed."""


class LLMError(GEPAError):
    """Hard failure of the LLM completion collaborator."""


class LLMRateLimitError(LLMError):
    """The LLM provider kept rejecting requests due to rate limits."""


class LLMTimeoutError(LLMError):
    """An LLM request did not finish within its timeout."""
