"""Optimization configuration models."""

from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .convergence import ConvergenceSignal
from .metrics import OBJECTIVE_NAMES

DEFAULT_CROSSOVER_RATE = 0.3
MIN_RATE = 0.0
MAX_RATE = 1.0
DEFAULT_BASE_MUTATION_RATE = 0.15
DEFAULT_MIN_MUTATION_RATE = 0.05
DEFAULT_MAX_MUTATION_RATE = 0.5
DEFAULT_CONVERGENCE_PRIORITY: Tuple[ConvergenceSignal, ...] = (
    ConvergenceSignal.HYPERVOLUME_SATURATION,
    ConvergenceSignal.FITNESS_PLATEAU,
    ConvergenceSignal.DIVERSITY_COLLAPSE,
)

DEFAULT_REFLECTION_SYSTEM_PROMPT = (
    "You are an expert in prompt engineering and optimization."
)

DEFAULT_REFLECTION_TEMPLATE = """You are an expert in prompt optimization.

CURRENT PROMPT:
{prompt_text}

EXECUTIONS WHERE THE PROMPT FAILED OR SCORED LOW:
{failures_text}

EXECUTIONS WHERE THE PROMPT WORKED WELL:
{successes_text}

Analyze why the prompt failed:
1. What error patterns do you see?
2. What is missing from the prompt?
3. Which instructions are too vague?

Reply with a JSON object of the form:
{{"suggestions": [{{
  "category": "clarification | constraint | example | structure",
  "operation": "edit | add | delete | replace",
  "rationale": "why this change fixes the observed failures",
  "target_text": "exact span of the current prompt to change, if any",
  "proposed_text": "new text to insert or use as replacement",
  "confidence": 0.0-1.0
}}]}}

Return at most {max_suggestions} suggestions, most important first."""


SUPPORTED_PROFILES: Set[str] = {"fast", "balanced", "quality", "advanced"}

PROFILE_PRESETS: Dict[str, Dict[str, Any]] = {
    "fast": {
        "max_generations": 4,
        "population_size": 12,
        "crossover_rate": 0.4,
        "concurrency": 16,
        "plateau_window": 3,
        "hypervolume_window": 3,
    },
    "balanced": {
        "max_generations": 8,
        "population_size": 10,
        "crossover_rate": 0.35,
    },
    "quality": {
        "max_generations": 12,
        "population_size": 8,
        "crossover_rate": 0.2,
        "base_mutation_rate": 0.1,
        "plateau_window": 6,
        "hypervolume_window": 6,
        "min_success_fraction": 0.7,
    },
    "advanced": {},
}


class OptimizationConfig(BaseModel):
    """GEPA optimization configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    runs_dir: Optional[str] = None
    seed: Optional[int] = None

    # population and budget
    population_size: int = Field(default=10, ge=1, le=500)
    offspring_per_generation: Optional[int] = Field(default=None, ge=1)
    max_generations: int = Field(default=10, ge=1)
    max_evaluations: Optional[int] = Field(default=None, ge=1)
    max_cost: Optional[float] = Field(default=None, gt=0.0)

    # evaluation scheduling
    concurrency: int = Field(default=8, ge=1)
    eval_timeout_seconds: float = Field(default=60.0, gt=0.0)
    generation_timeout_seconds: Optional[float] = Field(default=None, gt=0.0)
    min_success_fraction: float = Field(default=0.5, ge=0.0, le=1.0)

    # reflection
    reflection_temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    reflection_timeout_seconds: float = Field(default=60.0, gt=0.0)
    max_trajectories_per_reflection: int = Field(default=5, ge=1)
    low_score_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    reflection_system_prompt: str = DEFAULT_REFLECTION_SYSTEM_PROMPT
    reflection_template: str = DEFAULT_REFLECTION_TEMPLATE
    suggestion_dedup_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    # mutation
    max_suggestions_per_parent: int = Field(default=3, ge=1)
    crossover_rate: float = Field(default=DEFAULT_CROSSOVER_RATE, ge=MIN_RATE, le=MAX_RATE)
    similarity_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    diversity_retry_cap: int = Field(default=3, ge=0)
    base_mutation_rate: float = Field(default=DEFAULT_BASE_MUTATION_RATE, ge=MIN_RATE, le=MAX_RATE)
    min_mutation_rate: float = Field(default=DEFAULT_MIN_MUTATION_RATE, ge=MIN_RATE, le=MAX_RATE)
    max_mutation_rate: float = Field(default=DEFAULT_MAX_MUTATION_RATE, ge=MIN_RATE, le=MAX_RATE)
    mutation_diversity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # selection and frontier
    tournament_size: int = Field(default=3, ge=1)
    elite_cap: int = Field(default=5, ge=0)
    frontier_cap: int = Field(default=20, ge=1)
    niche_radius: float = Field(default=0.1, gt=0.0)
    sharing_alpha: float = Field(default=1.0, gt=0.0)
    objective_weights: Dict[str, float] = Field(
        default_factory=lambda: {name: 1.0 for name in OBJECTIVE_NAMES}
    )

    # convergence
    plateau_window: int = Field(default=5, ge=1)
    plateau_epsilon: float = Field(default=0.01, ge=0.0)
    diversity_threshold: float = Field(default=0.15, ge=0.0, le=1.0)
    diversity_patience: int = Field(default=3, ge=1)
    hypervolume_window: int = Field(default=5, ge=1)
    hypervolume_epsilon: float = Field(default=0.01, ge=0.0)
    convergence_priority: Tuple[ConvergenceSignal, ...] = DEFAULT_CONVERGENCE_PRIORITY

    @field_validator("objective_weights")
    @classmethod
    def _check_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = set(value) - set(OBJECTIVE_NAMES)
        if unknown:
            raise ValueError(
                f"Unknown objectives {sorted(unknown)}. Supported: {', '.join(OBJECTIVE_NAMES)}"
            )
        if any(weight < 0 for weight in value.values()):
            raise ValueError("Objective weights must be non-negative")
        return value

    @field_validator("convergence_priority")
    @classmethod
    def _check_priority(cls, value: Tuple[ConvergenceSignal, ...]) -> Tuple[ConvergenceSignal, ...]:
        if ConvergenceSignal.BUDGET in value:
            raise ValueError("Budget is always checked first and cannot be prioritized")
        if len(set(value)) != len(value):
            raise ValueError("Convergence priority contains duplicates")
        if set(value) != set(DEFAULT_CONVERGENCE_PRIORITY):
            raise ValueError(
                "Convergence priority must order all of: "
                f"{', '.join(s.value for s in DEFAULT_CONVERGENCE_PRIORITY)}"
            )
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "OptimizationConfig":
        if not self.min_mutation_rate <= self.base_mutation_rate <= self.max_mutation_rate:
            raise ValueError(
                "Mutation rates must satisfy min_mutation_rate <= base_mutation_rate <= max_mutation_rate"
            )
        if (
            self.offspring_per_generation is not None
            and self.offspring_per_generation > self.population_size
        ):
            raise ValueError("offspring_per_generation cannot exceed population_size")
        return self

    @property
    def offspring_budget(self) -> int:
        """Offspring produced per generation."""
        if self.offspring_per_generation is not None:
            return self.offspring_per_generation
        return max(1, self.population_size // 2)

    @classmethod
    def from_profile(cls, profile: str, **overrides: Any) -> "OptimizationConfig":
        """Create config from a named profile with optional overrides."""
        if profile not in SUPPORTED_PROFILES:
            raise ValueError(
                f"Unknown profile '{profile}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_PROFILES))}"
            )
        defaults = dict(PROFILE_PRESETS.get(profile, {}))
        defaults.update(overrides)
        return cls(**defaults)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "OptimizationConfig":
        """Load config from YAML; an optional top-level 'profile' key selects a preset."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        data.update(overrides)
        profile = data.pop("profile", "advanced")
        return cls.from_profile(profile, **data)
