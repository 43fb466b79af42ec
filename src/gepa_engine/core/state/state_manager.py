"""Population checkpoint persistence."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from pydantic import ValidationError

from ...errors import PersistenceError
from ...models import Population, PromptCandidate

STATE_FILENAME = "state.json"
STATE_FORMAT_VERSION = 1


class PopulationStore(ABC):
    """Save and load a population snapshot."""

    @abstractmethod
    def save_population(self, population: Population) -> None:
        """Persist population; raises PersistenceError on failure."""
        pass

    @abstractmethod
    def load_population(self) -> Optional[Population]:
        """Load the last saved population, or None when nothing was saved."""
        pass


class JsonPopulationStore(PopulationStore):
    """Persist populations as a JSON state file inside a run directory."""

    def __init__(self, path: Union[str, Path]):
        """Initialize store; a directory path gets the default state filename."""
        path = Path(path)
        self.path = path / STATE_FILENAME if path.suffix != ".json" else path

    @classmethod
    def for_run(cls, runs_dir: Union[str, Path], run_id: str) -> "JsonPopulationStore":
        return cls(Path(runs_dir) / run_id / STATE_FILENAME)

    def save_population(self, population: Population) -> None:
        """Write state atomically via a temporary file."""
        state = {
            "version": STATE_FORMAT_VERSION,
            "generation": population.generation,
            "size_bound": population.size_bound,
            "members": [
                c.model_dump(mode="json", exclude={"objectives", "pareto_rank", "crowding_distance"})
                for c in population
            ],
        }
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(state, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save population to {self.path}: {e}") from e
        logger.debug(f"Saved generation {population.generation} ({len(population)} members) to {self.path}")

    def load_population(self) -> Optional[Population]:
        """Load optimization state for resume."""
        if not self.path.exists():
            return None
        try:
            state = json.loads(self.path.read_text(encoding="utf-8"))
            population = Population(
                generation=state["generation"],
                size_bound=state["size_bound"],
            )
            for item in state["members"]:
                population.add(PromptCandidate.model_validate(item))
        except (OSError, KeyError, TypeError, ValueError, ValidationError) as e:
            raise PersistenceError(f"Failed to load population from {self.path}: {e}") from e
        logger.info(f"Loaded generation {population.generation} ({len(population)} members) from {self.path}")
        return population
