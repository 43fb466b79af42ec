"""Minimal GEPA example: sentiment classification with the default LLM harness."""

from pathlib import Path

from gepa_engine import (
    GEPAOptimizer,
    LLMClient,
    LLMExecutionHarness,
    OptimizationConfig,
    configure_logging,
    load_task_cases,
)
from gepa_engine.config import Settings

PROMPT_FILE = Path(__file__).parent / "prompt.txt"
DATASET_FILE = Path(__file__).parent / "dataset.jsonl"

settings = Settings(
    model="gpt-4o-mini",
)
configure_logging(settings.log_level)

config = OptimizationConfig.from_profile(
    "fast",
    runs_dir=str(Path(__file__).parent / "runs"),
)

llm_client = LLMClient(settings)
harness = LLMExecutionHarness(llm_client)
optimizer = GEPAOptimizer(harness, config, llm_client=llm_client)

baseline_prompt = PROMPT_FILE.read_text(encoding="utf-8").strip()
result = optimizer.optimize([baseline_prompt], load_task_cases(DATASET_FILE))

print(f"\nTermination: {result.termination.value} after {result.generations_completed} generations")
if result.recommended_prompt is not None:
    print(f"Best success rate: {result.recommended_prompt.fitness:.1%}")
    print(f"\nOptimized prompt:\n{result.recommended_prompt.text}")
else:
    print(f"Run failed: {result.failure_reason}")
