"""Execution harnesses that run a prompt candidate on a task case."""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from ..clients import BaseLLMClient
from ..errors import EvaluationFailed, LLMError
from ..models import PromptCandidate, TaskCase, Trajectory, TrajectoryStep

CompareFn = Callable[[str, str], bool]
HarnessFn = Callable[[PromptCandidate, TaskCase], Union[Trajectory, Awaitable[Trajectory]]]


def default_compare_fn(predicted: str, expected: str) -> bool:
    """Compare predicted and expected by exact match (case-insensitive)."""
    return predicted.strip().lower() == expected.strip().lower()


class ExecutionHarness(ABC):
    """Runs one candidate against one task case and returns its trajectory.

    ``execute`` may be a coroutine function or a plain blocking function;
    blocking harnesses are run in a worker thread by the scheduler.
    Failures should be raised as EvaluationFailed.
    """

    @abstractmethod
    def execute(self, candidate: PromptCandidate, task_case: TaskCase) -> Any:
        """Execute candidate on task case."""
        pass


def render_prompt(prompt_text: str, input_data: dict) -> str:
    """Substitute input placeholders, appending inputs when the prompt has none."""
    try:
        formatted = prompt_text.format(**input_data)
    except (KeyError, IndexError, ValueError):
        formatted = None
    if formatted is None or formatted == prompt_text:
        inputs = json.dumps(input_data, ensure_ascii=False)
        return f"{prompt_text}\n\nInput: {inputs}"
    return formatted


class LLMExecutionHarness(ExecutionHarness):
    """Default harness: sends the rendered prompt to an LLM and compares outputs."""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        compare_fn: Optional[CompareFn] = None,
        temperature: float = 0.0,
    ):
        """Initialize harness with LLM client and optional compare function."""
        self.llm = llm_client
        self.compare_fn = compare_fn or default_compare_fn
        self.temperature = temperature

    async def execute(self, candidate: PromptCandidate, task_case: TaskCase) -> Trajectory:
        """Render, complete and score one task case."""
        prompt = render_prompt(candidate.text, task_case.input)
        start_time = time.time()
        try:
            response = await self.llm.achat_completion(
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except LLMError as e:
            raise EvaluationFailed(f"LLM call failed: {e}") from e

        output = response.strip()
        latency = (time.time() - start_time) * 1000
        success = (
            self.compare_fn(output, task_case.expected)
            if task_case.expected is not None
            else bool(output)
        )
        logger.debug(f"Task {task_case.id}: success={success} in {latency:.0f}ms")

        step = TrajectoryStep(
            index=0,
            reasoning="",
            action="complete",
            observation=output,
        )
        return Trajectory(
            steps=(step,),
            success=success,
            quality_score=1.0 if success else 0.0,
            token_cost=float(self.llm.count_tokens(prompt) + self.llm.count_tokens(output)),
            output=output,
            expected=task_case.expected,
        )
