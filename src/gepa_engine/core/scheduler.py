"""Concurrent evaluation of (candidate, task case) units."""

import asyncio
import inspect
import time
from typing import Any, Callable, List, Optional, Sequence, Union

from loguru import logger

from ..errors import EvaluationFailed, InsufficientResults
from ..models import EvaluationResult, EvaluationStatus, PromptCandidate, TaskCase, Trajectory
from .harness import ExecutionHarness

DEADLINE_REASON = "generation deadline exceeded"
CANCELLED_REASON = "cancelled"


class EvaluationScheduler:
    """Fans evaluation units out under a concurrency bound.

    Every unit yields exactly one EvaluationResult; per-unit failures are
    recorded, never raised. Results keep the (candidate, task case) order
    of the input regardless of completion order.
    """

    def __init__(
        self,
        harness: Union[ExecutionHarness, Callable[..., Any]],
        min_success_fraction: float = 0.5,
    ):
        """Initialize scheduler with a harness object or plain callable."""
        self.harness = harness
        self.min_success_fraction = min_success_fraction
        self._execute = getattr(harness, "execute", harness)

    async def evaluate(
        self,
        candidates: Sequence[PromptCandidate],
        task_cases: Sequence[TaskCase],
        concurrency: int,
        timeout_per_eval: float,
        generation_timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[EvaluationResult]:
        """Evaluate every candidate on every task case.

        Raises InsufficientResults when fewer than ``min_success_fraction``
        of the units complete.
        """
        units = [(candidate, case) for candidate in candidates for case in task_cases]
        if not units:
            return []

        logger.info(
            f"Evaluating {len(candidates)} candidates x {len(task_cases)} cases "
            f"(concurrency={concurrency})"
        )
        start_time = time.time()
        semaphore = asyncio.Semaphore(max(1, concurrency))
        buffer: List[Optional[EvaluationResult]] = [None] * len(units)

        async def run(index: int, candidate: PromptCandidate, case: TaskCase) -> None:
            async with semaphore:
                buffer[index] = await self._run_unit(candidate, case, timeout_per_eval)

        tasks = [
            asyncio.ensure_future(run(i, candidate, case))
            for i, (candidate, case) in enumerate(units)
        ]
        stop_reason = await self._wait(tasks, generation_timeout, cancel_event)

        results = []
        for (candidate, case), result in zip(units, buffer):
            if result is None:
                result = EvaluationResult(
                    candidate_id=candidate.id,
                    task_case_id=case.id,
                    status=EvaluationStatus.CANCELLED,
                    reason=stop_reason or CANCELLED_REASON,
                )
            results.append(result)

        completed = sum(1 for r in results if r.completed)
        elapsed = time.time() - start_time
        logger.info(f"Evaluation batch done in {elapsed:.1f}s: {completed}/{len(results)} completed")

        if completed < self.min_success_fraction * len(results):
            raise InsufficientResults(completed, len(results), self.min_success_fraction, results)
        return results

    async def _wait(
        self,
        tasks: List["asyncio.Future[None]"],
        generation_timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[str]:
        """Wait for all units, the deadline or cancellation; cancel leftovers."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + generation_timeout if generation_timeout else None
        cancel_waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
        pending = set(tasks)
        stop_reason = None
        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    stop_reason = CANCELLED_REASON
                    break
                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    stop_reason = DEADLINE_REASON
                    break
                waiting = set(pending)
                if cancel_waiter is not None:
                    waiting.add(cancel_waiter)
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if pending:
            logger.warning(f"Stopped evaluation batch ({stop_reason}); {len(pending)} units cancelled")
        return stop_reason if pending else None

    async def _run_unit(
        self,
        candidate: PromptCandidate,
        case: TaskCase,
        timeout: float,
    ) -> EvaluationResult:
        """Run one unit, converting every failure into a result."""
        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            trajectory = await asyncio.wait_for(self._call_harness(candidate, case), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Unit {candidate.id}/{case.id} timed out after {timeout}s")
            return EvaluationResult(
                candidate_id=candidate.id,
                task_case_id=case.id,
                status=EvaluationStatus.TIMEOUT,
                duration_ms=elapsed_ms(),
                reason=f"timeout after {timeout}s",
            )
        except EvaluationFailed as e:
            logger.debug(f"Unit {candidate.id}/{case.id} failed: {e.reason}")
            return EvaluationResult(
                candidate_id=candidate.id,
                task_case_id=case.id,
                status=EvaluationStatus.ERROR,
                duration_ms=elapsed_ms(),
                trajectory=e.trajectory if isinstance(e.trajectory, Trajectory) else None,
                reason=e.reason,
            )
        except Exception as e:
            logger.warning(f"Harness raised for {candidate.id}/{case.id}: {type(e).__name__}: {e}")
            return EvaluationResult(
                candidate_id=candidate.id,
                task_case_id=case.id,
                status=EvaluationStatus.ERROR,
                duration_ms=elapsed_ms(),
                reason=f"{type(e).__name__}: {e}",
            )

        return EvaluationResult(
            candidate_id=candidate.id,
            task_case_id=case.id,
            status=EvaluationStatus.SUCCESS if trajectory.success else EvaluationStatus.FAILED,
            duration_ms=elapsed_ms(),
            token_cost=trajectory.token_cost,
            quality_score=trajectory.quality_score,
            trajectory=trajectory,
        )

    async def _call_harness(self, candidate: PromptCandidate, case: TaskCase) -> Trajectory:
        if inspect.iscoroutinefunction(self._execute):
            trajectory = await self._execute(candidate, case)
        else:
            trajectory = await asyncio.to_thread(self._execute, candidate, case)
            if inspect.isawaitable(trajectory):
                trajectory = await trajectory
        if not isinstance(trajectory, Trajectory):
            raise EvaluationFailed(f"Harness returned {type(trajectory).__name__}, expected Trajectory")
        return trajectory
