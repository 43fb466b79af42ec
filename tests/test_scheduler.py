import asyncio
import threading
import time

import pytest

from gepa_engine.core.harness import ExecutionHarness
from gepa_engine.core.scheduler import DEADLINE_REASON, EvaluationScheduler
from gepa_engine.errors import EvaluationFailed, InsufficientResults
from gepa_engine.models import EvaluationStatus, TaskCase, Trajectory

from conftest import keyword_harness, make_candidate, make_cases


def _cases(count):
    return [TaskCase(id=f"case-{i}", input={"n": i}, expected="ok") for i in range(count)]


def _slow_after(limit):
    """Harness that times out on every case whose index is at least limit."""

    async def harness(candidate, case):
        if case.input["n"] >= limit:
            await asyncio.sleep(5)
        return Trajectory(success=True, quality_score=1.0, token_cost=2.0, output="ok", expected="ok")

    return harness


def test_six_successes_four_timeouts_returns_all_results():
    scheduler = EvaluationScheduler(_slow_after(6), min_success_fraction=0.5)
    candidate = make_candidate()

    results = asyncio.run(scheduler.evaluate([candidate], _cases(10), concurrency=10, timeout_per_eval=0.05))

    assert len(results) == 10
    statuses = [r.status for r in results]
    assert statuses.count(EvaluationStatus.SUCCESS) == 6
    assert statuses.count(EvaluationStatus.TIMEOUT) == 4


def test_three_of_ten_completed_raises_insufficient_results():
    scheduler = EvaluationScheduler(_slow_after(3), min_success_fraction=0.5)

    with pytest.raises(InsufficientResults) as info:
        asyncio.run(scheduler.evaluate([make_candidate()], _cases(10), concurrency=10, timeout_per_eval=0.05))

    assert info.value.completed == 3
    assert info.value.total == 10
    assert len(info.value.results) == 10


def test_results_keep_input_order_regardless_of_completion():
    async def harness(candidate, case):
        await asyncio.sleep(0.01 * (5 - case.input["n"]))
        return Trajectory(success=True, output=str(case.input["n"]))

    first, second = make_candidate("first"), make_candidate("second")
    scheduler = EvaluationScheduler(harness)

    results = asyncio.run(scheduler.evaluate([first, second], _cases(5), concurrency=3, timeout_per_eval=1.0))

    assert [(r.candidate_id, r.task_case_id) for r in results] == [
        (c.id, f"case-{i}") for c in (first, second) for i in range(5)
    ]


def test_evaluation_failed_becomes_error_result_with_trajectory():
    partial = Trajectory(output="half done")

    async def harness(candidate, case):
        if case.input["n"] == 0:
            raise EvaluationFailed("tool crashed", trajectory=partial)
        return Trajectory(success=False, quality_score=0.3)

    results = asyncio.run(
        EvaluationScheduler(harness).evaluate([make_candidate()], _cases(3), concurrency=2, timeout_per_eval=1.0)
    )

    assert results[0].status == EvaluationStatus.ERROR
    assert results[0].reason == "tool crashed"
    assert results[0].trajectory == partial
    assert [r.status for r in results[1:]] == [EvaluationStatus.FAILED, EvaluationStatus.FAILED]


def test_unexpected_exception_and_wrong_return_type_are_recorded():
    async def harness(candidate, case):
        if case.input["n"] == 0:
            raise RuntimeError("boom")
        if case.input["n"] == 1:
            return "not a trajectory"
        return Trajectory(success=True)

    results = asyncio.run(
        EvaluationScheduler(harness, min_success_fraction=0.0).evaluate(
            [make_candidate()], _cases(3), concurrency=3, timeout_per_eval=1.0
        )
    )

    assert results[0].status == EvaluationStatus.ERROR
    assert "RuntimeError" in results[0].reason
    assert results[1].status == EvaluationStatus.ERROR
    assert results[2].status == EvaluationStatus.SUCCESS


def test_sync_harness_runs_in_worker_threads():
    threads = set()

    class SleepyHarness(ExecutionHarness):
        def execute(self, candidate, task_case):
            threads.add(threading.get_ident())
            time.sleep(0.01)
            return Trajectory(success=True, quality_score=1.0)

    results = asyncio.run(
        EvaluationScheduler(SleepyHarness()).evaluate([make_candidate()], _cases(4), concurrency=4, timeout_per_eval=1.0)
    )

    assert all(r.success for r in results)
    assert threading.get_ident() not in threads


def test_concurrency_bound_is_respected():
    running = 0
    peak = 0

    async def harness(candidate, case):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return Trajectory(success=True)

    asyncio.run(EvaluationScheduler(harness).evaluate([make_candidate()], _cases(12), concurrency=3, timeout_per_eval=1.0))

    assert peak <= 3


def test_generation_deadline_cancels_remaining_units():
    scheduler = EvaluationScheduler(_slow_after(2), min_success_fraction=0.0)

    results = asyncio.run(
        scheduler.evaluate(
            [make_candidate()], _cases(4), concurrency=4, timeout_per_eval=10.0, generation_timeout=0.1
        )
    )

    assert [r.status for r in results[:2]] == [EvaluationStatus.SUCCESS, EvaluationStatus.SUCCESS]
    assert all(r.status == EvaluationStatus.CANCELLED for r in results[2:])
    assert results[3].reason == DEADLINE_REASON


def test_cancel_event_stops_batch():
    async def run():
        cancel = asyncio.Event()
        scheduler = EvaluationScheduler(_slow_after(1), min_success_fraction=0.0)
        task = asyncio.ensure_future(
            scheduler.evaluate([make_candidate()], _cases(3), concurrency=3, timeout_per_eval=10.0, cancel_event=cancel)
        )
        await asyncio.sleep(0.05)
        cancel.set()
        return await task

    results = asyncio.run(run())

    assert results[0].status == EvaluationStatus.SUCCESS
    assert [r.reason for r in results[1:]] == ["cancelled", "cancelled"]


def test_empty_batch_returns_nothing():
    assert asyncio.run(EvaluationScheduler(keyword_harness).evaluate([], make_cases(), 2, 1.0)) == []


def test_keyword_harness_scores_success_and_cost():
    candidate = make_candidate("Think step by step and verify.")
    results = asyncio.run(EvaluationScheduler(keyword_harness).evaluate([candidate], make_cases(4), 4, 1.0))
    assert [r.success for r in results] == [True, True, False, False]
    assert all(r.token_cost > 0 for r in results)
