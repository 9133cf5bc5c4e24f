"""
Time budget enforcement tests
"""
import asyncio

import pytest

from conftest import FlakyStep, single_task_workflow
from stepflow.core import WorkflowEngine
from stepflow.exceptions import StepError, WorkflowTimeoutError
from stepflow.models import CatchRule, Disposition, Failure, RetryRule, TransitionOutcome


class TestTimeBudget:
    """Runs that hit the wall-clock budget"""

    @pytest.mark.asyncio
    async def test_attempt_ending_past_deadline_times_out(self, engine, clock):
        def slow(payload):
            clock.advance(6)
            return {"ok": True}

        result = await engine.start(single_task_workflow(slow), {}, time_budget=5)

        assert result.disposition == Disposition.FAILURE
        assert result.timed_out
        assert result.failure.kind == "TimeoutExceeded"
        assert result.transitions[-1].outcome == TransitionOutcome.TIMED_OUT
        with pytest.raises(WorkflowTimeoutError):
            result.raise_for_failure()

    @pytest.mark.asyncio
    async def test_timeout_is_not_caught(self, engine, clock, catch_any):
        def slow(payload):
            clock.advance(10)
            raise StepError("ErrorA")

        result = await engine.start(
            single_task_workflow(slow, catch=[catch_any]), {}, time_budget=5
        )

        assert result.disposition == Disposition.FAILURE
        assert result.failure.kind == "TimeoutExceeded"
        assert "error" not in result.payload

    @pytest.mark.asyncio
    async def test_budget_runs_out_between_retries(self, engine, clock):
        calls = []

        def failing(payload):
            calls.append(clock())
            clock.advance(2)
            raise StepError("ErrorA")

        workflow = single_task_workflow(
            failing, retry=[RetryRule(errors=("ErrorA",), interval=1, max_attempts=10)]
        )

        result = await engine.start(workflow, {}, time_budget=5)

        assert len(calls) == 2
        assert result.timed_out
        assert [r.outcome for r in result.transitions] == [
            TransitionOutcome.RETRY_SCHEDULED,
            TransitionOutcome.TIMED_OUT,
        ]

    @pytest.mark.asyncio
    async def test_backoff_longer_than_budget_falls_through_to_catch(
        self, engine, clock, catch_any
    ):
        step = FlakyStep("ErrorA", failures=10)
        workflow = single_task_workflow(
            step,
            retry=[RetryRule(errors=("ErrorA",), interval=10, max_attempts=5)],
            catch=[catch_any]
        )

        result = await engine.start(workflow, {}, time_budget=5)

        assert step.calls == 1
        assert clock.sleeps == []
        assert result.disposition == Disposition.HANDLED_FAILURE
        assert result.payload["error"]["kind"] == "ErrorA"

    @pytest.mark.asyncio
    async def test_backoff_longer_than_budget_is_fatal_without_catch(self, engine, clock):
        step = FlakyStep("ErrorA", failures=10)
        workflow = single_task_workflow(
            step, retry=[RetryRule(errors=("ErrorA",), interval=10, max_attempts=5)]
        )

        result = await engine.start(workflow, {}, time_budget=5)

        assert step.calls == 1
        assert result.disposition == Disposition.FAILURE
        assert result.failure.kind == "ErrorA"
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_definition_budget_is_the_default(self, engine, clock):
        def slow(payload):
            clock.advance(3)
            return {}

        result = await engine.start(single_task_workflow(slow, time_budget=2))

        assert result.timed_out
        assert result.failure.detail == {"node": "Work", "budget": 2}

    @pytest.mark.asyncio
    async def test_hanging_step_is_interrupted(self):
        async def hang(payload):
            await asyncio.sleep(30)
            return {}

        engine = WorkflowEngine()
        result = await asyncio.wait_for(
            engine.start(single_task_workflow(hang), {}, time_budget=0.1),
            timeout=5
        )

        assert result.disposition == Disposition.FAILURE
        assert result.failure.kind == "TimeoutExceeded"

    @pytest.mark.asyncio
    async def test_step_timeout_is_retriable(self):
        calls = 0

        async def slow_once(payload):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(30)
            return {"calls": calls}

        workflow = single_task_workflow(
            slow_once,
            retry=[RetryRule(errors=("StepTimeout",), interval=0, max_attempts=2)],
            timeout=0.05
        )

        result = await WorkflowEngine().start(workflow, {}, time_budget=10)

        assert result.disposition == Disposition.SUCCESS
        assert result.payload == {"calls": 2}
        assert result.transitions[0].error_kind == "StepTimeout"

    @pytest.mark.asyncio
    async def test_step_timeout_can_be_caught(self):
        async def hang(payload):
            await asyncio.sleep(30)

        workflow = single_task_workflow(
            hang,
            catch=[CatchRule(errors=("StepTimeout",), next="Recovered")],
            timeout=0.05
        )

        result = await WorkflowEngine().start(workflow, {}, time_budget=10)

        assert result.disposition == Disposition.HANDLED_FAILURE
        assert result.payload["error"]["kind"] == "StepTimeout"

    @pytest.mark.asyncio
    async def test_timeout_raised_by_step_is_a_business_failure(self, engine):
        calls = 0

        async def remote_call(payload):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise asyncio.TimeoutError()
            return {"calls": calls}

        workflow = single_task_workflow(
            remote_call,
            retry=[RetryRule(errors=("TimeoutError",), interval=0, max_attempts=2)]
        )

        result = await engine.start(workflow, {}, time_budget=60)

        assert result.disposition == Disposition.SUCCESS
        assert result.payload == {"calls": 2}
        assert result.transitions[0].outcome == TransitionOutcome.RETRY_SCHEDULED
        assert result.transitions[0].error_kind == "TimeoutError"

    @pytest.mark.asyncio
    async def test_returned_step_timeout_is_catchable_without_node_timeout(self, engine):
        workflow = single_task_workflow(
            lambda payload: Failure("StepTimeout", "upstream gave up"),
            catch=[CatchRule(errors=("StepTimeout",), next="Recovered")]
        )

        result = await engine.start(workflow, {}, time_budget=60)

        assert result.disposition == Disposition.HANDLED_FAILURE
        assert not result.timed_out
        assert result.payload["error"]["kind"] == "StepTimeout"
