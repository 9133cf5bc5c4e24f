"""
Workflow execution engine
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from ..models.execution import (
    ERROR_KEY, TIMEOUT_EXCEEDED, WORKFLOW_FAILED,
    Disposition, ExecutionState, Failure, RunResult, TransitionOutcome,
    TransitionRecord, copy_payload
)
from ..models.workflow import NodeKind, StepNode, WorkflowDefinition
from ..monitoring import RunEventLog, RunMetrics, StepTracer
from ..storage.repository import AuditSink
from .catch import CatchRouter
from .executor import invoke_step
from .retry import RetryPolicyEvaluator


logger = logging.getLogger(__name__)


Ending = Tuple[Disposition, Optional[Failure]]


class WorkflowEngine:
    """Drives one workflow run at a time per ``start`` call.

    The engine keeps no per-run state of its own, so a single instance (and a
    single ``WorkflowDefinition``) can serve many concurrent runs. Each run
    owns an ``ExecutionState`` that lives only for the duration of ``start``.
    """

    def __init__(
        self,
        retry_evaluator: Optional[RetryPolicyEvaluator] = None,
        catch_router: Optional[CatchRouter] = None,
        audit_sinks: Optional[List[AuditSink]] = None,
        metrics: Optional[RunMetrics] = None,
        tracer: Optional[StepTracer] = None,
        event_logger: Optional[RunEventLog] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.retry_evaluator = retry_evaluator or RetryPolicyEvaluator()
        self.catch_router = catch_router or CatchRouter()
        self.audit_sinks: List[AuditSink] = list(audit_sinks or [])
        self.metrics = metrics or RunMetrics()
        self.tracer = tracer or StepTracer(clock)
        self.events = event_logger or RunEventLog()
        self._clock = clock
        self._sleep = sleep

    def add_audit_sink(self, sink: AuditSink):
        self.audit_sinks.append(sink)

    async def start(
        self,
        workflow: WorkflowDefinition,
        payload: Optional[Mapping[str, Any]] = None,
        time_budget: Optional[float] = None
    ) -> RunResult:
        """
        Run a workflow to completion

        Args:
            workflow: the definition to run
            payload: initial payload, copied before the run starts
            time_budget: wall-clock budget in seconds, defaults to the definition's

        Returns:
            RunResult: disposition, final payload and transition log. Business
            failures and timeouts are reported here, never raised.
        """
        budget = workflow.time_budget if time_budget is None else time_budget
        if budget <= 0:
            raise ValueError(f"time_budget must be positive, got {budget}")

        started = self._clock()
        state = ExecutionState(
            workflow_name=workflow.name,
            current_node=workflow.start_at,
            payload=copy_payload(payload),
            started_at=started,
            deadline=started + budget
        )

        self.events.log(
            "run_started",
            execution_id=state.execution_id,
            workflow=workflow.name,
            budget=budget
        )

        ending: Optional[Ending] = None
        while ending is None:
            node = workflow.get_node(state.current_node)
            if node.kind == NodeKind.TASK:
                ending = await self._run_task(node, state, budget)
            else:
                ending = await self._enter_terminal(node, state)

        disposition, failure = ending
        duration = self._clock() - started

        self.metrics.record_run(workflow.name, disposition, duration)
        self.events.log(
            "run_finished",
            level=logging.WARNING if disposition == Disposition.FAILURE else logging.INFO,
            execution_id=state.execution_id,
            workflow=workflow.name,
            disposition=disposition.value,
            failure=failure.kind if failure else None,
            duration=duration
        )

        return RunResult(
            execution_id=state.execution_id,
            workflow_name=workflow.name,
            disposition=disposition,
            payload=state.payload,
            transitions=list(state.transitions),
            failure=failure,
            duration=duration
        )

    async def _run_task(
        self,
        node: StepNode,
        state: ExecutionState,
        budget: float
    ) -> Optional[Ending]:
        """Attempt a task node until it advances, is caught, or ends the run"""
        while True:
            remaining = state.remaining(self._clock())
            if remaining <= 0:
                return await self._time_out(node, state, state.attempt + 1, budget)

            attempt = state.begin_attempt()
            step_timeout = node.timeout
            if step_timeout is not None and step_timeout >= remaining:
                step_timeout = None

            attempt_started = self._clock()
            budget_expired = False
            with self.tracer.span(
                f"step.{node.name}",
                execution_id=state.execution_id,
                attempt=attempt
            ):
                try:
                    # invoke_step never lets TimeoutError escape, so this one is the budget
                    outcome = await asyncio.wait_for(
                        invoke_step(node.executor, state.payload, timeout=step_timeout),
                        remaining
                    )
                except asyncio.TimeoutError:
                    budget_expired = True

            self.metrics.record_attempt(
                state.workflow_name, node.name, self._clock() - attempt_started
            )

            # An attempt that ends past the deadline never counts, whatever it returned
            if budget_expired or self._clock() >= state.deadline:
                return await self._time_out(node, state, attempt, budget)

            if not isinstance(outcome, Failure):
                state.payload = dict(outcome)
                if node.end:
                    await self._record(state, node.name, attempt, TransitionOutcome.SUCCEEDED)
                    return self._success(state)
                await self._record(
                    state, node.name, attempt, TransitionOutcome.SUCCEEDED, next_node=node.next
                )
                state.enter(node.next)
                return None

            decision = self.retry_evaluator.evaluate(outcome, node.retry, attempt)
            if decision.should_retry:
                if decision.delay >= state.remaining(self._clock()):
                    logger.info(
                        f"Backoff of {decision.delay:.3f}s for '{node.name}' would exceed "
                        f"the remaining budget, not retrying {outcome.kind}"
                    )
                else:
                    await self._record(
                        state, node.name, attempt, TransitionOutcome.RETRY_SCHEDULED,
                        error_kind=outcome.kind, delay=decision.delay
                    )
                    if decision.delay > 0:
                        await self._sleep(decision.delay)
                    continue

            catch = self.catch_router.route(outcome, node.catch)
            if catch.caught:
                state.merge_error(outcome)
                await self._record(
                    state, node.name, attempt, TransitionOutcome.CAUGHT,
                    error_kind=outcome.kind, next_node=catch.landing
                )
                state.enter(catch.landing)
                return None

            await self._record(
                state, node.name, attempt, TransitionOutcome.FATAL, error_kind=outcome.kind
            )
            logger.warning(
                f"Run {state.execution_id} failed at '{node.name}' with unhandled "
                f"{outcome.kind}: {outcome.message}"
            )
            return Disposition.FAILURE, outcome

    async def _enter_terminal(self, node: StepNode, state: ExecutionState) -> Ending:
        attempt = state.begin_attempt()
        if node.kind == NodeKind.SUCCEED:
            await self._record(state, node.name, attempt, TransitionOutcome.SUCCEEDED)
            return self._success(state)

        failure = Failure(
            kind=node.error or WORKFLOW_FAILED,
            message=node.cause,
            detail=state.payload.get(ERROR_KEY)
        )
        await self._record(
            state, node.name, attempt, TransitionOutcome.FATAL, error_kind=failure.kind
        )
        return Disposition.FAILURE, failure

    def _success(self, state: ExecutionState) -> Ending:
        if state.caught:
            return Disposition.HANDLED_FAILURE, state.caught[-1]
        return Disposition.SUCCESS, None

    async def _time_out(
        self,
        node: StepNode,
        state: ExecutionState,
        attempt: int,
        budget: float
    ) -> Ending:
        failure = Failure(
            TIMEOUT_EXCEEDED,
            f"Run exceeded its time budget of {budget}s",
            {"node": node.name, "budget": budget}
        )
        await self._record(
            state, node.name, attempt, TransitionOutcome.TIMED_OUT, error_kind=TIMEOUT_EXCEEDED
        )
        logger.warning(f"Run {state.execution_id} timed out at '{node.name}'")
        return Disposition.FAILURE, failure

    async def _record(
        self,
        state: ExecutionState,
        node_name: str,
        attempt: int,
        outcome: TransitionOutcome,
        error_kind: Optional[str] = None,
        delay: Optional[float] = None,
        next_node: Optional[str] = None
    ):
        record = TransitionRecord(
            node=node_name,
            attempt=attempt,
            outcome=outcome,
            elapsed=state.elapsed(self._clock()),
            error_kind=error_kind,
            delay=delay,
            next_node=next_node
        )
        state.transitions.append(record)
        self.metrics.record_transition(state.workflow_name, node_name, outcome)

        self.events.log(
            f"step_{outcome.value}",
            execution_id=state.execution_id,
            node=node_name,
            attempt=attempt,
            error_kind=error_kind
        )

        for sink in self.audit_sinks:
            try:
                await sink.append(state.execution_id, record)
            except Exception as e:
                logger.error(
                    f"Audit sink {type(sink).__name__} rejected a record: {e}",
                    exc_info=True
                )

    def describe(self) -> Dict[str, Any]:
        return {
            "audit_sinks": [type(sink).__name__ for sink in self.audit_sinks],
            "workflows": self.metrics.summary()
        }
