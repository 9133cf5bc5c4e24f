"""
Pytest configuration and shared fixtures
"""
import pytest

from stepflow.core import FunctionStep, WorkflowEngine
from stepflow.exceptions import StepError
from stepflow.integrations import InMemoryPublisher
from stepflow.models import (
    CatchRule, NodeKind, RetryRule, StepNode, WorkflowDefinition
)
from stepflow.samples import build_order_workflow
from stepflow.storage import InMemoryAuditSink


class FakeClock:
    """Monotonic clock driven by the test; ``sleep`` advances it instantly"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FlakyStep:
    """Fails with ``kind`` for the first ``failures`` calls, then succeeds"""

    def __init__(self, kind: str, failures: int, output=None):
        self.kind = kind
        self.failures = failures
        self.output = output or {"done": True}
        self.calls = 0

    async def __call__(self, payload):
        self.calls += 1
        if self.calls <= self.failures:
            raise StepError(self.kind, f"failure #{self.calls}")
        return {**payload, **self.output}


def task(name, func, next=None, end=False, retry=(), catch=(), timeout=None):
    return StepNode(
        name=name,
        executor=FunctionStep(func),
        next=next,
        end=end if next is None else False,
        retry=tuple(retry),
        catch=tuple(catch),
        timeout=timeout
    )


def single_task_workflow(func, retry=(), catch=(), timeout=None, time_budget=60.0):
    """One task node, optionally caught into a ``Recovered`` succeed node"""
    nodes = [task("Work", func, end=True, retry=retry, catch=catch, timeout=timeout)]
    if catch:
        nodes.append(StepNode(name="Recovered", kind=NodeKind.SUCCEED))
    return WorkflowDefinition(
        name="single",
        nodes=nodes,
        start_at="Work",
        time_budget=time_budget
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def engine(clock, audit_sink):
    """Engine on a fake clock, recording transitions in memory"""
    return WorkflowEngine(audit_sinks=[audit_sink], clock=clock, sleep=clock.sleep)


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest.fixture
def order_workflow(publisher):
    """Order workflow with plenty of stock"""
    return build_order_workflow(publisher, stock=lambda product_id: 100)


@pytest.fixture
def retry_any():
    return RetryRule(errors=("*",), interval=1.0, max_attempts=3, backoff_rate=2.0)


@pytest.fixture
def catch_any():
    return CatchRule(errors=("*",), next="Recovered")
