"""
Workflow execution models
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from ..exceptions import WorkflowFailedError, WorkflowTimeoutError


ERROR_KEY = "error"

# Reserved failure kinds produced by the engine itself
TIMEOUT_EXCEEDED = "TimeoutExceeded"
STEP_TIMEOUT = "StepTimeout"
INVALID_STEP_OUTPUT = "InvalidStepOutput"
WORKFLOW_FAILED = "WorkflowFailed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Failure:
    """A classified step failure.

    Failures are plain values: retry and catch matching compare ``kind``
    case-sensitively and never inspect exception types.
    """
    kind: str
    message: Optional[str] = None
    detail: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "detail": self.detail,
        }

    @classmethod
    def from_exception(cls, error: BaseException) -> "Failure":
        return cls(kind=type(error).__name__, message=str(error) or None)


class Disposition(str, Enum):
    """How a run ended"""
    SUCCESS = "success"
    HANDLED_FAILURE = "handled_failure"
    FAILURE = "failure"


class TransitionOutcome(str, Enum):
    """Outcome of one attempt"""
    SUCCEEDED = "succeeded"
    RETRY_SCHEDULED = "retry_scheduled"
    CAUGHT = "caught"
    FATAL = "fatal"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class TransitionRecord:
    """One entry of the append-only audit log"""
    node: str
    attempt: int
    outcome: TransitionOutcome
    elapsed: float
    timestamp: datetime = field(default_factory=utcnow)
    error_kind: Optional[str] = None
    delay: Optional[float] = None
    next_node: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node": self.node,
            "attempt": self.attempt,
            "outcome": self.outcome.value,
            "elapsed": self.elapsed,
            "timestamp": self.timestamp.isoformat(),
            "error_kind": self.error_kind,
            "delay": self.delay,
            "next_node": self.next_node,
        }


@dataclass
class ExecutionState:
    """Mutable record threaded through a single run"""
    workflow_name: str
    current_node: str
    payload: Dict[str, Any]
    started_at: float
    deadline: float
    execution_id: str = field(default_factory=lambda: uuid4().hex)
    attempt: int = 0
    transitions: List[TransitionRecord] = field(default_factory=list)
    caught: List[Failure] = field(default_factory=list)

    def enter(self, node_name: str):
        """Move to another node and reset its attempt counter"""
        self.current_node = node_name
        self.attempt = 0

    def begin_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def elapsed(self, now: float) -> float:
        return now - self.started_at

    def remaining(self, now: float) -> float:
        return self.deadline - now

    def merge_error(self, failure: Failure):
        """Store failure metadata under the reserved key, keeping other fields"""
        payload = dict(self.payload)
        payload[ERROR_KEY] = failure.to_dict()
        self.payload = payload
        self.caught.append(failure)


@dataclass
class RunResult:
    """Result of WorkflowEngine.start"""
    execution_id: str
    workflow_name: str
    disposition: Disposition
    payload: Dict[str, Any]
    transitions: List[TransitionRecord]
    failure: Optional[Failure] = None
    duration: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.disposition != Disposition.FAILURE

    @property
    def timed_out(self) -> bool:
        return self.failure is not None and self.failure.kind == TIMEOUT_EXCEEDED

    def attempts_for(self, node_name: str) -> int:
        return sum(1 for record in self.transitions if record.node == node_name)

    def raise_for_failure(self):
        """Raise the exception form of an unrecovered failure"""
        if self.disposition != Disposition.FAILURE:
            return
        if self.timed_out:
            raise WorkflowTimeoutError(self.failure, self)
        raise WorkflowFailedError(self.failure, self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow": self.workflow_name,
            "disposition": self.disposition.value,
            "payload": copy.deepcopy(self.payload),
            "failure": self.failure.to_dict() if self.failure else None,
            "duration": self.duration,
            "transitions": [record.to_dict() for record in self.transitions],
        }


def copy_payload(payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return copy.deepcopy(dict(payload or {}))
