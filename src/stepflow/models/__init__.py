"""Workflow and execution models"""

from .workflow import (
    WorkflowDefinition, StepNode, RetryRule, CatchRule, NodeKind,
    WILDCARD, DEFAULT_TIME_BUDGET
)
from .execution import (
    Failure, ExecutionState, RunResult, TransitionRecord, TransitionOutcome,
    Disposition, ERROR_KEY, TIMEOUT_EXCEEDED, STEP_TIMEOUT, INVALID_STEP_OUTPUT,
    WORKFLOW_FAILED
)

__all__ = [
    "WorkflowDefinition",
    "StepNode",
    "RetryRule",
    "CatchRule",
    "NodeKind",
    "WILDCARD",
    "DEFAULT_TIME_BUDGET",
    "Failure",
    "ExecutionState",
    "RunResult",
    "TransitionRecord",
    "TransitionOutcome",
    "Disposition",
    "ERROR_KEY",
    "TIMEOUT_EXCEEDED",
    "STEP_TIMEOUT",
    "INVALID_STEP_OUTPUT",
    "WORKFLOW_FAILED",
]
