"""
stepflow - step workflow execution engine with retry, catch and time budgets
"""

__version__ = "1.0.0"

from .core import (
    WorkflowEngine, WorkflowParser, StepExecutor, FunctionStep, StepRegistry,
    RetryPolicyEvaluator, CatchRouter
)
from .models import (
    WorkflowDefinition, StepNode, RetryRule, CatchRule, NodeKind, Failure,
    RunResult, Disposition, TransitionOutcome, TransitionRecord
)
from .exceptions import (
    StepflowError, StepError, WorkflowFailedError, WorkflowTimeoutError,
    WorkflowValidationError, WorkflowParseError
)

__all__ = [
    "WorkflowEngine",
    "WorkflowParser",
    "StepExecutor",
    "FunctionStep",
    "StepRegistry",
    "RetryPolicyEvaluator",
    "CatchRouter",
    "WorkflowDefinition",
    "StepNode",
    "RetryRule",
    "CatchRule",
    "NodeKind",
    "Failure",
    "RunResult",
    "Disposition",
    "TransitionOutcome",
    "TransitionRecord",
    "StepflowError",
    "StepError",
    "WorkflowFailedError",
    "WorkflowTimeoutError",
    "WorkflowValidationError",
    "WorkflowParseError"
]
