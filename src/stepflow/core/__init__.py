"""Core engine components"""

from .engine import WorkflowEngine
from .executor import StepExecutor, FunctionStep, StepRegistry, invoke_step
from .retry import RetryPolicyEvaluator, RetryDecision, RetryVerdict, match_rule
from .catch import CatchRouter, CatchDecision
from .parser import WorkflowParser

__all__ = [
    "WorkflowEngine",
    "StepExecutor",
    "FunctionStep",
    "StepRegistry",
    "invoke_step",
    "RetryPolicyEvaluator",
    "RetryDecision",
    "RetryVerdict",
    "match_rule",
    "CatchRouter",
    "CatchDecision",
    "WorkflowParser"
]
