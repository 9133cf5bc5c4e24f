"""
stepflow exception definitions
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .models.execution import Failure, RunResult


class StepflowError(Exception):
    """Base class for stepflow errors"""
    pass


class WorkflowParseError(StepflowError):
    """A workflow document could not be read"""
    pass


class WorkflowValidationError(StepflowError):
    """A workflow definition breaks one of its structural rules"""
    pass


class PersistenceError(StepflowError):
    """Raised when an audit sink or repository backend fails"""
    pass


class NotificationError(StepflowError):
    """Publishing an incident record failed"""
    pass


class StepError(StepflowError):
    """Raised by a step to report a classified business failure.

    ``kind`` is the tag matched by retry and catch rules, so it should be a
    stable identifier such as ``"PaymentRejected"``.
    """

    def __init__(self, kind: str, message: Optional[str] = None, detail: Any = None):
        self.kind = kind
        self.message = message
        self.detail = detail
        super().__init__(f"{kind}: {message}" if message else kind)


class WorkflowFailedError(StepflowError):
    """A run ended with disposition Failure"""

    def __init__(self, failure: "Failure", result: Optional["RunResult"] = None):
        self.failure = failure
        self.result = result
        msg = f"Workflow failed with {failure.kind}"
        if failure.message:
            msg += f": {failure.message}"
        super().__init__(msg)


class WorkflowTimeoutError(WorkflowFailedError):
    """A run exceeded its wall-clock budget"""
    pass
