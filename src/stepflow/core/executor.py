"""
Step executors and their invocation
"""
import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..exceptions import StepError
from ..models.execution import (
    Failure, INVALID_STEP_OUTPUT, STEP_TIMEOUT, copy_payload
)


logger = logging.getLogger(__name__)


StepOutcome = Union[Mapping[str, Any], Failure]


class StepExecutor(ABC):
    """Base class for units of work.

    ``execute`` receives the current payload and returns the next payload, or
    a ``Failure``. Raising ``StepError`` is equivalent to returning a failure.

    The engine may call ``execute`` several times with the same payload when a
    retry rule matches. It does not deduplicate attempts, so a step whose side
    effect is not safely repeatable has to guard itself, for instance with an
    idempotency token carried in the payload.
    """

    @abstractmethod
    async def execute(self, payload: Dict[str, Any]) -> StepOutcome:
        pass


class FunctionStep(StepExecutor):
    """Adapts a plain sync or async callable to the executor interface"""

    def __init__(self, func: Callable[[Dict[str, Any]], Any], name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", repr(func))

    async def execute(self, payload: Dict[str, Any]) -> StepOutcome:
        result = self.func(payload)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self):
        return f"FunctionStep({self.name})"


def as_executor(target: Union[StepExecutor, Callable[..., Any]]) -> StepExecutor:
    if isinstance(target, StepExecutor):
        return target
    if callable(target):
        return FunctionStep(target)
    raise TypeError(f"Cannot use {target!r} as a step executor")


class StepRegistry:
    """Maps resource names used in workflow documents to executors"""

    def __init__(self):
        self._executors: Dict[str, StepExecutor] = {}

    def register(self, resource: str, target: Union[StepExecutor, Callable[..., Any]]):
        self._executors[resource] = as_executor(target)
        logger.debug(f"Registered step resource '{resource}'")

    def step(self, resource: str):
        """Decorator form of ``register``"""
        def decorator(func):
            self.register(resource, func)
            return func
        return decorator

    def resolve(self, resource: str) -> StepExecutor:
        try:
            return self._executors[resource]
        except KeyError:
            raise KeyError(f"No step registered for resource '{resource}'") from None

    def __contains__(self, resource: object) -> bool:
        return resource in self._executors

    def names(self):
        return sorted(self._executors)


async def _attempt(executor: StepExecutor, payload: Mapping[str, Any]) -> StepOutcome:
    try:
        result = await executor.execute(copy_payload(payload))
    except StepError as e:
        return Failure(e.kind, e.message, e.detail)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug(f"Step raised {type(e).__name__}: {e}", exc_info=True)
        return Failure.from_exception(e)

    if isinstance(result, Failure):
        return result
    if not isinstance(result, Mapping):
        return Failure(
            INVALID_STEP_OUTPUT,
            f"Step returned {type(result).__name__}, expected a mapping"
        )
    return dict(result)


async def invoke_step(
    executor: StepExecutor,
    payload: Mapping[str, Any],
    timeout: Optional[float] = None
) -> StepOutcome:
    """Run one attempt and classify whatever goes wrong.

    Returns the step's output mapping or a ``Failure``. Only expiry of the
    ``timeout`` bound becomes a ``StepTimeout`` failure; a ``TimeoutError``
    raised by the step itself is classified like any other exception.
    """
    if timeout is None:
        return await _attempt(executor, payload)
    try:
        return await asyncio.wait_for(_attempt(executor, payload), timeout)
    except asyncio.TimeoutError:
        return Failure(STEP_TIMEOUT, f"Step did not finish within {timeout}s")
