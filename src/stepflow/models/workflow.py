"""
Workflow definition models
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional, Tuple

from ..exceptions import WorkflowValidationError

if TYPE_CHECKING:
    from ..core.executor import StepExecutor


WILDCARD = "*"

DEFAULT_TIME_BUDGET = 300.0


class NodeKind(str, Enum):
    """Node kinds"""
    TASK = "task"
    SUCCEED = "succeed"
    FAIL = "fail"


def _normalize_errors(errors: Iterable[str], owner: str) -> Tuple[str, ...]:
    kinds = tuple(errors)
    if not kinds:
        raise WorkflowValidationError(f"{owner} must match at least one error kind")
    for kind in kinds:
        if not isinstance(kind, str) or not kind:
            raise WorkflowValidationError(f"{owner} has an invalid error kind: {kind!r}")
    if WILDCARD in kinds and len(kinds) > 1:
        raise WorkflowValidationError(
            f"{owner} mixes the wildcard with specific error kinds: {list(kinds)}"
        )
    return kinds


@dataclass(frozen=True)
class RetryRule:
    """Retry rule for a set of error kinds"""
    errors: Tuple[str, ...] = (WILDCARD,)
    interval: float = 1.0           # seconds before the first retry
    max_attempts: int = 3           # total attempts, the first one included
    backoff_rate: float = 2.0
    max_backoff: Optional[float] = None
    jitter: bool = False

    def __post_init__(self):
        object.__setattr__(self, "errors", _normalize_errors(self.errors, "Retry rule"))
        if self.max_attempts < 1:
            raise WorkflowValidationError(
                f"Retry rule max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.backoff_rate < 1.0:
            raise WorkflowValidationError(
                f"Retry rule backoff_rate must be >= 1.0, got {self.backoff_rate}"
            )
        if self.interval < 0:
            raise WorkflowValidationError(
                f"Retry rule interval must be >= 0, got {self.interval}"
            )
        if self.max_backoff is not None and self.max_backoff < 0:
            raise WorkflowValidationError(
                f"Retry rule max_backoff must be >= 0, got {self.max_backoff}"
            )

    @property
    def is_wildcard(self) -> bool:
        return self.errors == (WILDCARD,)


@dataclass(frozen=True)
class CatchRule:
    """Catch rule redirecting a set of error kinds to a landing node"""
    errors: Tuple[str, ...]
    next: str

    def __post_init__(self):
        object.__setattr__(self, "errors", _normalize_errors(self.errors, "Catch rule"))
        if not self.next:
            raise WorkflowValidationError("Catch rule must name a landing node")

    @property
    def is_wildcard(self) -> bool:
        return self.errors == (WILDCARD,)


@dataclass(frozen=True)
class StepNode:
    """A named state of the workflow graph.

    Task nodes carry an executor and either a successor (``next``) or
    ``end=True``. Succeed and fail nodes are terminal pseudo-states with no
    executor; a fail node reports ``error``/``cause`` as the run's failure.
    """
    name: str
    executor: Optional["StepExecutor"] = None
    kind: NodeKind = NodeKind.TASK
    retry: Tuple[RetryRule, ...] = ()
    catch: Tuple[CatchRule, ...] = ()
    next: Optional[str] = None
    end: bool = False
    timeout: Optional[float] = None  # per attempt, seconds
    error: Optional[str] = None
    cause: Optional[str] = None
    comment: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", NodeKind(self.kind))
        object.__setattr__(self, "retry", tuple(self.retry))
        object.__setattr__(self, "catch", tuple(self.catch))
        self._validate()

    def _validate(self):
        if not self.name:
            raise WorkflowValidationError("Step nodes must have a name")

        if self.kind == NodeKind.TASK:
            if self.executor is None:
                raise WorkflowValidationError(f"Task node '{self.name}' has no executor")
            if self.end and self.next:
                raise WorkflowValidationError(
                    f"Task node '{self.name}' cannot have both 'next' and 'end'"
                )
            if not self.end and not self.next:
                raise WorkflowValidationError(
                    f"Task node '{self.name}' needs either 'next' or 'end'"
                )
            if self.timeout is not None and self.timeout <= 0:
                raise WorkflowValidationError(
                    f"Task node '{self.name}' timeout must be positive"
                )
        else:
            if self.executor is not None or self.retry or self.catch or self.next:
                raise WorkflowValidationError(
                    f"{self.kind.value.capitalize()} node '{self.name}' is terminal and "
                    "cannot declare an executor, rules or a successor"
                )

        for rules, label in ((self.retry, "retry"), (self.catch, "catch")):
            for index, rule in enumerate(rules):
                if rule.is_wildcard and index != len(rules) - 1:
                    raise WorkflowValidationError(
                        f"Node '{self.name}': wildcard {label} rule must be the last one"
                    )

    @property
    def is_terminal(self) -> bool:
        return self.kind != NodeKind.TASK


@dataclass(frozen=True)
class WorkflowDefinition:
    """Immutable workflow definition, shared by every run"""
    name: str
    nodes: Tuple[StepNode, ...]
    start_at: str
    time_budget: float = DEFAULT_TIME_BUDGET
    comment: Optional[str] = None
    _index: Mapping[str, StepNode] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        index = {}
        for node in self.nodes:
            if node.name in index:
                raise WorkflowValidationError(f"Duplicate node name: '{node.name}'")
            index[node.name] = node
        object.__setattr__(self, "_index", MappingProxyType(index))

        errors = self.validate()
        if errors:
            raise WorkflowValidationError(f"Workflow '{self.name}' is invalid: {errors}")

    def get_node(self, name: str) -> StepNode:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"Unknown node '{name}' in workflow '{self.name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._index

    @property
    def node_names(self) -> List[str]:
        return [node.name for node in self.nodes]

    def validate(self) -> List[str]:
        """Check references between nodes; returns a list of problems"""
        errors = []

        if not self.name:
            errors.append("Workflow must have a name")
        if not self.nodes:
            errors.append("Workflow must have at least one node")
        if self.start_at not in self._index:
            errors.append(f"Entry node '{self.start_at}' not found")
        if self.time_budget <= 0:
            errors.append(f"Time budget must be positive, got {self.time_budget}")

        for node in self.nodes:
            if node.next and node.next not in self._index:
                errors.append(f"Node '{node.name}' points to unknown node '{node.next}'")
            for rule in node.catch:
                if rule.next not in self._index:
                    errors.append(
                        f"Node '{node.name}' catches into unknown node '{rule.next}'"
                    )

        return errors
