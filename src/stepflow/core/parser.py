"""
Workflow parser
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import Draft7Validator

from ..exceptions import WorkflowParseError, WorkflowValidationError
from ..models.workflow import (
    CatchRule, DEFAULT_TIME_BUDGET, NodeKind, RetryRule, StepNode, WorkflowDefinition
)
from .executor import StepRegistry


logger = logging.getLogger(__name__)


_ERRORS_SCHEMA = {
    "type": "array",
    "items": {"type": "string", "minLength": 1},
    "minItems": 1
}

WORKFLOW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "start_at", "steps"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "comment": {"type": "string"},
        "start_at": {"type": "string", "minLength": 1},
        "time_budget": {"type": "number", "exclusiveMinimum": 0},
        "steps": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "type": {"enum": [kind.value for kind in NodeKind]},
                    "resource": {"type": "string", "minLength": 1},
                    "next": {"type": "string", "minLength": 1},
                    "end": {"type": "boolean"},
                    "timeout": {"type": "number", "exclusiveMinimum": 0},
                    "error": {"type": "string"},
                    "cause": {"type": "string"},
                    "comment": {"type": "string"},
                    "retry": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["errors"],
                            "properties": {
                                "errors": _ERRORS_SCHEMA,
                                "interval": {"type": "number", "minimum": 0},
                                "max_attempts": {"type": "integer", "minimum": 1},
                                "backoff_rate": {"type": "number", "minimum": 1.0},
                                "max_backoff": {"type": "number", "minimum": 0},
                                "jitter": {"type": "boolean"}
                            },
                            "additionalProperties": False
                        }
                    },
                    "catch": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["errors", "next"],
                            "properties": {
                                "errors": _ERRORS_SCHEMA,
                                "next": {"type": "string", "minLength": 1}
                            },
                            "additionalProperties": False
                        }
                    }
                },
                "additionalProperties": False
            }
        }
    },
    "additionalProperties": False
}


class WorkflowParser:
    """Builds WorkflowDefinition objects from YAML/JSON documents"""

    def __init__(
        self,
        registry: Optional[StepRegistry] = None,
        default_time_budget: float = DEFAULT_TIME_BUDGET
    ):
        self.registry = registry or StepRegistry()
        self.default_time_budget = default_time_budget
        self.validator = Draft7Validator(WORKFLOW_SCHEMA)
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }

    def parse(self, source: Union[str, Path, Dict[str, Any]]) -> WorkflowDefinition:
        """
        Parse a workflow definition

        Args:
            source: a file path, a YAML/JSON string or an already loaded dict

        Returns:
            WorkflowDefinition: the validated, immutable definition
        """
        if isinstance(source, dict):
            return self.parse_dict(source)

        if isinstance(source, Path):
            return self.parse_file(source)

        if isinstance(source, str):
            if "\n" not in source and self._is_file(source):
                return self.parse_file(Path(source))
            return self.parse_string(source)

        raise WorkflowParseError(f"Unsupported source type: {type(source)}")

    @staticmethod
    def _is_file(source: str) -> bool:
        try:
            return Path(source).is_file()
        except (OSError, ValueError):
            # too long or otherwise not a valid path, so it is a document
            return False

    def parse_file(self, file_path: Union[str, Path]) -> WorkflowDefinition:
        file_path = Path(file_path)
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise WorkflowParseError(f"Unsupported file format: {suffix}")

        try:
            content = file_path.read_text(encoding='utf-8')
        except OSError as e:
            raise WorkflowParseError(f"Cannot read {file_path}: {e}") from e

        return self.parse_dict(self.parsers[suffix](content))

    def parse_string(self, content: str) -> WorkflowDefinition:
        # JSON is a subset of YAML, so one loader covers both
        return self.parse_dict(self._parse_yaml(content))

    def parse_dict(self, data: Dict[str, Any]) -> WorkflowDefinition:
        if not isinstance(data, dict):
            raise WorkflowParseError("Workflow document must be a mapping")
        if 'workflow' in data:
            data = data['workflow']

        problems = self.check(data)
        if problems:
            raise WorkflowValidationError(f"Workflow document is invalid: {problems}")

        nodes = [self._parse_step(step) for step in data['steps']]
        return WorkflowDefinition(
            name=data['name'],
            nodes=nodes,
            start_at=data['start_at'],
            time_budget=float(data.get('time_budget', self.default_time_budget)),
            comment=data.get('comment')
        )

    def check(self, data: Dict[str, Any]) -> List[str]:
        """Schema problems of a document, empty when it is well formed"""
        return [
            f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
            for error in sorted(self.validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        ]

    def _parse_yaml(self, content: str) -> Dict[str, Any]:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise WorkflowParseError(f"Failed to parse YAML: {e}") from e

    def _parse_json(self, content: str) -> Dict[str, Any]:
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise WorkflowParseError(f"Failed to parse JSON: {e}") from e

    def _parse_step(self, data: Dict[str, Any]) -> StepNode:
        kind = NodeKind(data.get('type', NodeKind.TASK.value))

        executor = None
        if kind == NodeKind.TASK:
            resource = data.get('resource')
            if not resource:
                raise WorkflowValidationError(f"Task step '{data['name']}' needs a resource")
            try:
                executor = self.registry.resolve(resource)
            except KeyError as e:
                raise WorkflowValidationError(f"Step '{data['name']}': {e.args[0]}") from None

        return StepNode(
            name=data['name'],
            executor=executor,
            kind=kind,
            retry=tuple(self._parse_retry(rule) for rule in data.get('retry', [])),
            catch=tuple(
                CatchRule(errors=tuple(rule['errors']), next=rule['next'])
                for rule in data.get('catch', [])
            ),
            next=data.get('next'),
            end=data.get('end', False),
            timeout=data.get('timeout'),
            error=data.get('error'),
            cause=data.get('cause'),
            comment=data.get('comment')
        )

    def _parse_retry(self, data: Dict[str, Any]) -> RetryRule:
        return RetryRule(
            errors=tuple(data['errors']),
            interval=float(data.get('interval', 1.0)),
            max_attempts=int(data.get('max_attempts', 3)),
            backoff_rate=float(data.get('backoff_rate', 2.0)),
            max_backoff=data.get('max_backoff'),
            jitter=data.get('jitter', False)
        )

    def serialize(self, workflow: WorkflowDefinition, resources: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Dump a definition back to its document form.

        ``resources`` maps node names to resource names; by default they are
        looked up in the registry by executor identity.
        """
        resources = dict(resources or {})
        by_executor = {id(self.registry.resolve(name)): name for name in self.registry.names()}

        steps = []
        for node in workflow.nodes:
            step: Dict[str, Any] = {"name": node.name}
            if node.kind != NodeKind.TASK:
                step["type"] = node.kind.value
            else:
                resource = resources.get(node.name) or by_executor.get(id(node.executor))
                if resource:
                    step["resource"] = resource
            if node.retry:
                step["retry"] = [
                    {
                        "errors": list(rule.errors),
                        "interval": rule.interval,
                        "max_attempts": rule.max_attempts,
                        "backoff_rate": rule.backoff_rate,
                        **({"max_backoff": rule.max_backoff} if rule.max_backoff is not None else {}),
                        **({"jitter": True} if rule.jitter else {})
                    }
                    for rule in node.retry
                ]
            if node.catch:
                step["catch"] = [{"errors": list(rule.errors), "next": rule.next} for rule in node.catch]
            if node.next:
                step["next"] = node.next
            if node.end:
                step["end"] = True
            for key in ("timeout", "error", "cause", "comment"):
                value = getattr(node, key)
                if value is not None:
                    step[key] = value
            steps.append(step)

        document: Dict[str, Any] = {
            "name": workflow.name,
            "start_at": workflow.start_at,
            "time_budget": workflow.time_budget,
            "steps": steps
        }
        if workflow.comment:
            document["comment"] = workflow.comment
        return document
