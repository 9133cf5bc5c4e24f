"""
Storage interfaces: audit sinks, definition and run repositories
"""
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional

from ..models.execution import RunResult, TransitionRecord
from ..models.workflow import WorkflowDefinition


logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Append-only consumer of transition records"""

    @abstractmethod
    async def append(self, execution_id: str, record: TransitionRecord) -> None:
        """Append one record"""
        pass


class WorkflowRepository(ABC):
    """Registered workflow definitions"""

    @abstractmethod
    async def save(self, workflow: WorkflowDefinition) -> str:
        """Save a definition, replacing one with the same name"""
        pass

    @abstractmethod
    async def get(self, name: str) -> Optional[WorkflowDefinition]:
        """Get a definition by name"""
        pass

    @abstractmethod
    async def list(self, offset: int = 0, limit: int = 100) -> List[WorkflowDefinition]:
        """List definitions"""
        pass

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a definition"""
        pass


class RunRepository(ABC):
    """Finished run results"""

    @abstractmethod
    async def save(self, result: RunResult) -> str:
        """Save a run result"""
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[RunResult]:
        """Get a run result"""
        pass

    @abstractmethod
    async def list_by_workflow(
        self,
        workflow_name: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[RunResult]:
        """List run results of one workflow"""
        pass


# In-memory implementations
class InMemoryAuditSink(AuditSink):
    """Keeps transition records per execution"""

    def __init__(self):
        self.records: Dict[str, List[TransitionRecord]] = defaultdict(list)

    async def append(self, execution_id: str, record: TransitionRecord) -> None:
        self.records[execution_id].append(record)

    def get_records(self, execution_id: str) -> List[TransitionRecord]:
        return list(self.records.get(execution_id, []))


class LoggingAuditSink(AuditSink):
    """Writes each transition record to a logger"""

    def __init__(self, logger_name: str = "stepflow.audit"):
        self.logger = logging.getLogger(logger_name)

    async def append(self, execution_id: str, record: TransitionRecord) -> None:
        self.logger.info(
            f"{execution_id} {record.node}#{record.attempt} {record.outcome.value}",
            extra={"execution_id": execution_id, "transition": record.to_dict()}
        )


class InMemoryWorkflowRepository(WorkflowRepository):
    """In-memory definition repository"""

    def __init__(self):
        self.workflows: Dict[str, WorkflowDefinition] = {}

    async def save(self, workflow: WorkflowDefinition) -> str:
        self.workflows[workflow.name] = workflow
        return workflow.name

    async def get(self, name: str) -> Optional[WorkflowDefinition]:
        return self.workflows.get(name)

    async def list(self, offset: int = 0, limit: int = 100) -> List[WorkflowDefinition]:
        workflows = list(self.workflows.values())
        return workflows[offset:offset + limit]

    async def delete(self, name: str) -> bool:
        if name in self.workflows:
            del self.workflows[name]
            return True
        return False


class InMemoryRunRepository(RunRepository):
    """In-memory run repository"""

    def __init__(self):
        self.runs: Dict[str, RunResult] = {}

    async def save(self, result: RunResult) -> str:
        self.runs[result.execution_id] = result
        return result.execution_id

    async def get(self, execution_id: str) -> Optional[RunResult]:
        return self.runs.get(execution_id)

    async def list_by_workflow(
        self,
        workflow_name: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[RunResult]:
        results = [
            result for result in self.runs.values()
            if result.workflow_name == workflow_name
        ]
        return results[offset:offset + limit]
