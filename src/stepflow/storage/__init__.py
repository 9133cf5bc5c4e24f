"""Audit sinks and repositories"""

from .repository import (
    AuditSink,
    WorkflowRepository,
    RunRepository,
    InMemoryAuditSink,
    LoggingAuditSink,
    InMemoryWorkflowRepository,
    InMemoryRunRepository
)

__all__ = [
    "AuditSink",
    "WorkflowRepository",
    "RunRepository",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "InMemoryWorkflowRepository",
    "InMemoryRunRepository"
]
