"""
SQLAlchemy table models for run history
"""
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, JSON, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class TransitionRow(Base):
    """One transition record"""
    __tablename__ = 'run_transitions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String(64), nullable=False)
    node = Column(String(255), nullable=False)
    attempt = Column(Integer, nullable=False)
    outcome = Column(String(32), nullable=False)
    elapsed = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    error_kind = Column(String(255))
    delay = Column(Float)
    next_node = Column(String(255))

    __table_args__ = (
        CheckConstraint(
            "outcome IN ('succeeded', 'retry_scheduled', 'caught', 'fatal', 'timed_out')",
            name='check_transition_outcome'
        ),
        Index('idx_run_transitions_execution_id', 'execution_id'),
    )


class RunRow(Base):
    """Finished run"""
    __tablename__ = 'workflow_runs'

    execution_id = Column(String(64), primary_key=True)
    workflow_name = Column(String(255), nullable=False)
    disposition = Column(String(32), nullable=False)
    payload = Column(JSON, default={})
    failure = Column(JSON)
    duration = Column(Float)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "disposition IN ('success', 'handled_failure', 'failure')",
            name='check_run_disposition'
        ),
        Index('idx_workflow_runs_workflow_name', 'workflow_name'),
    )
