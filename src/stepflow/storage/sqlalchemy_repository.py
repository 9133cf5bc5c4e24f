"""
SQLAlchemy backed audit sink and run repository
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from ..exceptions import PersistenceError
from ..models.execution import (
    Disposition, Failure, RunResult, TransitionOutcome, TransitionRecord
)
from .repository import AuditSink, RunRepository
from .sqlalchemy_models import Base, RunRow, TransitionRow


logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the async engine and session factory"""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker = None

    async def initialize(self):
        """Create the engine and the tables"""
        options = {"echo": False}
        if not self.database_url.startswith("sqlite"):
            options.update(pool_size=20, max_overflow=10, pool_pre_ping=True)

        self.engine = create_async_engine(self.database_url, **options)
        self.async_session_maker = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        if self.engine:
            await self.engine.dispose()

    @asynccontextmanager
    async def get_session(self):
        if self.async_session_maker is None:
            raise PersistenceError("DatabaseManager.initialize() has not been called")
        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(str(e)) from e


class SQLAlchemyAuditSink(AuditSink):
    """Stores transition records in the run_transitions table"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def append(self, execution_id: str, record: TransitionRecord) -> None:
        async with self.db.get_session() as session:
            session.add(TransitionRow(
                execution_id=execution_id,
                node=record.node,
                attempt=record.attempt,
                outcome=record.outcome.value,
                elapsed=record.elapsed,
                timestamp=record.timestamp,
                error_kind=record.error_kind,
                delay=record.delay,
                next_node=record.next_node
            ))

    async def get_records(self, execution_id: str) -> List[TransitionRecord]:
        async with self.db.get_session() as session:
            rows = await session.execute(
                select(TransitionRow)
                .where(TransitionRow.execution_id == execution_id)
                .order_by(TransitionRow.id)
            )
            return [self._to_record(row) for row in rows.scalars().all()]

    def _to_record(self, row: TransitionRow) -> TransitionRecord:
        return TransitionRecord(
            node=row.node,
            attempt=row.attempt,
            outcome=TransitionOutcome(row.outcome),
            elapsed=row.elapsed,
            timestamp=row.timestamp,
            error_kind=row.error_kind,
            delay=row.delay,
            next_node=row.next_node
        )


class SQLAlchemyRunRepository(RunRepository):
    """Stores run results; transitions are read back through the audit sink"""

    def __init__(self, db_manager: DatabaseManager, audit_sink: Optional[SQLAlchemyAuditSink] = None):
        self.db = db_manager
        self.audit_sink = audit_sink or SQLAlchemyAuditSink(db_manager)

    async def save(self, result: RunResult) -> str:
        async with self.db.get_session() as session:
            await session.merge(RunRow(
                execution_id=result.execution_id,
                workflow_name=result.workflow_name,
                disposition=result.disposition.value,
                payload=result.payload,
                failure=result.failure.to_dict() if result.failure else None,
                duration=result.duration
            ))
        return result.execution_id

    async def get(self, execution_id: str) -> Optional[RunResult]:
        async with self.db.get_session() as session:
            row = await session.get(RunRow, execution_id)
        if row is None:
            return None
        return await self._to_result(row)

    async def list_by_workflow(
        self,
        workflow_name: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[RunResult]:
        async with self.db.get_session() as session:
            rows = await session.execute(
                select(RunRow)
                .where(RunRow.workflow_name == workflow_name)
                .order_by(RunRow.created_at)
                .offset(offset)
                .limit(limit)
            )
            run_rows = rows.scalars().all()
        return [await self._to_result(row) for row in run_rows]

    async def _to_result(self, row: RunRow) -> RunResult:
        failure = Failure(**row.failure) if row.failure else None
        return RunResult(
            execution_id=row.execution_id,
            workflow_name=row.workflow_name,
            disposition=Disposition(row.disposition),
            payload=row.payload or {},
            transitions=await self.audit_sink.get_records(row.execution_id),
            failure=failure,
            duration=row.duration
        )
