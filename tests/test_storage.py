"""
Audit sink and repository tests
"""
import pytest
import pytest_asyncio

from conftest import FlakyStep, single_task_workflow
from stepflow.core import WorkflowEngine
from stepflow.exceptions import PersistenceError
from stepflow.models import CatchRule, Disposition, RetryRule, TransitionOutcome
from stepflow.storage import (
    InMemoryRunRepository, InMemoryWorkflowRepository, LoggingAuditSink
)
from stepflow.storage.sqlalchemy_repository import (
    DatabaseManager, SQLAlchemyAuditSink, SQLAlchemyRunRepository
)


@pytest_asyncio.fixture
async def database(tmp_path):
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'stepflow.db'}")
    await db.initialize()
    yield db
    await db.close()


class TestInMemoryRepositories:
    """In-memory repositories"""

    @pytest.mark.asyncio
    async def test_workflow_repository(self):
        repository = InMemoryWorkflowRepository()
        workflow = single_task_workflow(lambda p: p)

        assert await repository.save(workflow) == "single"
        assert await repository.get("single") is workflow
        assert await repository.list() == [workflow]
        assert await repository.delete("single")
        assert await repository.get("single") is None
        assert not await repository.delete("single")

    @pytest.mark.asyncio
    async def test_run_repository(self, engine):
        repository = InMemoryRunRepository()
        result = await engine.start(single_task_workflow(lambda p: {"ok": True}))

        await repository.save(result)

        assert await repository.get(result.execution_id) is result
        assert await repository.list_by_workflow("single") == [result]
        assert await repository.list_by_workflow("other") == []

    @pytest.mark.asyncio
    async def test_logging_sink(self, clock, caplog):
        engine = WorkflowEngine(audit_sinks=[LoggingAuditSink()], clock=clock, sleep=clock.sleep)

        with caplog.at_level("INFO", logger="stepflow.audit"):
            result = await engine.start(single_task_workflow(lambda p: {}))

        assert any(result.execution_id in record.getMessage() for record in caplog.records)


class TestSQLAlchemyStorage:
    """SQLAlchemy sink and run repository on SQLite"""

    @pytest.mark.asyncio
    async def test_sink_persists_transitions_in_order(self, database, clock):
        sink = SQLAlchemyAuditSink(database)
        engine = WorkflowEngine(audit_sinks=[sink], clock=clock, sleep=clock.sleep)
        step = FlakyStep("ErrorA", failures=5)
        workflow = single_task_workflow(
            step,
            retry=[RetryRule(errors=("ErrorA",), interval=1, max_attempts=2)],
            catch=[CatchRule(errors=("ErrorA",), next="Recovered")]
        )

        result = await engine.start(workflow)
        records = await sink.get_records(result.execution_id)

        assert [r.outcome for r in records] == [
            TransitionOutcome.RETRY_SCHEDULED,
            TransitionOutcome.CAUGHT,
            TransitionOutcome.SUCCEEDED,
        ]
        assert records[0].delay == 1.0
        assert records[1].next_node == "Recovered"
        assert records[1].error_kind == "ErrorA"

    @pytest.mark.asyncio
    async def test_run_repository_round_trip(self, database, clock):
        sink = SQLAlchemyAuditSink(database)
        repository = SQLAlchemyRunRepository(database, sink)
        engine = WorkflowEngine(audit_sinks=[sink], clock=clock, sleep=clock.sleep)

        result = await engine.start(
            single_task_workflow(
                FlakyStep("ErrorB", failures=1),
                catch=[CatchRule(errors=("*",), next="Recovered")]
            ),
            {"order": 1}
        )
        await repository.save(result)

        stored = await repository.get(result.execution_id)

        assert stored.disposition == Disposition.HANDLED_FAILURE
        assert stored.payload == result.payload
        assert stored.failure == result.failure
        assert len(stored.transitions) == len(result.transitions)
        assert [r.execution_id for r in await repository.list_by_workflow("single")] == [
            result.execution_id
        ]
        assert await repository.get("missing") is None

    @pytest.mark.asyncio
    async def test_uninitialized_database(self, tmp_path):
        db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'unused.db'}")

        with pytest.raises(PersistenceError):
            await SQLAlchemyAuditSink(db).get_records("anything")
