"""
HTTP API for registering workflows and starting runs
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, status

from ..config import EngineSettings
from ..core.engine import WorkflowEngine
from ..core.parser import WorkflowParser
from ..exceptions import WorkflowParseError, WorkflowValidationError
from ..integrations.event_bus import EventBus
from ..integrations.notification import EventBusPublisher
from ..models.workflow import WorkflowDefinition
from ..samples.orders import ORDER_WORKFLOW_PATH, order_registry
from ..storage.repository import (
    AuditSink, InMemoryRunRepository, InMemoryWorkflowRepository, LoggingAuditSink,
    RunRepository, WorkflowRepository
)
from ..storage.sqlalchemy_repository import (
    DatabaseManager, SQLAlchemyAuditSink, SQLAlchemyRunRepository
)
from .models import RunRequest, RunResponse, WorkflowDocument, WorkflowSummary


logger = logging.getLogger(__name__)


def _summary(workflow: WorkflowDefinition) -> WorkflowSummary:
    return WorkflowSummary(
        name=workflow.name,
        start_at=workflow.start_at,
        time_budget=workflow.time_budget,
        nodes=workflow.node_names,
        comment=workflow.comment
    )


def _not_found(what: str, key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "not_found", "message": f"{what} not found: {key}"}
    )


def create_app(
    engine: WorkflowEngine,
    parser: WorkflowParser,
    workflow_repository: Optional[WorkflowRepository] = None,
    run_repository: Optional[RunRepository] = None,
    database: Optional[DatabaseManager] = None,
    preload: Optional[List[WorkflowDefinition]] = None
) -> FastAPI:
    """Build the API around an engine and a parser wired to a step registry.

    When ``database`` is given it is initialized on startup and closed on
    shutdown; repositories and sinks built on it must not be used before.
    Definitions in ``preload`` are registered on startup.
    """
    workflows = workflow_repository or InMemoryWorkflowRepository()
    runs = run_repository or InMemoryRunRepository()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if database is not None:
            await database.initialize()
        for workflow in preload or []:
            await workflows.save(workflow)
        logger.info("stepflow API started")
        yield
        if database is not None:
            await database.close()
        logger.info("stepflow API stopped")

    app = FastAPI(title="stepflow", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.workflows = workflows
    app.state.runs = runs

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "engine": engine.describe()}

    @app.post("/workflows", status_code=status.HTTP_201_CREATED, response_model=WorkflowSummary)
    async def register_workflow(document: WorkflowDocument) -> WorkflowSummary:
        try:
            workflow = parser.parse_dict(document.workflow)
        except (WorkflowParseError, WorkflowValidationError) as e:
            raise HTTPException(
                status_code=422,
                detail={"error": "invalid_workflow", "message": str(e)}
            )
        await workflows.save(workflow)
        logger.info(f"Registered workflow '{workflow.name}'")
        return _summary(workflow)

    @app.get("/workflows", response_model=List[WorkflowSummary])
    async def list_workflows(offset: int = 0, limit: int = 100) -> List[WorkflowSummary]:
        return [_summary(workflow) for workflow in await workflows.list(offset, limit)]

    @app.get("/workflows/{name}", response_model=WorkflowSummary)
    async def get_workflow(name: str) -> WorkflowSummary:
        workflow = await workflows.get(name)
        if workflow is None:
            raise _not_found("Workflow", name)
        return _summary(workflow)

    @app.post("/workflows/{name}/runs", response_model=RunResponse)
    async def start_run(name: str, request: RunRequest) -> Dict[str, Any]:
        workflow = await workflows.get(name)
        if workflow is None:
            raise _not_found("Workflow", name)
        result = await engine.start(workflow, request.payload, request.time_budget)
        await runs.save(result)
        return result.to_dict()

    @app.get("/runs/{execution_id}", response_model=RunResponse)
    async def get_run(execution_id: str) -> Dict[str, Any]:
        result = await runs.get(execution_id)
        if result is None:
            raise _not_found("Run", execution_id)
        return result.to_dict()

    return app


def create_default_app(settings: Optional[EngineSettings] = None) -> FastAPI:
    """Wire the API from settings with the sample order workflow preloaded.

    Incidents go to ``settings.notification_topic`` on an in-process event
    bus. With ``database_url`` set, transitions and runs are persisted through
    SQLAlchemy; otherwise they stay in memory.
    """
    settings = settings or EngineSettings.from_env()
    event_bus = EventBus()
    publisher = EventBusPublisher(event_bus, settings.notification_topic)
    registry = order_registry(publisher)
    parser = WorkflowParser(registry, settings.time_budget)

    database = None
    run_repository: RunRepository = InMemoryRunRepository()
    audit_sinks: List[AuditSink] = [LoggingAuditSink()]
    if settings.database_url:
        database = DatabaseManager(settings.database_url)
        audit_sink = SQLAlchemyAuditSink(database)
        audit_sinks.append(audit_sink)
        run_repository = SQLAlchemyRunRepository(database, audit_sink)

    app = create_app(
        WorkflowEngine(audit_sinks=audit_sinks),
        parser,
        run_repository=run_repository,
        database=database,
        preload=[parser.parse_file(ORDER_WORKFLOW_PATH)]
    )
    app.state.event_bus = event_bus
    return app
