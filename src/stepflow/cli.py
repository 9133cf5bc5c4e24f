"""
stepflow CLI
"""
import asyncio
import json
import sys

import click

from .config import EngineSettings, configure_logging
from .core import WorkflowEngine, WorkflowParser
from .exceptions import WorkflowParseError, WorkflowValidationError
from .integrations import InMemoryPublisher
from .samples import order_registry
from .storage import LoggingAuditSink


def _parse_payload(raw):
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}")
    if not isinstance(payload, dict):
        raise click.BadParameter("Payload must be a JSON object")
    return payload


@click.group()
@click.option('--log-level', default=None, help='Override STEPFLOW_LOG_LEVEL')
@click.pass_context
def cli(ctx, log_level):
    """stepflow: step workflow execution engine"""
    settings = EngineSettings.from_env()
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level.upper()})
    configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
def validate(workflow_file):
    """Validate a workflow file against the sample step registry"""
    parser = WorkflowParser(order_registry(InMemoryPublisher()))
    try:
        workflow = parser.parse_file(workflow_file)
    except (WorkflowParseError, WorkflowValidationError) as e:
        click.echo(f"Invalid workflow: {e}", err=True)
        sys.exit(1)
    click.echo(f"Workflow '{workflow.name}' is valid ({len(workflow.nodes)} nodes)")


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--input', 'raw_input', default=None, help='Initial payload as a JSON object')
@click.option('--budget', type=float, default=None, help='Time budget in seconds')
@click.option('--stock', type=int, default=None, help='Fixed stock for the inventory step')
@click.pass_obj
def run(settings, workflow_file, raw_input, budget, stock):
    """Run a workflow file with the sample steps and print the result"""
    payload = _parse_payload(raw_input)
    publisher = InMemoryPublisher()
    stock_lookup = (lambda product_id: stock) if stock is not None else None
    parser = WorkflowParser(order_registry(publisher, stock_lookup), settings.time_budget)

    try:
        workflow = parser.parse_file(workflow_file)
    except (WorkflowParseError, WorkflowValidationError) as e:
        click.echo(f"Invalid workflow: {e}", err=True)
        sys.exit(1)

    engine = WorkflowEngine(audit_sinks=[LoggingAuditSink()])
    result = asyncio.run(
        engine.start(workflow, payload, budget)
    )

    output = result.to_dict()
    output["notifications"] = [message.subject for message in publisher.messages]
    click.echo(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    if not result.succeeded:
        sys.exit(1)


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', type=int, default=None, help='Port to bind to')
@click.pass_obj
def serve(settings, host, port):
    """Start the API server"""
    import uvicorn

    from .api import create_default_app

    app = create_default_app(settings)

    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
