"""
stepflow usage example: the order workflow in its four scenarios
"""
import asyncio
import logging

from stepflow import WorkflowEngine
from stepflow.integrations import InMemoryPublisher
from stepflow.samples import build_order_workflow
from stepflow.storage import InMemoryAuditSink


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


SCENARIOS = {
    "A - happy path": {"productoId": "PROD-001", "cantidad": 2},
    "B - inventory exhausted": {"productoId": "PROD-001", "cantidad": 2, "forceErrorA": True},
    "C - over the payment limit": {"productoId": "PROD-001", "cantidad": 50},
    "D - forced payment error": {"productoId": "PROD-001", "cantidad": 2, "forceErrorB": True},
}


async def run_scenarios():
    publisher = InMemoryPublisher()
    audit = InMemoryAuditSink()
    engine = WorkflowEngine(audit_sinks=[audit])
    workflow = build_order_workflow(publisher, stock=lambda product_id: 100)

    for title, payload in SCENARIOS.items():
        print(f"\n=== {title} ===")
        result = await engine.start(workflow, payload, time_budget=30)
        print(f"Disposition: {result.disposition.value}")
        if result.failure:
            print(f"Failure: {result.failure.kind} - {result.failure.message}")
        for record in audit.get_records(result.execution_id):
            print(f"  {record.node} #{record.attempt}: {record.outcome.value}")
        print(f"Payload: {result.payload}")

    print(f"\nNotifications published: {len(publisher.messages)}")


if __name__ == "__main__":
    asyncio.run(run_scenarios())
