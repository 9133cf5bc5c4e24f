"""Order purchase sample: inventory check, payment, confirmation, incident notice.

The payload keys (``productoId``, ``cantidad``, ``estadoOrden`` ...) are the
order service's wire format and are kept as-is.
"""
from __future__ import annotations

import random
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core.executor import StepExecutor, StepRegistry
from ..core.parser import WorkflowParser
from ..exceptions import StepError
from ..integrations.notification import NotificationPublisher, NotifyIncidentStep
from ..models.workflow import WorkflowDefinition

ORDER_WORKFLOW_PATH = Path(__file__).with_name("order_workflow.yaml")
ORDER_WORKFLOW_NAME = "compra-producto"
INCIDENT_SUBJECT = "Error en Step Function - Proceso de Compra"

UNIT_PRICE = 25.99
PAYMENT_LIMIT = 1000
COMMISSION_RATE = 0.03
DELIVERY_DAYS = 3

StockLookup = Callable[[Any], int]


def random_stock(product_id: Any) -> int:
    return random.randint(1, 100)


def _millis() -> int:
    return int(time.time() * 1000)


class ValidateInventory(StepExecutor):
    """Checks stock for the requested quantity.

    Raises ``ErrorA`` when stock is short or ``forceErrorA`` is set. A
    ``forceErrorB`` flag is carried forward so the payment step raises
    ``ErrorB`` and its catch routes to the incident notice. The purchase flow
    this sample is modelled on raised ``ErrorB`` from the inventory step
    instead, where no rule handles it, so the run failed there.
    """

    def __init__(self, stock: Optional[StockLookup] = None):
        self.stock = stock or random_stock

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        product_id = payload.get("productoId")
        quantity = payload.get("cantidad", 0)
        available = self.stock(product_id)

        if payload.get("forceErrorA") or quantity > available:
            raise StepError("ErrorA", "Inventario insuficiente", {"inventarioDisponible": available})

        output = {
            "productoId": product_id,
            "cantidad": quantity,
            "inventarioDisponible": available,
            "precioUnitario": UNIT_PRICE,
            "total": round(quantity * UNIT_PRICE, 2),
            "status": "InventarioValidado",
        }
        if payload.get("forceErrorB"):
            output["forceErrorB"] = True
        return output


class ProcessPayment(StepExecutor):
    """Charges the order total plus commission; raises ``ErrorB`` on rejection"""

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        total = payload.get("total", 0)

        if payload.get("forceErrorB"):
            raise StepError("ErrorB", "Pago rechazado - error forzado para pruebas")
        if total > PAYMENT_LIMIT:
            raise StepError("ErrorB", "Pago rechazado - límite excedido", {"total": total})

        commission = round(total * COMMISSION_RATE, 2)
        return {
            "productoId": payload.get("productoId"),
            "cantidad": payload.get("cantidad"),
            "precioUnitario": payload.get("precioUnitario"),
            "subtotal": total,
            "comision": commission,
            "totalFinal": round(total + commission, 2),
            "numeroTransaccion": f"TXN-{_millis()}",
            "metodoPago": "Tarjeta de Crédito",
            "status": "PagoProcesado",
        }


class SendConfirmation(StepExecutor):
    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        delivery = datetime.now(timezone.utc) + timedelta(days=DELIVERY_DAYS)
        return {
            "numeroOrden": f"ORD-{_millis()}",
            "numeroTransaccion": payload.get("numeroTransaccion"),
            "productoId": payload.get("productoId"),
            "cantidad": payload.get("cantidad"),
            "totalFinal": payload.get("totalFinal"),
            "fechaEntrega": delivery.isoformat(),
            "estadoOrden": "Confirmada",
            "status": "ConfirmacionEnviada",
            "mensaje": "Su compra ha sido procesada exitosamente",
        }


def order_registry(
    publisher: NotificationPublisher,
    stock: Optional[StockLookup] = None
) -> StepRegistry:
    registry = StepRegistry()
    registry.register("validate_inventory", ValidateInventory(stock))
    registry.register("process_payment", ProcessPayment())
    registry.register("send_confirmation", SendConfirmation())
    registry.register(
        "notify_payment_error",
        NotifyIncidentStep(publisher, ORDER_WORKFLOW_NAME, subject=INCIDENT_SUBJECT)
    )
    return registry


def build_order_workflow(
    publisher: NotificationPublisher,
    stock: Optional[StockLookup] = None
) -> WorkflowDefinition:
    """Load the order workflow document wired to the sample steps"""
    return WorkflowParser(order_registry(publisher, stock)).parse_file(ORDER_WORKFLOW_PATH)
