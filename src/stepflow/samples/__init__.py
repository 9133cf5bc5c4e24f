"""Sample workflows"""

from .orders import (
    ORDER_WORKFLOW_NAME,
    ORDER_WORKFLOW_PATH,
    ValidateInventory,
    ProcessPayment,
    SendConfirmation,
    build_order_workflow,
    order_registry
)

__all__ = [
    "ORDER_WORKFLOW_NAME",
    "ORDER_WORKFLOW_PATH",
    "ValidateInventory",
    "ProcessPayment",
    "SendConfirmation",
    "build_order_workflow",
    "order_registry"
]
