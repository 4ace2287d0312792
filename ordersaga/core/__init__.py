"""
Core types, models, state machine, configuration and errors.
"""

from ordersaga.core.exceptions import (
    ConcurrentModificationError,
    ExternalServiceError,
    InsufficientStockError,
    InvalidOrderStateError,
    OrderSagaError,
    PaymentProcessingError,
    ResourceNotFoundError,
)
from ordersaga.core.models import Order, OrderLineItem, Page, PaymentRequest, Product
from ordersaga.core.state_machine import OrderStateMachine, allowed_transitions, can_transition
from ordersaga.core.types import OrderStatus, SagaStatus, SagaStepStatus

__all__ = [
    "ConcurrentModificationError",
    "ExternalServiceError",
    "InsufficientStockError",
    "InvalidOrderStateError",
    "Order",
    "OrderLineItem",
    "OrderSagaError",
    "OrderStateMachine",
    "OrderStatus",
    "Page",
    "PaymentProcessingError",
    "PaymentRequest",
    "Product",
    "ResourceNotFoundError",
    "SagaStatus",
    "SagaStepStatus",
    "allowed_transitions",
    "can_transition",
]
