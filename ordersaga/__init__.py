# ============================================
# FILE: ordersaga/__init__.py
# ============================================

"""
ordersaga - Order fulfillment sagas with compensation

Turns a customer's order into a consistent outcome across an inventory
ledger, a payment gateway and an order store, with:
- Atomic, race-free stock reservation (never oversells, never goes negative)
- Idempotent payment calls (never double-charges or double-refunds)
- Compensation on failure (reservations released, payments refunded or voided)
- Resumable cancellation through a saga journal
- Memory and SQLite storage backends
- A bounded, explicitly managed worker pool

Usage:
    >>> from ordersaga import (
    ...     InMemoryInventoryLedger, InMemoryOrderRepository, InMemoryProductCatalog,
    ...     MockPaymentGatewayClient, OrderSagaOrchestrator, OrderService,
    ...     PaymentRequest, Product, SagaWorkerPool,
    ... )
    >>>
    >>> orchestrator = OrderSagaOrchestrator(
    ...     orders=InMemoryOrderRepository(),
    ...     inventory=InMemoryInventoryLedger({"SKU-1": 10}),
    ...     payments=MockPaymentGatewayClient(),
    ...     catalog=InMemoryProductCatalog([Product("SKU-1", "Widget", "9.99")]),
    ... )
    >>> async with SagaWorkerPool(max_workers=10) as pool:
    ...     service = OrderService(orchestrator, pool)
    ...     order = await service.create_order("cust-1", [("SKU-1", 3)])
    ...     await service.process_payment(PaymentRequest(order.id))
    ...     await service.cancel_order(order.id, "changed my mind")
"""

from ordersaga.catalog import InMemoryProductCatalog, ProductCatalog

# Configuration
from ordersaga.core.config import OrderSagaConfig, configure, get_config
from ordersaga.core.exceptions import (
    ConcurrentModificationError,
    ExternalServiceError,
    InsufficientStockError,
    InvalidOrderStateError,
    MissingDependencyError,
    OrderSagaError,
    PaymentProcessingError,
    ResourceNotFoundError,
    WorkerPoolClosedError,
)
from ordersaga.core.models import (
    LineItemRequest,
    Order,
    OrderLineItem,
    Page,
    PaymentOutcome,
    PaymentRequest,
    Product,
)
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import OrderStatus, PaymentStatus, SagaStatus, SagaStepStatus
from ordersaga.execution.pool import SagaWorkerPool
from ordersaga.inventory import InMemoryInventoryLedger, InventoryLedger, SQLiteInventoryLedger
from ordersaga.orchestrator import OrderSagaOrchestrator
from ordersaga.payment import (
    HttpPaymentGatewayClient,
    MockPaymentGatewayClient,
    PaymentGatewayClient,
)
from ordersaga.service import OrderService
from ordersaga.storage import (
    InMemoryOrderRepository,
    InMemorySagaJournal,
    OrderRepository,
    SagaJournal,
    SQLiteOrderRepository,
    SQLiteSagaJournal,
)

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "OrderSagaOrchestrator",
    "OrderService",
    "SagaWorkerPool",
    "OrderStateMachine",
    # Models
    "LineItemRequest",
    "Order",
    "OrderLineItem",
    "OrderStatus",
    "Page",
    "PaymentOutcome",
    "PaymentRequest",
    "PaymentStatus",
    "Product",
    "SagaStatus",
    "SagaStepStatus",
    # Collaborators
    "HttpPaymentGatewayClient",
    "InMemoryInventoryLedger",
    "InMemoryOrderRepository",
    "InMemoryProductCatalog",
    "InMemorySagaJournal",
    "InventoryLedger",
    "MockPaymentGatewayClient",
    "OrderRepository",
    "PaymentGatewayClient",
    "ProductCatalog",
    "SQLiteInventoryLedger",
    "SQLiteOrderRepository",
    "SQLiteSagaJournal",
    "SagaJournal",
    # Configuration
    "OrderSagaConfig",
    "configure",
    "get_config",
    # Exceptions
    "ConcurrentModificationError",
    "ExternalServiceError",
    "InsufficientStockError",
    "InvalidOrderStateError",
    "MissingDependencyError",
    "OrderSagaError",
    "PaymentProcessingError",
    "ResourceNotFoundError",
    "WorkerPoolClosedError",
]
