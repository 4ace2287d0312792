"""
End-to-end order lifecycle through OrderService.

Runs the same story over the in-memory stack and over SQLite files, checking
stock, payments and the saga journal after each step.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.exceptions import InsufficientStockError, InvalidOrderStateError
from ordersaga.core.models import PaymentRequest
from ordersaga.core.types import OrderStatus, SagaStatus
from ordersaga.execution.pool import SagaWorkerPool
from ordersaga.monitoring.metrics import SagaMetrics
from ordersaga.orchestrator import OrderSagaOrchestrator
from ordersaga.payment.mock import MockPaymentGatewayClient
from ordersaga.service import OrderService
from ordersaga.storage.factory import (
    create_inventory_ledger,
    create_order_repository,
    create_saga_journal,
)
from tests.conftest import STOCK, WIDGET

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def stack(request, tmp_path, catalog):
    """A started OrderService plus the collaborators the assertions inspect."""
    if request.param == "memory":
        url = "memory://"
    else:
        url = f"sqlite://{tmp_path / 'orders.db'}"

    orders = create_order_repository(url)
    inventory = create_inventory_ledger(url, initial_stock=dict(STOCK))
    journal = create_saga_journal(url)
    if request.param == "sqlite":
        for product_id, quantity in STOCK.items():
            await inventory.add_product(product_id, quantity)

    gateway = MockPaymentGatewayClient()
    orchestrator = OrderSagaOrchestrator(
        orders=orders,
        inventory=inventory,
        payments=gateway,
        catalog=catalog,
        journal=journal,
        config=OrderSagaConfig(storage_url=url),
        metrics=SagaMetrics(),
    )
    pool = SagaWorkerPool(max_workers=2, name="e2e")
    await pool.start()

    yield OrderService(orchestrator, pool), inventory, gateway, journal

    await pool.shutdown(drain=True)
    for resource in (orders, inventory, journal):
        await resource.close()


class TestOrderLifecycle:
    async def test_create_pay_cancel(self, stack):
        service, inventory, gateway, journal = stack

        order = await service.create_order("cust-1", [(WIDGET.id, 3)], "1 Main St")
        assert order.status == OrderStatus.PENDING
        assert order.total_amount == Decimal("59.97")
        assert await inventory.get_stock(WIDGET.id) == 7

        outcome = await service.process_payment(PaymentRequest(order.id))
        assert outcome.order.status == OrderStatus.PAID
        assert outcome.order.payment_id == outcome.payment.id

        cancelled = await service.cancel_order(order.id, "changed my mind")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.notes == "changed my mind"
        assert await inventory.get_stock(WIDGET.id) == 10

        [refund] = gateway.calls_for("refund")
        assert refund.arguments["payment_id"] == outcome.payment.id
        assert refund.arguments["amount"] == Decimal("59.97")

        state = await journal.load_saga_state(f"cancel-{order.id}")
        assert state["status"] == SagaStatus.COMPLETED.value

        stored = await service.get_order(order.id)
        assert stored.status == OrderStatus.CANCELLED

    async def test_insufficient_stock_leaves_nothing_behind(self, stack):
        service, inventory, gateway, journal = stack

        with pytest.raises(InsufficientStockError) as exc_info:
            await service.create_order("cust-1", [(WIDGET.id, 15)])

        assert exc_info.value.available == 10
        assert await inventory.get_stock(WIDGET.id) == 10
        assert gateway.calls == []

        [saga] = await journal.list_sagas(saga_name="CreateOrder")
        assert saga["status"] == SagaStatus.ROLLED_BACK.value

    async def test_shipped_order_cannot_be_cancelled(self, stack):
        service, inventory, gateway, journal = stack
        order = await service.create_order("cust-1", [(WIDGET.id, 3)])
        await service.process_payment(PaymentRequest(order.id))
        await service.update_order_status(order.id, OrderStatus.PROCESSING)
        await service.update_order_status(order.id, OrderStatus.SHIPPED)

        with pytest.raises(InvalidOrderStateError):
            await service.cancel_order(order.id, "too late")

        assert (await service.get_order(order.id)).status == OrderStatus.SHIPPED
        assert await inventory.get_stock(WIDGET.id) == 7
        assert gateway.calls_for("refund") == []
        assert await journal.load_saga_state(f"cancel-{order.id}") is None

    async def test_customer_history(self, stack):
        service, _, _, _ = stack
        for quantity in (1, 2):
            await service.create_order("cust-7", [(WIDGET.id, quantity)])
        await service.create_order("cust-8", [(WIDGET.id, 1)])

        mine = await service.get_customer_orders("cust-7")
        everything = await service.get_all_orders(size=2)

        assert mine.total_items == 2
        assert {o.customer_id for o in mine.items} == {"cust-7"}
        assert everything.total_items == 3
        assert len(everything.items) == 2
