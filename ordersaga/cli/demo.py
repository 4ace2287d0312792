"""
End-to-end demo scenarios against in-memory backends.

Used by ``ordersaga demo``; each scenario checks its own expectations and
reports a pass/fail line instead of raising.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal

from ordersaga.catalog import InMemoryProductCatalog
from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.exceptions import (
    InsufficientStockError,
    InvalidOrderStateError,
    OrderSagaError,
)
from ordersaga.core.models import Order, PaymentRequest, Product
from ordersaga.core.types import OrderStatus
from ordersaga.execution.pool import SagaWorkerPool
from ordersaga.inventory.memory import InMemoryInventoryLedger
from ordersaga.orchestrator import OrderSagaOrchestrator
from ordersaga.payment.mock import MockPaymentGatewayClient
from ordersaga.service import OrderService
from ordersaga.storage.memory import InMemoryOrderRepository, InMemorySagaJournal

DEMO_PRODUCT = Product("P-100", "Demo widget", Decimal("19.99"))
DEMO_STOCK = 10


@dataclass
class ScenarioResult:
    number: int
    title: str
    passed: bool
    detail: str


class ScenarioFailed(Exception):
    """A demo scenario observed something other than what it expected"""


def _check(condition: object, message: str) -> None:
    if not condition:
        raise ScenarioFailed(message)


class DemoEnvironment:
    """Wires an OrderService over fresh in-memory collaborators."""

    def __init__(self, max_workers: int = 4):
        self.inventory = InMemoryInventoryLedger({DEMO_PRODUCT.id: DEMO_STOCK})
        self.gateway = MockPaymentGatewayClient()
        self.orchestrator = OrderSagaOrchestrator(
            orders=InMemoryOrderRepository(),
            inventory=self.inventory,
            payments=self.gateway,
            catalog=InMemoryProductCatalog([DEMO_PRODUCT]),
            journal=InMemorySagaJournal(),
            config=OrderSagaConfig(),
        )
        self.pool = SagaWorkerPool(max_workers=max_workers, name="demo")
        self.service = OrderService(self.orchestrator, self.pool)

    async def stock(self) -> int:
        return await self.inventory.get_stock(DEMO_PRODUCT.id)


async def _scenario_create(env: DemoEnvironment, state: dict) -> str:
    order = await env.service.create_order("demo-customer", [(DEMO_PRODUCT.id, 3)])
    state["order"] = order
    stock = await env.stock()
    expected_total = DEMO_PRODUCT.price * 3
    _check(order.status == OrderStatus.PENDING, f"status is {order.status.value}")
    _check(stock == 7, f"stock is {stock}")
    _check(order.total_amount == expected_total, f"total is {order.total_amount}")
    return f"order {order.id} PENDING, stock {stock}, total {order.total_amount}"


async def _scenario_pay(env: DemoEnvironment, state: dict) -> str:
    order: Order = state["order"]
    outcome = await env.service.process_payment(PaymentRequest(order.id, "card"))
    stock = await env.stock()
    _check(outcome.order.status == OrderStatus.PAID, f"status is {outcome.order.status.value}")
    _check(outcome.order.payment_id, "no payment id")
    _check(stock == 7, f"stock is {stock}")
    return f"order {order.id} PAID with {outcome.order.payment_id}, stock {stock}"


async def _scenario_cancel_paid(env: DemoEnvironment, state: dict) -> str:
    order: Order = state["order"]
    refunds_before = len(env.gateway.calls_for("refund"))
    cancelled = await env.service.cancel_order(order.id, "Customer changed their mind")
    refunds = env.gateway.calls_for("refund")[refunds_before:]
    stock = await env.stock()
    _check(len(refunds) == 1, f"{len(refunds)} refund calls")
    _check(refunds[0].arguments["amount"] == order.total_amount, "partial refund")
    _check(stock == DEMO_STOCK, f"stock is {stock}")
    _check(cancelled.status == OrderStatus.CANCELLED, f"status is {cancelled.status.value}")
    _check(cancelled.notes == "Customer changed their mind", f"notes are {cancelled.notes!r}")
    return f"1 refund of {order.total_amount}, stock {stock}, order CANCELLED"


async def _scenario_insufficient_stock(env: DemoEnvironment, state: dict) -> str:
    try:
        await env.service.create_order("demo-customer", [(DEMO_PRODUCT.id, 15)])
    except InsufficientStockError as e:
        stock = await env.stock()
        details = (e.product_id, e.requested, e.available)
        _check(details == (DEMO_PRODUCT.id, 15, DEMO_STOCK), f"wrong details: {e}")
        _check(stock == DEMO_STOCK, f"stock is {stock}")
        return f"InsufficientStock(requested={e.requested}, available={e.available}), stock {stock}"
    msg = "order for 15 units was accepted"
    raise ScenarioFailed(msg)


async def _scenario_cancel_shipped(env: DemoEnvironment, state: dict) -> str:
    order = await env.service.create_order("demo-customer", [(DEMO_PRODUCT.id, 1)])
    await env.service.process_payment(PaymentRequest(order.id))
    await env.service.update_order_status(order.id, OrderStatus.PROCESSING)
    await env.service.update_order_status(order.id, OrderStatus.SHIPPED)

    calls_before = len(env.gateway.calls)
    stock_before = await env.stock()
    try:
        await env.service.cancel_order(order.id, "too late")
    except InvalidOrderStateError as e:
        current = await env.service.get_order(order.id)
        transition = (e.from_status, e.to_status)
        _check(transition == (OrderStatus.SHIPPED, OrderStatus.CANCELLED), f"wrong details: {e}")
        _check(current.status == OrderStatus.SHIPPED, f"status is {current.status.value}")
        _check(len(env.gateway.calls) == calls_before, "gateway was called")
        _check(await env.stock() == stock_before, "stock changed")
        return "InvalidOrderState(SHIPPED -> CANCELLED), nothing touched"
    msg = "SHIPPED order was cancelled"
    raise ScenarioFailed(msg)


SCENARIOS: list[tuple[str, Callable[[DemoEnvironment, dict], Awaitable[str]]]] = [
    ("Create order (3 of 10 in stock)", _scenario_create),
    ("Pay for the order", _scenario_pay),
    ("Cancel the paid order", _scenario_cancel_paid),
    ("Order more than in stock", _scenario_insufficient_stock),
    ("Cancel a shipped order", _scenario_cancel_shipped),
]


async def run_scenarios(max_workers: int = 4) -> list[ScenarioResult]:
    """Run all demo scenarios in order against one shared environment."""
    env = DemoEnvironment(max_workers=max_workers)
    state: dict = {}
    results = []
    async with env.pool:
        for number, (title, scenario) in enumerate(SCENARIOS, start=1):
            try:
                detail = await scenario(env, state)
                results.append(ScenarioResult(number, title, True, detail))
            except (ScenarioFailed, KeyError, OrderSagaError) as e:
                results.append(ScenarioResult(number, title, False, str(e) or type(e).__name__))
    return results
