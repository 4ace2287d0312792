"""
OrderService - the entry point upstream callers use.

Each call is dispatched as one unit of work onto the injected worker pool
and awaited through ``asyncio.shield``: if the caller is cancelled (request
timeout, client disconnect) it stops waiting, but the saga keeps running to
completion or failure on its worker.

Usage:
    >>> async with SagaWorkerPool(max_workers=10) as pool:
    ...     service = OrderService(orchestrator, pool)
    ...     order = await service.create_order("cust-1", [("SKU-1", 2)])
    ...     outcome = await service.process_payment(PaymentRequest(order.id))

``submit_*`` variants return the pending ``asyncio.Future`` instead of
awaiting it.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from ordersaga.core.models import Order, Page, PaymentOutcome, PaymentRequest
from ordersaga.core.types import OrderStatus
from ordersaga.execution.pool import SagaWorkerPool
from ordersaga.orchestrator import OrderSagaOrchestrator


class OrderService:
    """Facade dispatching order operations onto a worker pool."""

    def __init__(self, orchestrator: OrderSagaOrchestrator, pool: SagaWorkerPool):
        self.orchestrator = orchestrator
        self.pool = pool

    async def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.shield(self.pool.submit(fn, *args, **kwargs))

    # Futures

    def submit_create_order(
        self, customer_id: str, items: list[Any], shipping_address: str | None = None
    ) -> asyncio.Future:
        return self.pool.submit(
            self.orchestrator.create_order, customer_id, items, shipping_address
        )

    def submit_process_payment(self, request: PaymentRequest) -> asyncio.Future:
        return self.pool.submit(self.orchestrator.process_order_payment, request)

    def submit_cancel_order(self, order_id: int, reason: str | None = None) -> asyncio.Future:
        return self.pool.submit(self.orchestrator.cancel_order, order_id, reason)

    # Awaitables

    async def create_order(
        self, customer_id: str, items: list[Any], shipping_address: str | None = None
    ) -> Order:
        return await asyncio.shield(
            self.submit_create_order(customer_id, items, shipping_address)
        )

    async def get_order(self, order_id: int) -> Order:
        return await self._run(self.orchestrator.get_order, order_id)

    async def update_order_status(
        self, order_id: int, new_status: OrderStatus | str, notes: str | None = None
    ) -> Order:
        return await self._run(self.orchestrator.update_order_status, order_id, new_status, notes)

    async def process_payment(self, request: PaymentRequest) -> PaymentOutcome:
        return await asyncio.shield(self.submit_process_payment(request))

    async def authorize_and_capture_payment(self, request: PaymentRequest) -> PaymentOutcome:
        return await self._run(self.orchestrator.authorize_and_capture_payment, request)

    async def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        return await asyncio.shield(self.submit_cancel_order(order_id, reason))

    async def get_customer_orders(self, customer_id: str, page: int = 0, size: int = 20) -> Page[Order]:
        return await self._run(self.orchestrator.get_customer_orders, customer_id, page, size)

    async def get_all_orders(self, page: int = 0, size: int = 20) -> Page[Order]:
        return await self._run(self.orchestrator.get_all_orders, page, size)
