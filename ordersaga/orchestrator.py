"""
Order saga orchestrator.

Sequences the inventory ledger, payment gateway and order store for the
three order sagas. The collaborators never talk to each other; all
cross-service ordering and compensation lives here.

Create order::

    create PENDING shell ─→ reserve item 1 ─→ ... ─→ reserve item n ─→ attach items
                                │ fails at k
                                ▼
              release k-1 ... 1, shell PENDING ─→ CANCELLED, re-raise

Pay::

    charge ─→ re-fetch, PENDING ─→ PAID
      │ declined: PaymentProcessingError, order untouched
      │ transport error: ExternalServiceError, order untouched

Cancel::

    refund (if PAID) ─→ release every item (if PENDING/PAID) ─→ re-fetch, ─→ CANCELLED

A refund is the point of no return for a cancellation: once it has gone
through, the saga can only move forward. Progress is journaled under
``cancel-<order_id>`` so that re-running a failed cancellation skips the
steps that already happened and reuses the refund idempotency key.
"""

import asyncio
import time
import uuid
from collections import Counter
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from ordersaga.catalog import ProductCatalog
from ordersaga.core.config import OrderSagaConfig, get_config
from ordersaga.core.exceptions import (
    ConcurrentModificationError,
    InvalidOrderStateError,
    PaymentProcessingError,
    ResourceNotFoundError,
)
from ordersaga.core.logger import get_logger
from ordersaga.core.models import (
    LineItemRequest,
    Order,
    OrderLineItem,
    Page,
    PaymentOutcome,
    PaymentRequest,
)
from ordersaga.core.state_machine import OrderStateMachine
from ordersaga.core.types import OrderStatus, SagaStatus, SagaStepStatus
from ordersaga.inventory.base import InventoryLedger
from ordersaga.monitoring.logging import SagaLogger, saga_logger
from ordersaga.monitoring.metrics import SagaMetrics
from ordersaga.payment.base import PaymentGatewayClient
from ordersaga.storage.base import OrderRepository, SagaJournal, apply_step_update
from ordersaga.storage.memory import InMemorySagaJournal

logger = get_logger(__name__)

CREATE_ORDER_SAGA = "CreateOrder"
PAYMENT_SAGA = "ProcessPayment"
AUTHORIZE_CAPTURE_SAGA = "AuthorizeCapturePayment"
CANCEL_ORDER_SAGA = "CancelOrder"


def _new_key() -> str:
    return str(uuid.uuid4())


class _SagaRun:
    """Journal, log and metrics bookkeeping for one saga run."""

    def __init__(
        self,
        orchestrator: "OrderSagaOrchestrator",
        saga_id: str,
        saga_name: str,
        context: dict[str, Any] | None = None,
        steps: list[dict[str, Any]] | None = None,
    ):
        self.saga_id = saga_id
        self.saga_name = saga_name
        self.context = context or {}
        self.steps = steps or []
        self._journal = orchestrator.journal
        self._log = orchestrator.saga_logger
        self._metrics = orchestrator.metrics
        self._started = time.perf_counter()

    async def begin(self) -> None:
        self._log.saga_started(self.saga_id, self.saga_name, self.context.get("order_id"))
        await self._save(SagaStatus.EXECUTING)

    async def _save(self, status: SagaStatus) -> None:
        await self._journal.save_saga_state(
            saga_id=self.saga_id,
            saga_name=self.saga_name,
            status=status,
            steps=self.steps,
            context=self.context,
        )

    async def update_context(self, **fields: Any) -> None:
        self.context.update(fields)
        if "order_id" in fields:
            self._log.update_saga_context(order_id=fields["order_id"])
        await self._save(SagaStatus.EXECUTING)

    def step_completed_before(self, step_name: str) -> bool:
        return any(
            s.get("name") == step_name and s.get("status") == SagaStepStatus.COMPLETED.value
            for s in self.steps
        )

    async def _record_step(
        self, step_name: str, status: SagaStepStatus, result: Any = None, error: str | None = None
    ) -> None:
        now = datetime.now(UTC)
        apply_step_update(self.steps, step_name, status, result, error, now)
        await self._journal.update_step_state(self.saga_id, step_name, status, result, error, now)

    async def step_started(self, step_name: str) -> None:
        self._log.step_started(step_name)
        await self._record_step(step_name, SagaStepStatus.EXECUTING)

    async def step_completed(self, step_name: str, result: Any = None) -> None:
        self._log.step_completed(step_name)
        await self._record_step(step_name, SagaStepStatus.COMPLETED, result)

    async def step_failed(self, step_name: str, error: Exception) -> None:
        self._log.step_failed(step_name, error)
        await self._record_step(step_name, SagaStepStatus.FAILED, error=str(error))

    async def compensated(self, step_name: str) -> None:
        self._log.compensation_completed(step_name)
        await self._record_step(step_name, SagaStepStatus.COMPENSATED)

    def compensation_failed(self, step_name: str, error: Exception) -> None:
        self._log.compensation_failed(step_name, error)
        self._metrics.record_compensation_failure()

    async def rolled_back(self, compensation_errors: list[Exception]) -> None:
        """Finish after compensating: FAILED if any compensation did not go through."""
        await self.finish(SagaStatus.FAILED if compensation_errors else SagaStatus.ROLLED_BACK)

    async def finish(self, status: SagaStatus) -> None:
        duration = time.perf_counter() - self._started
        self._metrics.record_execution(self.saga_name, status, duration)
        self._log.saga_finished(self.saga_id, self.saga_name, status, duration * 1000)
        await self._save(status)


class OrderSagaOrchestrator:
    """
    Runs the create / pay / cancel sagas against injected collaborators.

    Usage:
        >>> orchestrator = OrderSagaOrchestrator(
        ...     orders=InMemoryOrderRepository(),
        ...     inventory=InMemoryInventoryLedger({"SKU-1": 10}),
        ...     payments=MockPaymentGatewayClient(),
        ...     catalog=InMemoryProductCatalog([Product("SKU-1", "Widget", "9.99")]),
        ... )
        >>> order = await orchestrator.create_order("cust-1", [("SKU-1", 3)])
        >>> outcome = await orchestrator.process_order_payment(PaymentRequest(order.id))
        >>> await orchestrator.cancel_order(order.id, "changed my mind")

    Methods do not retry. Each either succeeds, leaves state as it found it,
    or compensates before raising.
    """

    def __init__(
        self,
        orders: OrderRepository,
        inventory: InventoryLedger,
        payments: PaymentGatewayClient,
        catalog: ProductCatalog,
        journal: SagaJournal | None = None,
        config: OrderSagaConfig | None = None,
        metrics: SagaMetrics | None = None,
        state_machine: OrderStateMachine | None = None,
        saga_log: SagaLogger | None = None,
    ):
        self.orders = orders
        self.inventory = inventory
        self.payments = payments
        self.catalog = catalog
        self.journal = journal or InMemorySagaJournal()
        self.config = config or get_config()
        self.metrics = metrics or SagaMetrics()
        self.state_machine = state_machine or OrderStateMachine()
        self.saga_logger = saga_log or saga_logger

        # Serializes pay/cancel/status changes per order within this process
        self._order_locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    @asynccontextmanager
    async def _order_lock(self, order_id: int) -> AsyncIterator[None]:
        """Hold the lock for one order. The entry is dropped once nobody holds or awaits it."""
        lock = self._order_locks.setdefault(order_id, asyncio.Lock())
        self._lock_users[order_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[order_id] -= 1
            if not self._lock_users[order_id]:
                del self._lock_users[order_id]
                del self._order_locks[order_id]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order:
        """
        Raises:
            ResourceNotFoundError: No such order
        """
        order = await self.orders.find_by_id(order_id)
        if order is None:
            raise ResourceNotFoundError("Order", order_id)
        return order

    async def get_customer_orders(self, customer_id: str, page: int = 0, size: int = 20) -> Page[Order]:
        return await self.orders.find_by_customer(customer_id, page, size)

    async def get_all_orders(self, page: int = 0, size: int = 20) -> Page[Order]:
        return await self.orders.find_all(page, size)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_items(items: Iterable[Any]) -> list[LineItemRequest]:
        requests = []
        for item in items:
            if isinstance(item, LineItemRequest):
                requests.append(item)
            elif isinstance(item, Mapping):
                requests.append(LineItemRequest(item["product_id"], item["quantity"]))
            else:
                product_id, quantity = item
                requests.append(LineItemRequest(product_id, quantity))
        if not requests:
            msg = "An order needs at least one line item"
            raise ValueError(msg)
        return requests

    async def create_order(
        self,
        customer_id: str,
        items: Iterable[LineItemRequest | Mapping[str, Any] | tuple[str, int]],
        shipping_address: str | None = None,
    ) -> Order:
        """
        Reserve stock for every line item and create a PENDING order.

        Args:
            customer_id: Ordering customer
            items: ``LineItemRequest`` objects, ``{"product_id", "quantity"}``
                mappings or ``(product_id, quantity)`` pairs
            shipping_address: Free-form address

        Returns:
            The persisted PENDING order with line items and total

        Raises:
            ValueError: No items, or a quantity below 1 (nothing touched)
            InsufficientStockError: An item could not be reserved
            ResourceNotFoundError: Unknown product or inventory record
        """
        if not customer_id:
            msg = "customer_id is required"
            raise ValueError(msg)
        requests = self._normalize_items(items)

        run = _SagaRun(
            self,
            f"create-{uuid.uuid4().hex[:12]}",
            CREATE_ORDER_SAGA,
            context={"customer_id": customer_id},
        )
        with self.saga_logger.saga_scope(run.saga_id, run.saga_name):
            await run.begin()
            try:
                await run.step_started("create_order")
                order = await self.orders.save(
                    Order(customer_id=customer_id, shipping_address=shipping_address)
                )
            except Exception as e:
                await run.step_failed("create_order", e)
                await run.finish(SagaStatus.FAILED)
                raise
            await run.step_completed("create_order", {"order_id": order.id})
            await run.update_context(order_id=order.id)

            reserved: list[tuple[str, OrderLineItem]] = []
            step_name = "create_order"
            try:
                for index, request in enumerate(requests):
                    step_name = f"reserve:{index}:{request.product_id}"
                    await run.step_started(step_name)
                    product = await self.catalog.get_product(request.product_id)
                    await self.inventory.reserve(request.product_id, request.quantity)
                    reserved.append(
                        (step_name, OrderLineItem(product.id, request.quantity, product.price))
                    )
                    await run.step_completed(
                        step_name,
                        {"product_id": product.id, "quantity": request.quantity},
                    )

                step_name = "attach_items"
                await run.step_started(step_name)
                order.replace_items([item for _, item in reserved])
                order = await self.orders.save(order)
                await run.step_completed(step_name, {"total_amount": str(order.total_amount)})
            except Exception as e:
                await run.step_failed(step_name, e)
                errors = await self._release_reservations(run, reserved)
                errors += await self._cancel_order_shell(run, order.id, e)
                e.compensation_errors = errors
                await run.rolled_back(errors)
                raise

            await run.finish(SagaStatus.COMPLETED)
            logger.info(
                f"Order {order.id} created for customer {customer_id} "
                f"with {len(order.items)} items, total {order.total_amount}"
            )
            return order

    async def _release_reservations(
        self, run: _SagaRun, reserved: list[tuple[str, OrderLineItem]]
    ) -> list[Exception]:
        """Undo reservations newest first. Returns the failures."""
        errors: list[Exception] = []
        for step_name, item in reversed(reserved):
            self.saga_logger.compensation_started(step_name)
            try:
                await self.inventory.release(item.product_id, item.quantity)
                await run.compensated(step_name)
            except Exception as ce:
                run.compensation_failed(step_name, ce)
                errors.append(ce)
        return errors

    async def _cancel_order_shell(
        self, run: _SagaRun, order_id: int, cause: Exception
    ) -> list[Exception]:
        """Move the half-built order to CANCELLED so no orphan PENDING order is left."""
        step_name = "cancel_order_shell"
        self.saga_logger.compensation_started(step_name)
        try:
            order = await self.get_order(order_id)
            self.state_machine.transition(order, OrderStatus.CANCELLED)
            order.notes = f"Order creation failed: {cause}"
            await self.orders.save(order)
            await run.compensated(step_name)
        except Exception as ce:
            run.compensation_failed(step_name, ce)
            return [ce]
        return []

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    async def _prepare_payment(self, request: PaymentRequest) -> tuple[Order, str, str]:
        order = await self.get_order(request.order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidOrderStateError(order.status, OrderStatus.PAID)
        if request.amount is not None and request.amount != order.total_amount:
            msg = (
                f"Payment amount {request.amount} does not match "
                f"order {order.id} total {order.total_amount}"
            )
            raise ValueError(msg)
        currency = request.currency or self.config.currency
        key = request.idempotency_key or _new_key()
        return order, currency, key

    async def process_order_payment(self, request: PaymentRequest) -> PaymentOutcome:
        """
        Charge the order total with a single-shot payment and mark it PAID.

        Raises:
            ResourceNotFoundError: No such order
            InvalidOrderStateError: Order is not PENDING
            ValueError: ``request.amount`` differs from the order total
            PaymentProcessingError: Gateway declined (order unchanged)
            ExternalServiceError: Gateway unreachable (order unchanged)
        """
        async with self._order_lock(request.order_id):
            order, currency, key = await self._prepare_payment(request)

            run = _SagaRun(
                self,
                f"pay-{order.id}-{uuid.uuid4().hex[:8]}",
                PAYMENT_SAGA,
                context={"order_id": order.id, "idempotency_key": key},
            )
            with self.saga_logger.saga_scope(run.saga_id, run.saga_name, order.id):
                await run.begin()

                await run.step_started("charge")
                try:
                    payment = await self.payments.process_payment(
                        order.id, order.total_amount, currency, request.payment_method, key
                    )
                except Exception as e:
                    await run.step_failed("charge", e)
                    await run.finish(SagaStatus.FAILED)
                    raise

                if not payment.succeeded:
                    error = PaymentProcessingError(
                        f"Payment failed: {payment.message}", payment.id, payment.status.value
                    )
                    await run.step_failed("charge", error)
                    await run.finish(SagaStatus.FAILED)
                    raise error
                await run.step_completed("charge", {"payment_id": payment.id})

                order = await self._mark_paid(run, order.id, payment.id, order.total_amount, key)
                await run.finish(SagaStatus.COMPLETED)
                logger.info(f"Order {order.id} paid with payment {payment.id}")
                return PaymentOutcome(order=order, payment=payment)

    async def authorize_and_capture_payment(self, request: PaymentRequest) -> PaymentOutcome:
        """
        Two-phase payment: authorize the total, then capture it.

        A failed capture voids the authorization before raising. The
        capture id becomes the order's payment id.

        Raises:
            Same as ``process_order_payment``
        """
        async with self._order_lock(request.order_id):
            order, currency, key = await self._prepare_payment(request)

            run = _SagaRun(
                self,
                f"pay-{order.id}-{uuid.uuid4().hex[:8]}",
                AUTHORIZE_CAPTURE_SAGA,
                context={"order_id": order.id, "idempotency_key": key},
            )
            with self.saga_logger.saga_scope(run.saga_id, run.saga_name, order.id):
                await run.begin()

                await run.step_started("authorize")
                try:
                    authorization = await self.payments.authorize(
                        order.id, order.total_amount, currency, f"{key}:authorize"
                    )
                except Exception as e:
                    await run.step_failed("authorize", e)
                    await run.finish(SagaStatus.FAILED)
                    raise
                if not authorization.succeeded:
                    error = PaymentProcessingError(
                        f"Payment authorization declined: {authorization.message}",
                        authorization.id,
                        authorization.status.value,
                    )
                    await run.step_failed("authorize", error)
                    await run.finish(SagaStatus.FAILED)
                    raise error
                await run.step_completed("authorize", {"authorization_id": authorization.id})
                await run.update_context(authorization_id=authorization.id)

                await run.step_started("capture")
                try:
                    capture = await self.payments.capture(
                        authorization.id, order.total_amount, f"{key}:capture"
                    )
                except Exception as e:
                    # Capture outcome unknown: keep the authorization for a keyed retry
                    await run.step_failed("capture", e)
                    await run.finish(SagaStatus.FAILED)
                    raise

                if not capture.succeeded:
                    error = PaymentProcessingError(
                        f"Payment capture failed: {capture.message}",
                        capture.id,
                        capture.status.value,
                    )
                    await run.step_failed("capture", error)
                    error.compensation_errors = await self._void_authorization(
                        run, authorization.id, f"{key}:void"
                    )
                    await run.rolled_back(error.compensation_errors)
                    raise error
                await run.step_completed("capture", {"capture_id": capture.id})

                order = await self._mark_paid(run, order.id, capture.id, order.total_amount, key)
                await run.finish(SagaStatus.COMPLETED)
                logger.info(f"Order {order.id} paid with capture {capture.id}")
                return PaymentOutcome(order=order, payment=capture)

    async def _void_authorization(
        self, run: _SagaRun, authorization_id: str, idempotency_key: str
    ) -> list[Exception]:
        self.saga_logger.compensation_started("authorize")
        try:
            result = await self.payments.void_authorization(authorization_id, idempotency_key)
            if not result.succeeded:
                raise PaymentProcessingError(
                    f"Void failed: {result.message}", authorization_id, result.status.value
                )
            await run.compensated("authorize")
        except Exception as ce:
            run.compensation_failed("authorize", ce)
            return [ce]
        return []

    async def _mark_paid(
        self,
        run: _SagaRun,
        order_id: int,
        payment_id: str,
        amount: Decimal,
        key: str,
    ) -> Order:
        """
        Re-fetch the order and move it PENDING -> PAID.

        If the order can no longer be marked paid (cancelled or modified in
        the meantime) the money is handed back before the error propagates.
        """
        await run.step_started("mark_paid")
        try:
            order = await self.get_order(order_id)
            order.payment_id = payment_id
            self.state_machine.transition(order, OrderStatus.PAID)
            order = await self.orders.save(order)
        except (InvalidOrderStateError, ConcurrentModificationError, ResourceNotFoundError) as e:
            await run.step_failed("mark_paid", e)
            e.compensation_errors = await self._refund_orphan_payment(
                run, payment_id, amount, f"{key}:refund"
            )
            await run.rolled_back(e.compensation_errors)
            raise
        await run.step_completed("mark_paid", {"status": order.status.value})
        return order

    async def _refund_orphan_payment(
        self, run: _SagaRun, payment_id: str, amount: Decimal, idempotency_key: str
    ) -> list[Exception]:
        self.saga_logger.compensation_started("charge")
        try:
            refund = await self.payments.refund(
                payment_id, amount, "Order could not be marked paid", idempotency_key
            )
            if not refund.succeeded:
                raise PaymentProcessingError(
                    f"Refund failed: {refund.message}", payment_id, refund.status.value
                )
            await run.compensated("charge")
        except Exception as ce:
            run.compensation_failed("charge", ce)
            return [ce]
        return []

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        """
        Cancel an order: refund if PAID, release stock if PENDING/PAID, then
        mark it CANCELLED with ``notes = reason``.

        Safe to re-run after a failure; completed steps are skipped.

        Raises:
            ResourceNotFoundError: No such order
            InvalidOrderStateError: CANCELLED is not reachable from the current
                status (no gateway or ledger calls are made)
            PaymentProcessingError: Refund declined (order keeps its status)
            ExternalServiceError: Gateway unreachable (order keeps its status)
        """
        async with self._order_lock(order_id):
            order = await self.get_order(order_id)
            self.state_machine.validate(order, OrderStatus.CANCELLED)

            saga_id = f"cancel-{order_id}"
            previous = await self.journal.load_saga_state(saga_id)
            if previous is not None:
                logger.info(f"Resuming cancellation {saga_id} from status {previous['status']}")
            run = _SagaRun(
                self,
                saga_id,
                CANCEL_ORDER_SAGA,
                context=(previous or {}).get("context") or {"order_id": order_id},
                steps=(previous or {}).get("steps"),
            )

            with self.saga_logger.saga_scope(saga_id, run.saga_name, order_id):
                await run.begin()
                run.context["reason"] = reason

                if order.status == OrderStatus.PAID and not run.step_completed_before("refund"):
                    await self._refund_for_cancellation(run, order, reason)

                if order.status in (OrderStatus.PENDING, OrderStatus.PAID):
                    await self._release_order_items(run, order)

                await run.step_started("mark_cancelled")
                try:
                    order = await self.get_order(order_id)
                    self.state_machine.transition(order, OrderStatus.CANCELLED)
                    order.notes = reason
                    order = await self.orders.save(order)
                except Exception as e:
                    await run.step_failed("mark_cancelled", e)
                    await run.finish(SagaStatus.FAILED)
                    raise
                await run.step_completed("mark_cancelled")

                await run.finish(SagaStatus.COMPLETED)
                logger.info(f"Order {order_id} cancelled: {reason}")
                return order

    async def _refund_for_cancellation(self, run: _SagaRun, order: Order, reason: str | None) -> None:
        if order.payment_id is None:
            error = PaymentProcessingError(f"Order {order.id} is PAID but has no payment id")
            await run.step_failed("refund", error)
            await run.finish(SagaStatus.FAILED)
            raise error

        # Reuse the key of an interrupted attempt; a declined attempt gets a new one
        key = run.context.get("refund_key")
        if key is None or run.context.get("refund_status") == "FAILED":
            key = _new_key()
        await run.update_context(refund_key=key, refund_status="PENDING")

        await run.step_started("refund")
        try:
            refund = await self.payments.refund(order.payment_id, order.total_amount, reason, key)
        except Exception as e:
            await run.step_failed("refund", e)
            await run.finish(SagaStatus.FAILED)
            raise

        if not refund.succeeded:
            await run.update_context(refund_status="FAILED")
            error = PaymentProcessingError(
                f"Refund failed: {refund.message}", order.payment_id, refund.status.value
            )
            await run.step_failed("refund", error)
            await run.finish(SagaStatus.FAILED)
            raise error

        await run.update_context(refund_status="SUCCESS")
        await run.step_completed("refund", {"refund_id": refund.id})
        logger.info(f"Refund {refund.id} issued for order {order.id}")

    async def _release_order_items(self, run: _SagaRun, order: Order) -> None:
        for index, item in enumerate(order.items):
            step_name = f"release:{index}:{item.product_id}"
            if run.step_completed_before(step_name):
                continue
            await run.step_started(step_name)
            try:
                await self.inventory.release(item.product_id, item.quantity)
            except Exception as e:
                await run.step_failed(step_name, e)
                await run.finish(SagaStatus.FAILED)
                raise
            await run.step_completed(
                step_name, {"product_id": item.product_id, "quantity": item.quantity}
            )

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    async def update_order_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        notes: str | None = None,
    ) -> Order:
        """
        Move an order along the state machine with no saga side effects.

        Raises:
            ValueError: Unknown status name
            ResourceNotFoundError: No such order
            InvalidOrderStateError: Transition not allowed (order unchanged)
        """
        target = OrderStatus.parse(new_status)
        async with self._order_lock(order_id):
            order = await self.get_order(order_id)
            self.state_machine.transition(order, target)
            if notes is not None:
                order.notes = notes
            order = await self.orders.save(order)
        logger.info(f"Order {order_id} status updated to {target.value}")
        return order
