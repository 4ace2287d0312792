"""
In-process payment gateway for development, demos and tests.

Approves everything by default. Outcomes can be scripted per operation:

    >>> gateway = MockPaymentGatewayClient()
    >>> gateway.decline_next("process_payment", "Insufficient funds")
    >>> gateway.fail_next("refund", "connection reset")   # ExternalServiceError

Results are cached by (operation, idempotency key), so a retried call gets
the first answer back. Every call is appended to ``calls`` in order, which
makes call-order assertions straightforward.
"""

import asyncio
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ordersaga.core.exceptions import ExternalServiceError
from ordersaga.core.logger import get_logger
from ordersaga.core.models import to_money
from ordersaga.core.types import (
    AuthorizationStatus,
    CaptureStatus,
    PaymentStatus,
    VoidStatus,
)
from ordersaga.payment.base import PaymentGatewayClient
from ordersaga.payment.types import (
    Authorization,
    Capture,
    Payment,
    PaymentStatusResult,
    Refund,
    VoidResult,
)

logger = get_logger(__name__)

OPERATIONS = (
    "process_payment",
    "authorize",
    "capture",
    "void_authorization",
    "refund",
    "get_payment_status",
)


@dataclass(frozen=True)
class GatewayCall:
    """One recorded call against the mock gateway."""

    operation: str
    arguments: dict[str, Any]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class MockPaymentGatewayClient(PaymentGatewayClient):
    """Deterministic, scriptable, idempotent in-memory gateway."""

    provider = "MockPaymentGateway"

    def __init__(self, latency: float = 0.0):
        """
        Args:
            latency: Seconds to sleep inside each call, to simulate a network hop
        """
        self.latency = latency
        self.calls: list[GatewayCall] = []
        self._script: dict[str, deque[tuple[str, str]]] = defaultdict(deque)
        self._responses: dict[tuple[str, str], Any] = {}
        self._payments: dict[str, Payment | Capture] = {}
        self._refunds: dict[str, list[Refund]] = defaultdict(list)
        self._authorizations: dict[str, Authorization] = {}

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def decline_next(self, operation: str, message: str = "Declined by issuer") -> None:
        """Make the next call of ``operation`` return a negative business outcome."""
        self._enqueue(operation, "decline", message)

    def fail_next(self, operation: str, reason: str = "Gateway unreachable") -> None:
        """Make the next call of ``operation`` raise ExternalServiceError."""
        self._enqueue(operation, "fail", reason)

    def _enqueue(self, operation: str, kind: str, detail: str) -> None:
        if operation not in OPERATIONS:
            msg = f"Unknown gateway operation {operation!r}. Available: {', '.join(OPERATIONS)}"
            raise ValueError(msg)
        self._script[operation].append((kind, detail))

    def calls_for(self, operation: str) -> list[GatewayCall]:
        return [call for call in self.calls if call.operation == operation]

    def reset(self) -> None:
        """Forget calls, scripts and cached responses."""
        self.calls.clear()
        self._script.clear()
        self._responses.clear()
        self._payments.clear()
        self._refunds.clear()
        self._authorizations.clear()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _enter(self, operation: str, **arguments: Any) -> None:
        """Record the call and simulate latency."""
        self.calls.append(GatewayCall(operation, arguments))
        if self.latency:
            await asyncio.sleep(self.latency)

    def _scripted(self, operation: str) -> str | None:
        """
        Apply the next scripted outcome for ``operation``.

        Returns the decline message if the call was scripted to decline.
        Replays served from the idempotency cache never reach this.
        """
        script = self._script.get(operation)
        if not script:
            return None
        kind, detail = script.popleft()
        if kind == "fail":
            logger.warning(f"Mock gateway {operation} failing with transport error: {detail}")
            raise ExternalServiceError(self.provider, detail)
        return detail

    def _cached(self, operation: str, idempotency_key: str | None) -> Any:
        if idempotency_key is None:
            return None
        return self._responses.get((operation, idempotency_key))

    def _remember(self, operation: str, idempotency_key: str | None, response: Any) -> Any:
        if idempotency_key is not None:
            self._responses[(operation, idempotency_key)] = response
        return response

    # ------------------------------------------------------------------
    # Gateway operations
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        method: str,
        idempotency_key: str | None = None,
    ) -> Payment:
        logger.info(f"Calling (mock) payment gateway for order: {order_id}")
        await self._enter(
            "process_payment",
            order_id=order_id,
            amount=amount,
            currency=currency,
            method=method,
            idempotency_key=idempotency_key,
        )
        cached = self._cached("process_payment", idempotency_key)
        if cached is not None:
            return cached
        declined = self._scripted("process_payment")

        payment = Payment(
            id=_new_id("pay"),
            status=PaymentStatus.FAILED if declined else PaymentStatus.SUCCESS,
            amount=to_money(amount),
            currency=currency,
            method=method,
            transaction_id=_new_id("txn"),
            message=declined or "Payment processed successfully",
        )
        if payment.succeeded:
            self._payments[payment.id] = payment
        return self._remember("process_payment", idempotency_key, payment)

    async def authorize(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> Authorization:
        logger.info(f"Authorizing (mock) payment for order: {order_id}")
        await self._enter(
            "authorize",
            order_id=order_id,
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        cached = self._cached("authorize", idempotency_key)
        if cached is not None:
            return cached
        declined = self._scripted("authorize")

        authorization = Authorization(
            id=_new_id("auth"),
            status=AuthorizationStatus.DECLINED if declined else AuthorizationStatus.AUTHORIZED,
            amount=to_money(amount),
            currency=currency,
            message=declined or "Authorization successful",
        )
        self._authorizations[authorization.id] = authorization
        return self._remember("authorize", idempotency_key, authorization)

    async def capture(
        self,
        authorization_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> Capture:
        logger.info(f"Capturing (mock) payment for authorization: {authorization_id}")
        await self._enter(
            "capture",
            authorization_id=authorization_id,
            amount=amount,
            idempotency_key=idempotency_key,
        )
        cached = self._cached("capture", idempotency_key)
        if cached is not None:
            return cached
        declined = self._scripted("capture")

        authorization = self._authorizations.get(authorization_id)
        if authorization is None or not authorization.succeeded:
            declined = declined or "Unknown or declined authorization"

        capture = Capture(
            id=_new_id("cap"),
            authorization_id=authorization_id,
            status=CaptureStatus.FAILED if declined else CaptureStatus.CAPTURED,
            amount=to_money(amount),
            currency=authorization.currency if authorization else "USD",
            message=declined or "Capture successful",
        )
        if capture.succeeded:
            self._payments[capture.id] = capture
        return self._remember("capture", idempotency_key, capture)

    async def void_authorization(
        self,
        authorization_id: str,
        idempotency_key: str,
    ) -> VoidResult:
        logger.info(f"Voiding (mock) authorization: {authorization_id}")
        await self._enter(
            "void_authorization",
            authorization_id=authorization_id,
            idempotency_key=idempotency_key,
        )
        cached = self._cached("void_authorization", idempotency_key)
        if cached is not None:
            return cached
        declined = self._scripted("void_authorization")

        result = VoidResult(
            authorization_id=authorization_id,
            status=VoidStatus.FAILED if declined else VoidStatus.VOIDED,
            message=declined or "Void successful",
        )
        return self._remember("void_authorization", idempotency_key, result)

    async def refund(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str | None,
        idempotency_key: str,
    ) -> Refund:
        logger.info(f"Processing (mock) refund for payment: {payment_id}")
        await self._enter(
            "refund",
            payment_id=payment_id,
            amount=amount,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        cached = self._cached("refund", idempotency_key)
        if cached is not None:
            return cached
        declined = self._scripted("refund")

        amount = to_money(amount)
        payment = self._payments.get(payment_id)
        previous = [r for r in self._refunds[payment_id] if r.succeeded]
        refunded = sum((r.amount for r in previous), Decimal("0"))

        # Fully refunded already: hand back the earlier refund, move no money
        if payment is not None and previous and refunded >= payment.amount:
            logger.info(f"Payment {payment_id} already refunded, returning existing refund")
            return self._remember("refund", idempotency_key, previous[-1])

        if not declined:
            if payment is None:
                declined = f"Unknown payment {payment_id}"
            elif refunded + amount > payment.amount:
                declined = "Refund exceeds captured amount"

        refund = Refund(
            id=_new_id("ref"),
            payment_id=payment_id,
            status=PaymentStatus.FAILED if declined else PaymentStatus.SUCCESS,
            amount=amount,
            currency=payment.currency if payment else "USD",
            message=declined or "Refund processed successfully",
        )
        self._refunds[payment_id].append(refund)
        return self._remember("refund", idempotency_key, refund)

    async def get_payment_status(self, payment_id: str) -> PaymentStatusResult:
        logger.debug(f"Getting (mock) payment status for: {payment_id}")
        await self._enter("get_payment_status", payment_id=payment_id)
        self._scripted("get_payment_status")

        if payment_id not in self._payments:
            return PaymentStatusResult(payment_id, "NOT_FOUND", "Unknown payment")
        if any(r.succeeded for r in self._refunds[payment_id]):
            return PaymentStatusResult(payment_id, "REFUNDED", "Payment refunded")
        return PaymentStatusResult(payment_id, "SUCCESS", "Payment completed successfully")
