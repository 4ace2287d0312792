"""
Payment gateway client interface.

Every mutating call carries an idempotency key: calling again with the same
key must not charge, capture, void or refund twice.

Two kinds of failure exist and must not be confused:
- a business decline is a *successful* call whose result has a negative
  status (FAILED / DECLINED);
- a transport problem (timeout, connection refused, 5xx) raises
  ``ExternalServiceError``.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from ordersaga.payment.types import (
    Authorization,
    Capture,
    Payment,
    PaymentStatusResult,
    Refund,
    VoidResult,
)


class PaymentGatewayClient(ABC):
    """Abstract client for an external payment processor."""

    provider: str = "PaymentGateway"

    @abstractmethod
    async def process_payment(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        method: str,
        idempotency_key: str | None = None,
    ) -> Payment:
        """Single-shot charge."""

    @abstractmethod
    async def authorize(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> Authorization:
        """Place a hold for ``amount`` without capturing it."""

    @abstractmethod
    async def capture(
        self,
        authorization_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> Capture:
        """Capture a previous authorization."""

    @abstractmethod
    async def void_authorization(
        self,
        authorization_id: str,
        idempotency_key: str,
    ) -> VoidResult:
        """Drop an authorization that will not be captured."""

    @abstractmethod
    async def refund(
        self,
        payment_id: str,
        amount: Decimal,
        reason: str | None,
        idempotency_key: str,
    ) -> Refund:
        """Give money back for a captured payment."""

    @abstractmethod
    async def get_payment_status(self, payment_id: str) -> PaymentStatusResult:
        """Look up the gateway's view of a payment."""

    async def close(self) -> None:  # noqa: B027
        """Release any held resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
