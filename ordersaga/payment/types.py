"""
Result types returned by payment gateway clients.

The saga treats these as opaque: it looks at ``status`` to tell a business
approval from a decline and keeps only the payment id on the order.
A declined result may carry ``id=None`` when the processor assigned none.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from ordersaga.core.types import (
    AuthorizationStatus,
    CaptureStatus,
    PaymentStatus,
    VoidStatus,
)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Payment:
    """Result of a single-shot charge."""

    id: str | None
    status: PaymentStatus
    amount: Decimal
    currency: str
    method: str
    transaction_id: str | None = None
    message: str = ""
    processed_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


@dataclass(frozen=True)
class Authorization:
    id: str | None
    status: AuthorizationStatus
    amount: Decimal
    currency: str
    message: str = ""
    authorized_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == AuthorizationStatus.AUTHORIZED


@dataclass(frozen=True)
class Capture:
    id: str | None
    authorization_id: str
    status: CaptureStatus
    amount: Decimal
    currency: str = "USD"
    message: str = ""
    captured_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == CaptureStatus.CAPTURED


@dataclass(frozen=True)
class VoidResult:
    authorization_id: str
    status: VoidStatus
    message: str = ""
    voided_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == VoidStatus.VOIDED


@dataclass(frozen=True)
class Refund:
    id: str | None
    payment_id: str
    status: PaymentStatus
    amount: Decimal
    currency: str = "USD"
    message: str = ""
    refunded_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


@dataclass(frozen=True)
class PaymentStatusResult:
    payment_id: str
    status: str
    message: str = ""
    last_updated: datetime = field(default_factory=_now)
