# ============================================
# FILE: ordersaga/core/types.py
# ============================================

"""
Status enums shared across the order saga components.

Order statuses drive the order state machine, saga and step statuses drive
the saga journal, and the payment enums mirror the values returned by the
payment gateway.
"""

from enum import Enum


class OrderStatus(Enum):
    """
    Lifecycle status of an order.

    DELIVERED and CANCELLED are terminal.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        """Accept an OrderStatus or its (case-insensitive) name."""
        if isinstance(value, OrderStatus):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            msg = f"Unknown order status: {value!r}"
            raise ValueError(msg) from None


class SagaStatus(Enum):
    """Overall status of one saga run recorded in the journal"""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class SagaStepStatus(Enum):
    """Status of individual saga step"""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    FAILED = "failed"


class PaymentStatus(Enum):
    """Outcome of a single-shot charge or a refund."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AuthorizationStatus(Enum):
    AUTHORIZED = "AUTHORIZED"
    DECLINED = "DECLINED"


class CaptureStatus(Enum):
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"


class VoidStatus(Enum):
    VOIDED = "VOIDED"
    FAILED = "FAILED"
