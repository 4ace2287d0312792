"""
Payment gateway clients.

Usage:
    >>> from ordersaga.payment import MockPaymentGatewayClient
    >>> gateway = MockPaymentGatewayClient()
    >>> payment = await gateway.process_payment(1, Decimal("9.99"), "USD", "card", "key-1")
    >>> payment.succeeded
    True
"""

from ordersaga.payment.base import PaymentGatewayClient
from ordersaga.payment.http import HttpPaymentGatewayClient
from ordersaga.payment.mock import GatewayCall, MockPaymentGatewayClient
from ordersaga.payment.types import (
    Authorization,
    Capture,
    Payment,
    PaymentStatusResult,
    Refund,
    VoidResult,
)

__all__ = [
    "Authorization",
    "Capture",
    "GatewayCall",
    "HttpPaymentGatewayClient",
    "MockPaymentGatewayClient",
    "Payment",
    "PaymentGatewayClient",
    "PaymentStatusResult",
    "Refund",
    "VoidResult",
]
