# ============================================
# FILE: ordersaga/core/exceptions.py
# ============================================

"""
All order-saga exceptions.

Client errors (not found, invalid state, insufficient stock) never leave
partial state behind. Payment declines and transport failures are kept
apart: a decline is a PaymentProcessingError, an unreachable gateway is an
ExternalServiceError.
"""

from typing import Any


class OrderSagaError(Exception):
    """Base order saga error"""


class ResourceNotFoundError(OrderSagaError):
    """Referenced order, product or inventory record does not exist"""

    def __init__(self, resource: str, resource_id: Any, message: str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message or f"{resource} not found with ID: {resource_id}")


class InsufficientStockError(OrderSagaError):
    """A reservation asked for more units than the ledger holds"""

    def __init__(self, product_id: Any, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.compensation_errors: list[Exception] = []
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested={requested}, available={available}"
        )


class InvalidOrderStateError(OrderSagaError):
    """Requested status transition is not in the transition table"""

    def __init__(self, from_status: Any, to_status: Any):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition order from {_status_name(from_status)} "
            f"to {_status_name(to_status)}"
        )


class PaymentProcessingError(OrderSagaError):
    """
    The gateway answered, but with a negative business outcome
    (declined charge, failed capture, failed refund).
    """

    def __init__(
        self,
        message: str,
        payment_id: str | None = None,
        status: str | None = None,
    ):
        self.payment_id = payment_id
        self.status = status
        super().__init__(message)


class ExternalServiceError(OrderSagaError):
    """Transport-level failure talking to an external service"""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"Error communicating with external service: {provider}. Reason: {reason}"
        )


class ConcurrentModificationError(OrderSagaError):
    """A save was attempted against a stale copy of an order"""

    def __init__(self, order_id: Any, expected_version: int, actual_version: int):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class WorkerPoolClosedError(OrderSagaError):
    """Work was submitted to a pool that is not running"""


class MissingDependencyError(OrderSagaError):
    """
    Raised when an optional dependency is not installed.

    This exception provides clear installation instructions to help users
    quickly resolve missing package issues.
    """

    INSTALL_COMMANDS = {
        "aiosqlite": "pip install aiosqlite",
        "httpx": "pip install httpx",
        "pyyaml": "pip install pyyaml",
        "rich": "pip install rich",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        if feature:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Required for: {feature:<45} ║\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )
        else:
            message = (
                f"\n╔══════════════════════════════════════════════════════════════╗\n"
                f"║  Missing Dependency: {package:<40} ║\n"
                f"╠══════════════════════════════════════════════════════════════╣\n"
                f"║  Install with: {install_cmd:<45} ║\n"
                f"╚══════════════════════════════════════════════════════════════╝"
            )

        super().__init__(message)


def _status_name(status: Any) -> str:
    return getattr(status, "value", None) or str(status)
