"""
Base interface for the inventory ledger.

The ledger owns per-product stock counts. Stock can only change through
reserve/commit (conditional decrement) and release (plain increment); the
count never goes below zero and a decrement that would break this is
refused, not clamped.
"""

from abc import ABC, abstractmethod
from typing import Any

from ordersaga.core.models import validate_quantity


class InventoryLedger(ABC):
    """
    Abstract base class for inventory ledgers.

    Implementations must make ``reserve`` and ``commit`` a single atomic
    check-and-update, never a read followed by a separate write.
    """

    @abstractmethod
    async def add_product(self, product_id: str, initial_stock: int = 0) -> None:
        """
        Create the inventory record for a product.

        Raises:
            ValueError: If the product already has a record
        """

    @abstractmethod
    async def get_stock(self, product_id: str) -> int:
        """
        Current stock for a product.

        Raises:
            ResourceNotFoundError: If the product has no inventory record
        """

    @abstractmethod
    async def check_availability(self, product_id: str, quantity: int) -> bool:
        """True iff stock >= quantity. No side effects."""

    @abstractmethod
    async def reserve(self, product_id: str, quantity: int) -> int:
        """
        Atomically decrement stock if enough is available.

        Returns:
            Stock remaining after the reservation

        Raises:
            InsufficientStockError: Not enough stock (nothing is changed)
            ResourceNotFoundError: Unknown product
        """

    @abstractmethod
    async def release(self, product_id: str, quantity: int) -> int:
        """
        Give previously reserved stock back.

        Plain increment: callers are responsible for not releasing the same
        reservation twice.

        Returns:
            Stock after the release
        """

    @abstractmethod
    async def commit(self, product_id: str, quantity: int) -> int:
        """
        Final deduction of stock that was never separately reserved.

        Same atomicity and failure semantics as ``reserve``.
        """

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check ledger health"""

    async def __aenter__(self):
        """Async context manager entry"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def close(self) -> None:  # noqa: B027
        """Release any held resources."""

    @staticmethod
    def _check_quantity(quantity: int, *, allow_zero: bool = False) -> int:
        return validate_quantity(quantity, allow_zero=allow_zero)
