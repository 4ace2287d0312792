"""
In-memory inventory ledger

Provides a simple in-memory ledger for development and testing.
Not suitable for production use as stock counts are lost on process restart.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from ordersaga.core.exceptions import InsufficientStockError, ResourceNotFoundError
from ordersaga.core.logger import get_logger
from ordersaga.inventory.base import InventoryLedger

logger = get_logger(__name__)


class InMemoryInventoryLedger(InventoryLedger):
    """
    In-memory implementation of the inventory ledger.

    Each product has its own asyncio.Lock; the availability check and the
    decrement happen under that lock with no await in between, so concurrent
    reservations against one product are serialized while different products
    proceed independently.
    """

    def __init__(self, initial_stock: dict[str, int] | None = None):
        self._stock: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._updated_at: dict[str, datetime] = {}
        for product_id, quantity in (initial_stock or {}).items():
            self._create(product_id, quantity)

    def _create(self, product_id: str, quantity: int) -> None:
        self._check_quantity(quantity, allow_zero=True)
        if product_id in self._stock:
            msg = f"Inventory record already exists for product {product_id}"
            raise ValueError(msg)
        self._stock[product_id] = quantity
        self._locks[product_id] = asyncio.Lock()
        self._updated_at[product_id] = datetime.now(UTC)

    def _lock_for(self, product_id: str) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            raise ResourceNotFoundError(
                "Inventory",
                product_id,
                f"Inventory not found for product ID: {product_id}",
            )
        return lock

    async def add_product(self, product_id: str, initial_stock: int = 0) -> None:
        self._create(product_id, initial_stock)
        logger.debug(f"Created inventory record for product {product_id} ({initial_stock} units)")

    async def get_stock(self, product_id: str) -> int:
        async with self._lock_for(product_id):
            return self._stock[product_id]

    async def check_availability(self, product_id: str, quantity: int) -> bool:
        self._check_quantity(quantity, allow_zero=True)
        async with self._lock_for(product_id):
            available = self._stock[product_id]
        has_stock = available >= quantity
        logger.debug(
            f"Inventory check for product {product_id}: requested={quantity}, "
            f"available={available}, has_stock={has_stock}"
        )
        return has_stock

    async def reserve(self, product_id: str, quantity: int) -> int:
        remaining = await self._decrement(product_id, quantity)
        logger.info(f"Reserved {quantity} units of product {product_id}")
        return remaining

    async def commit(self, product_id: str, quantity: int) -> int:
        remaining = await self._decrement(product_id, quantity)
        logger.info(f"Committed {quantity} units of product {product_id}")
        return remaining

    async def release(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        async with self._lock_for(product_id):
            self._stock[product_id] += quantity
            self._updated_at[product_id] = datetime.now(UTC)
            stock = self._stock[product_id]
        logger.info(f"Restored {quantity} units of product {product_id}")
        return stock

    async def _decrement(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        async with self._lock_for(product_id):
            available = self._stock[product_id]
            if available < quantity:
                raise InsufficientStockError(product_id, quantity, available)
            self._stock[product_id] = available - quantity
            self._updated_at[product_id] = datetime.now(UTC)
            return self._stock[product_id]

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "storage_type": "in_memory",
            "total_products": len(self._stock),
            "total_units": sum(self._stock.values()),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def snapshot(self) -> dict[str, int]:
        """Copy of all stock counts (synchronous for testing)"""
        return dict(self._stock)
