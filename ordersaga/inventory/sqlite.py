"""
SQLite Inventory Ledger.

Provides lightweight embedded stock storage using SQLite with async support
via aiosqlite.

Reservations are a single conditional UPDATE:

    UPDATE inventory
       SET stock_quantity = stock_quantity - :qty
     WHERE product_id = :pid AND stock_quantity >= :qty

so two writers (even from different processes sharing the database file)
can never both observe enough stock and oversell. A CHECK constraint keeps
the count non-negative at the schema level too.

Usage:
    >>> ledger = SQLiteInventoryLedger("./data/inventory.db")
    >>> async with ledger:
    ...     await ledger.add_product("SKU-1", 10)
    ...     await ledger.reserve("SKU-1", 3)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:  # pragma: no cover
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None  # type: ignore[assignment]

from ordersaga.core.exceptions import (
    InsufficientStockError,
    MissingDependencyError,
    ResourceNotFoundError,
)
from ordersaga.inventory.base import InventoryLedger

logger = logging.getLogger(__name__)


class SQLiteInventoryLedger(InventoryLedger):
    """
    SQLite-based inventory ledger.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)
    """

    def __init__(self, db_path: str = ":memory:"):
        if not AIOSQLITE_AVAILABLE:  # pragma: no cover
            msg = "aiosqlite"
            raise MissingDependencyError(msg, "SQLite inventory ledger")

        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row

        if not self._initialized:
            await self._init_schema()
            self._initialized = True

        return self._conn

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        conn = self._conn
        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS inventory (
                product_id TEXT PRIMARY KEY,
                stock_quantity INTEGER NOT NULL CHECK (stock_quantity >= 0),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        await conn.commit()

    async def __aenter__(self):
        await self._get_connection()
        return self

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    async def add_product(self, product_id: str, initial_stock: int = 0) -> None:
        self._check_quantity(initial_stock, allow_zero=True)
        conn = await self._get_connection()
        now = datetime.now(UTC).isoformat()

        async with self._write_lock:
            try:
                await conn.execute(
                    """
                    INSERT INTO inventory (product_id, stock_quantity, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (product_id, initial_stock, now, now),
                )
            except aiosqlite.IntegrityError:
                await conn.rollback()
                msg = f"Inventory record already exists for product {product_id}"
                raise ValueError(msg) from None
            await conn.commit()

    async def _read_stock(self, conn: aiosqlite.Connection, product_id: str) -> int | None:
        cursor = await conn.execute(
            "SELECT stock_quantity FROM inventory WHERE product_id = ?",
            (product_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else int(row["stock_quantity"])

    @staticmethod
    def _not_found(product_id: str) -> ResourceNotFoundError:
        return ResourceNotFoundError(
            "Inventory",
            product_id,
            f"Inventory not found for product ID: {product_id}",
        )

    async def get_stock(self, product_id: str) -> int:
        conn = await self._get_connection()
        stock = await self._read_stock(conn, product_id)
        if stock is None:
            raise self._not_found(product_id)
        return stock

    async def check_availability(self, product_id: str, quantity: int) -> bool:
        self._check_quantity(quantity, allow_zero=True)
        stock = await self.get_stock(product_id)
        return stock >= quantity

    async def reserve(self, product_id: str, quantity: int) -> int:
        remaining = await self._conditional_decrement(product_id, quantity)
        logger.info(f"Reserved {quantity} units of product {product_id}")
        return remaining

    async def commit(self, product_id: str, quantity: int) -> int:
        remaining = await self._conditional_decrement(product_id, quantity)
        logger.info(f"Committed {quantity} units of product {product_id}")
        return remaining

    async def _conditional_decrement(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        conn = await self._get_connection()
        now = datetime.now(UTC).isoformat()

        async with self._write_lock:
            cursor = await conn.execute(
                """
                UPDATE inventory
                   SET stock_quantity = stock_quantity - ?, updated_at = ?
                 WHERE product_id = ? AND stock_quantity >= ?
                """,
                (quantity, now, product_id, quantity),
            )
            updated = cursor.rowcount
            await conn.commit()
            stock = await self._read_stock(conn, product_id)

        if stock is None:
            raise self._not_found(product_id)
        if updated == 0:
            raise InsufficientStockError(product_id, quantity, stock)
        return stock

    async def release(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        conn = await self._get_connection()
        now = datetime.now(UTC).isoformat()

        async with self._write_lock:
            cursor = await conn.execute(
                """
                UPDATE inventory
                   SET stock_quantity = stock_quantity + ?, updated_at = ?
                 WHERE product_id = ?
                """,
                (quantity, now, product_id),
            )
            updated = cursor.rowcount
            await conn.commit()
            stock = await self._read_stock(conn, product_id)

        if updated == 0 or stock is None:
            raise self._not_found(product_id)
        logger.info(f"Restored {quantity} units of product {product_id}")
        return stock

    async def health_check(self) -> dict[str, Any]:
        try:
            conn = await self._get_connection()
            cursor = await conn.execute(
                "SELECT COUNT(*) AS products, COALESCE(SUM(stock_quantity), 0) AS units FROM inventory"
            )
            row = await cursor.fetchone()
            return {
                "status": "healthy",
                "storage_type": "sqlite",
                "db_path": self.db_path,
                "total_products": row["products"],
                "total_units": row["units"],
                "timestamp": datetime.now(UTC).isoformat(),
            }
        except Exception as e:  # pragma: no cover
            return {
                "status": "unhealthy",
                "storage_type": "sqlite",
                "error": str(e),
                "timestamp": datetime.now(UTC).isoformat(),
            }
