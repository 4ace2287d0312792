"""
SQLite Order Storage Backend.

Provides lightweight embedded storage using SQLite with async support via aiosqlite.
Ideal for local development, testing, and single-process applications.

Features:
- Zero configuration (works with file path or in-memory)
- Line items in a child table, deleted with their order (ON DELETE CASCADE)
- Optimistic concurrency: updates only match the row at the expected version
- Saga journal in the same database file

Usage:
    >>> from ordersaga.storage.sqlite import SQLiteOrderRepository
    >>>
    >>> # File-based storage
    >>> orders = SQLiteOrderRepository("./data/orders.db")
    >>>
    >>> # In-memory storage (for testing)
    >>> orders = SQLiteOrderRepository(":memory:")
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:  # pragma: no cover
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None  # type: ignore[assignment]

from ordersaga.core.exceptions import (
    ConcurrentModificationError,
    MissingDependencyError,
    ResourceNotFoundError,
)
from ordersaga.core.models import Order, OrderLineItem, Page
from ordersaga.core.types import OrderStatus, SagaStatus, SagaStepStatus
from ordersaga.storage.base import (
    OrderRepository,
    SagaJournal,
    SagaJournalError,
    apply_step_update,
    saga_summary,
)

logger = logging.getLogger(__name__)


class _SQLiteBackend:
    """Connection handling shared by the SQLite stores."""

    schema = ""
    feature = "SQLite storage"

    def __init__(self, db_path: str = ":memory:"):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory
        """
        if not AIOSQLITE_AVAILABLE:  # pragma: no cover
            msg = "aiosqlite"
            raise MissingDependencyError(msg, self.feature)

        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False
        # One connection; reads wait for any open write transaction
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")

        if not self._initialized:
            await self._conn.executescript(self.schema)
            await self._conn.commit()
            self._initialized = True

        return self._conn

    async def __aenter__(self):
        await self._get_connection()
        return self

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    async def _health(self, storage_type: str, **extra: Any) -> dict[str, Any]:
        try:
            conn = await self._get_connection()
            cursor = await conn.execute("SELECT 1")
            await cursor.fetchone()
            return {
                "status": "healthy",
                "storage_type": storage_type,
                "db_path": self.db_path,
                **extra,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "storage_type": storage_type,
                "error": str(e),
                "timestamp": datetime.now(UTC).isoformat(),
            }


class SQLiteOrderRepository(_SQLiteBackend, OrderRepository):
    """
    SQLite-based order store.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)

    Example:
        >>> orders = SQLiteOrderRepository("./orders.db")
        >>> async with orders:
        ...     saved = await orders.save(Order(customer_id="c-1"))
        ...     saved.id
        1
    """

    feature = "SQLite order repository"
    schema = """
        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id TEXT NOT NULL,
            status TEXT NOT NULL,
            total_amount TEXT NOT NULL,
            shipping_address TEXT,
            payment_id TEXT,
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            version INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS order_items (
            order_id INTEGER NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity >= 1),
            unit_price TEXT NOT NULL,
            PRIMARY KEY (order_id, position)
        );

        CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id);
        CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
    """

    async def find_by_id(self, order_id: int) -> Order | None:
        conn = await self._get_connection()
        async with self._lock:
            cursor = await conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return await self._row_to_order(conn, row)

    async def _row_to_order(self, conn: aiosqlite.Connection, row: aiosqlite.Row) -> Order:
        """Convert an orders row plus its item rows to an Order."""
        cursor = await conn.execute(
            "SELECT * FROM order_items WHERE order_id = ? ORDER BY position",
            (row["id"],),
        )
        items = [
            OrderLineItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=Decimal(item["unit_price"]),
            )
            for item in await cursor.fetchall()
        ]
        return Order(
            customer_id=row["customer_id"],
            id=row["id"],
            items=tuple(items),
            status=OrderStatus(row["status"]),
            shipping_address=row["shipping_address"],
            payment_id=row["payment_id"],
            notes=row["notes"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            version=row["version"],
        )

    async def save(self, order: Order) -> Order:
        conn = await self._get_connection()
        new_version = order.version + 1

        async with self._lock:
            try:
                if order.id is None or order.version == 0:
                    order_id = await self._insert(conn, order, new_version)
                else:
                    await self._update(conn, order, new_version)
                    order_id = order.id

                await conn.execute("DELETE FROM order_items WHERE order_id = ?", (order_id,))
                await conn.executemany(
                    """
                    INSERT INTO order_items (order_id, position, product_id, quantity, unit_price)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (order_id, position, item.product_id, item.quantity, str(item.unit_price))
                        for position, item in enumerate(order.items)
                    ],
                )
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

        order.id = order_id
        order.version = new_version
        logger.debug(f"Saved order {order_id} at version {new_version}")
        return await self.find_by_id(order_id)

    async def _insert(self, conn: aiosqlite.Connection, order: Order, version: int) -> int:
        columns = self._columns(order, version)
        if order.id is not None:
            columns["id"] = order.id
        names = ", ".join(columns)
        placeholders = ", ".join("?" * len(columns))
        try:
            cursor = await conn.execute(
                f"INSERT INTO orders ({names}) VALUES ({placeholders})",
                tuple(columns.values()),
            )
        except aiosqlite.IntegrityError:
            actual = await self._stored_version(conn, order.id)
            raise ConcurrentModificationError(order.id, order.version, actual) from None
        return order.id if order.id is not None else cursor.lastrowid

    async def _update(self, conn: aiosqlite.Connection, order: Order, version: int) -> None:
        columns = self._columns(order, version)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        cursor = await conn.execute(
            f"UPDATE orders SET {assignments} WHERE id = ? AND version = ?",
            (*columns.values(), order.id, order.version),
        )
        if cursor.rowcount == 0:
            actual = await self._stored_version(conn, order.id)
            if actual is None:
                raise ResourceNotFoundError("Order", order.id)
            raise ConcurrentModificationError(order.id, order.version, actual)

    @staticmethod
    def _columns(order: Order, version: int) -> dict[str, Any]:
        return {
            "customer_id": order.customer_id,
            "status": order.status.value,
            "total_amount": str(order.total_amount),
            "shipping_address": order.shipping_address,
            "payment_id": order.payment_id,
            "notes": order.notes,
            "created_at": order.created_at.isoformat(),
            "updated_at": order.updated_at.isoformat(),
            "version": version,
        }

    @staticmethod
    async def _stored_version(conn: aiosqlite.Connection, order_id: int | None) -> int | None:
        cursor = await conn.execute("SELECT version FROM orders WHERE id = ?", (order_id,))
        row = await cursor.fetchone()
        return None if row is None else row["version"]

    async def _page(self, where: str, params: tuple, page: int, size: int) -> Page[Order]:
        if page < 0 or size <= 0:
            msg = f"Invalid page request: page={page}, size={size}"
            raise ValueError(msg)

        conn = await self._get_connection()
        async with self._lock:
            cursor = await conn.execute(f"SELECT COUNT(*) AS n FROM orders {where}", params)
            total = (await cursor.fetchone())["n"]

            cursor = await conn.execute(
                f"SELECT * FROM orders {where} ORDER BY id LIMIT ? OFFSET ?",
                (*params, size, page * size),
            )
            orders = [await self._row_to_order(conn, row) for row in await cursor.fetchall()]
        return Page(items=orders, page=page, size=size, total_items=total)

    async def find_by_customer(self, customer_id: str, page: int = 0, size: int = 20) -> Page[Order]:
        return await self._page("WHERE customer_id = ?", (customer_id,), page, size)

    async def find_all(self, page: int = 0, size: int = 20) -> Page[Order]:
        return await self._page("", (), page, size)

    async def delete(self, order_id: int) -> bool:
        conn = await self._get_connection()
        async with self._lock:
            cursor = await conn.execute("DELETE FROM orders WHERE id = ?", (order_id,))
            await conn.commit()
        return cursor.rowcount > 0

    async def health_check(self) -> dict[str, Any]:
        return await self._health("sqlite")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _dumps(value: Any) -> str:
    return json.dumps(value, default=_json_default)


class SQLiteSagaJournal(_SQLiteBackend, SagaJournal):
    """
    SQLite-based saga journal.

    Survives process restarts when pointed at a file, which is what makes
    cancellation resumable after a crash.
    """

    feature = "SQLite saga journal"
    schema = """
        CREATE TABLE IF NOT EXISTS saga_journal (
            saga_id TEXT PRIMARY KEY,
            saga_name TEXT NOT NULL,
            status TEXT NOT NULL,
            steps TEXT NOT NULL,
            context TEXT NOT NULL,
            metadata TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_saga_journal_status ON saga_journal(status);
        CREATE INDEX IF NOT EXISTS idx_saga_journal_updated_at ON saga_journal(updated_at);
    """

    async def save_saga_state(
        self,
        saga_id: str,
        saga_name: str,
        status: SagaStatus,
        steps: list[dict[str, Any]],
        context: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Save or update saga state."""
        conn = await self._get_connection()
        now = datetime.now(UTC).isoformat()

        async with self._lock:
            await conn.execute(
                """
                INSERT INTO saga_journal
                    (saga_id, saga_name, status, steps, context, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(saga_id) DO UPDATE SET
                    saga_name = excluded.saga_name,
                    status = excluded.status,
                    steps = excluded.steps,
                    context = excluded.context,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (
                    saga_id,
                    saga_name,
                    status.value,
                    _dumps(steps),
                    _dumps(context),
                    _dumps(metadata) if metadata else None,
                    now,
                    now,
                ),
            )
            await conn.commit()

    async def load_saga_state(self, saga_id: str) -> dict[str, Any] | None:
        """Load saga state by ID."""
        conn = await self._get_connection()
        async with self._lock:
            cursor = await conn.execute("SELECT * FROM saga_journal WHERE saga_id = ?", (saga_id,))
            row = await cursor.fetchone()
        return None if row is None else self._row_to_dict(row)

    def _row_to_dict(self, row: aiosqlite.Row) -> dict[str, Any]:
        """Convert database row to dictionary."""
        return {
            "saga_id": row["saga_id"],
            "saga_name": row["saga_name"],
            "status": row["status"],
            "steps": json.loads(row["steps"]),
            "context": json.loads(row["context"]),
            "metadata": json.loads(row["metadata"]) if row["metadata"] else {},
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    async def update_step_state(
        self,
        saga_id: str,
        step_name: str,
        status: SagaStepStatus,
        result: Any = None,
        error: str | None = None,
        executed_at: datetime | None = None,
    ) -> None:
        """Update a single step's state within a saga."""
        saga = await self.load_saga_state(saga_id)
        if saga is None:
            msg = f"Saga {saga_id} not found"
            raise SagaJournalError(msg)

        steps = saga["steps"]
        apply_step_update(steps, step_name, status, result, error, executed_at)
        await self.save_saga_state(
            saga_id=saga_id,
            saga_name=saga["saga_name"],
            status=SagaStatus(saga["status"]),
            steps=steps,
            context=saga["context"],
            metadata=saga["metadata"],
        )

    async def list_sagas(
        self,
        status: SagaStatus | None = None,
        saga_name: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List sagas with optional filtering."""
        conn = await self._get_connection()

        query = "SELECT * FROM saga_journal WHERE 1=1"
        params: list[Any] = []

        if status:
            query += " AND status = ?"
            params.append(status.value)

        if saga_name:
            query += " AND saga_name LIKE ?"
            params.append(f"%{saga_name}%")

        query += " ORDER BY updated_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        async with self._lock:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [saga_summary(self._row_to_dict(row)) for row in rows]

    async def delete_saga_state(self, saga_id: str) -> bool:
        """Delete saga state by ID."""
        conn = await self._get_connection()
        async with self._lock:
            cursor = await conn.execute("DELETE FROM saga_journal WHERE saga_id = ?", (saga_id,))
            await conn.commit()
        return cursor.rowcount > 0

    async def health_check(self) -> dict[str, Any]:
        return await self._health("sqlite")
