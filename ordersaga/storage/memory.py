"""
In-memory storage implementations for orders and saga progress

Provides simple in-memory storage backends for development and testing.
Not suitable for production use as state is lost on process restart.
"""

import asyncio
import copy
import sys
from datetime import UTC, datetime
from typing import Any

from ordersaga.core.exceptions import ConcurrentModificationError, ResourceNotFoundError
from ordersaga.core.models import Order, Page, paginate
from ordersaga.core.types import SagaStatus, SagaStepStatus
from ordersaga.storage.base import (
    OrderRepository,
    SagaJournal,
    SagaJournalError,
    apply_step_update,
    saga_summary,
)


class InMemoryOrderRepository(OrderRepository):
    """
    In-memory implementation of the order store

    Orders are deep-copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._orders: dict[int, Order] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def find_by_id(self, order_id: int) -> Order | None:
        async with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order is not None else None

    async def save(self, order: Order) -> Order:
        async with self._lock:
            if order.id is None:
                order.id = self._next_id
            else:
                self._check_version(order)
            self._next_id = max(self._next_id, order.id + 1)

            order.version += 1
            self._orders[order.id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def _check_version(self, order: Order) -> None:
        stored = self._orders.get(order.id)
        if stored is None:
            if order.version == 0:
                return
            raise ResourceNotFoundError("Order", order.id)
        if stored.version != order.version:
            raise ConcurrentModificationError(order.id, order.version, stored.version)

    async def find_by_customer(self, customer_id: str, page: int = 0, size: int = 20) -> Page[Order]:
        async with self._lock:
            matching = [
                copy.deepcopy(o)
                for _, o in sorted(self._orders.items())
                if o.customer_id == customer_id
            ]
        return paginate(matching, page, size)

    async def find_all(self, page: int = 0, size: int = 20) -> Page[Order]:
        async with self._lock:
            orders = [copy.deepcopy(o) for _, o in sorted(self._orders.items())]
        return paginate(orders, page, size)

    async def delete(self, order_id: int) -> bool:
        async with self._lock:
            return self._orders.pop(order_id, None) is not None

    async def health_check(self) -> dict[str, Any]:
        async with self._lock:
            return {
                "status": "healthy",
                "storage_type": "in_memory",
                "total_orders": len(self._orders),
                "timestamp": datetime.now(UTC).isoformat(),
            }

    def get_order_count(self) -> int:
        """Get current order count (synchronous for testing)"""
        return len(self._orders)


class InMemorySagaJournal(SagaJournal):
    """
    In-memory implementation of the saga journal

    Stores all journal entries in memory using dictionaries.
    """

    def __init__(self):
        self._sagas: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def save_saga_state(
        self,
        saga_id: str,
        saga_name: str,
        status: SagaStatus,
        steps: list[dict[str, Any]],
        context: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Save saga state to memory"""
        now = datetime.now(UTC).isoformat()

        async with self._lock:
            existing = self._sagas.get(saga_id)
            self._sagas[saga_id] = {
                "saga_id": saga_id,
                "saga_name": saga_name,
                "status": status.value,
                "steps": copy.deepcopy(steps),
                "context": copy.deepcopy(context),
                "metadata": copy.deepcopy(metadata) or {},
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
            }

    async def load_saga_state(self, saga_id: str) -> dict[str, Any] | None:
        """Load saga state from memory"""
        async with self._lock:
            saga_data = self._sagas.get(saga_id)
            # Return a copy to prevent external modification
            return copy.deepcopy(saga_data) if saga_data else None

    async def update_step_state(
        self,
        saga_id: str,
        step_name: str,
        status: SagaStepStatus,
        result: Any = None,
        error: str | None = None,
        executed_at: datetime | None = None,
    ) -> None:
        """Update individual step state"""
        async with self._lock:
            saga_data = self._sagas.get(saga_id)
            if not saga_data:
                msg = f"Saga {saga_id} not found"
                raise SagaJournalError(msg)

            apply_step_update(
                saga_data["steps"], step_name, status, copy.deepcopy(result), error, executed_at
            )
            saga_data["updated_at"] = datetime.now(UTC).isoformat()

    async def list_sagas(
        self,
        status: SagaStatus | None = None,
        saga_name: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List sagas with filtering"""
        async with self._lock:
            results = [
                saga_summary(saga_data)
                for saga_data in self._sagas.values()
                if self._matches_filters(saga_data, status, saga_name)
            ]
        results.sort(key=lambda x: x["updated_at"], reverse=True)
        return results[offset : offset + limit]

    def _matches_filters(
        self, saga_data: dict, status: SagaStatus | None, saga_name: str | None
    ) -> bool:
        """Check if saga matches the given filters."""
        if status and saga_data["status"] != status.value:
            return False
        return not (saga_name and saga_name.lower() not in saga_data["saga_name"].lower())

    async def delete_saga_state(self, saga_id: str) -> bool:
        """Delete saga state from memory"""
        async with self._lock:
            return self._sagas.pop(saga_id, None) is not None

    async def health_check(self) -> dict[str, Any]:
        """Check storage health"""
        async with self._lock:
            return {
                "status": "healthy",
                "storage_type": "in_memory",
                "total_sagas": len(self._sagas),
                "memory_usage_bytes": self._estimate_memory_usage(),
                "timestamp": datetime.now(UTC).isoformat(),
            }

    def _estimate_memory_usage(self) -> int:
        """Rough estimate of memory usage, for monitoring only."""
        total_size = 0
        for saga_data in self._sagas.values():
            total_size += sys.getsizeof(saga_data)
            total_size += sum(sys.getsizeof(v) for v in saga_data.values())
        return total_size

    def get_saga_count(self) -> int:
        """Get current saga count (synchronous for testing)"""
        return len(self._sagas)
