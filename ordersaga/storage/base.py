"""
Storage interfaces for orders and saga progress.

``OrderRepository`` is the source of truth for orders and their status.
``SagaJournal`` records how far each saga run got, so an interrupted
cancellation can be re-run without refunding or releasing twice.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ordersaga.core.exceptions import OrderSagaError
from ordersaga.core.models import Order, Page
from ordersaga.core.types import SagaStatus, SagaStepStatus


class SagaJournalError(OrderSagaError):
    """Journal entry or step could not be found or written"""


class OrderRepository(ABC):
    """
    Abstract order store.

    ``save`` upserts: orders without an id are inserted and get one, orders
    with an id are updated only if their ``version`` matches the stored one.
    Every successful save bumps ``version``. Line items are stored with, and
    deleted with, their order.
    """

    @abstractmethod
    async def find_by_id(self, order_id: int) -> Order | None:
        """Return a detached copy of the order, or None."""

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """
        Insert or update an order.

        The passed order gets its ``id`` and ``version`` updated in place;
        the returned order is a fresh copy of what was stored.

        Raises:
            ConcurrentModificationError: The stored version moved on
            ResourceNotFoundError: Updating an order that no longer exists
        """

    @abstractmethod
    async def find_by_customer(self, customer_id: str, page: int = 0, size: int = 20) -> Page[Order]:
        """Orders of one customer, oldest first."""

    @abstractmethod
    async def find_all(self, page: int = 0, size: int = 20) -> Page[Order]:
        """All orders, oldest first."""

    @abstractmethod
    async def delete(self, order_id: int) -> bool:
        """Delete an order with its line items. True if something was deleted."""

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check storage health"""

    async def close(self) -> None:  # noqa: B027
        """Release held resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class SagaJournal(ABC):
    """
    Abstract base class for saga progress persistence

    A journal entry has the shape::

        {
            "saga_id": "cancel-42",
            "saga_name": "CancelOrder",
            "status": "executing",
            "steps": [{"name": "refund", "status": "completed", ...}],
            "context": {"order_id": 42, "refund_key": "..."},
            "metadata": {},
            "created_at": "...",
            "updated_at": "...",
        }
    """

    @abstractmethod
    async def save_saga_state(
        self,
        saga_id: str,
        saga_name: str,
        status: SagaStatus,
        steps: list[dict[str, Any]],
        context: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Create or overwrite a journal entry

        Args:
            saga_id: Unique saga identifier
            saga_name: Human-readable saga name
            status: Current saga status
            steps: Step names with their states
            context: JSON-compatible saga data (ids, idempotency keys)
            metadata: Additional metadata
        """

    @abstractmethod
    async def load_saga_state(self, saga_id: str) -> dict[str, Any] | None:
        """Load a journal entry, or None if not found"""

    @abstractmethod
    async def update_step_state(
        self,
        saga_id: str,
        step_name: str,
        status: SagaStepStatus,
        result: Any = None,
        error: str | None = None,
        executed_at: datetime | None = None,
    ) -> None:
        """
        Update one step of an existing entry, appending it if absent

        Raises:
            SagaJournalError: No entry with ``saga_id``
        """

    @abstractmethod
    async def list_sagas(
        self,
        status: SagaStatus | None = None,
        saga_name: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List entry summaries, most recently updated first"""

    @abstractmethod
    async def delete_saga_state(self, saga_id: str) -> bool:
        """Delete an entry. True if deleted, False if not found"""

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check storage health"""

    async def close(self) -> None:  # noqa: B027
        """Release held resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def apply_step_update(
    steps: list[dict[str, Any]],
    step_name: str,
    status: SagaStepStatus,
    result: Any,
    error: str | None,
    executed_at: datetime | None,
) -> None:
    """Update (or append) a step entry in a journal step list."""
    step = next((s for s in steps if s.get("name") == step_name), None)
    if step is None:
        step = {"name": step_name}
        steps.append(step)

    step["status"] = status.value
    step["result"] = result
    step["error"] = error
    if executed_at:
        step["executed_at"] = executed_at.isoformat()


def saga_summary(saga_data: dict[str, Any]) -> dict[str, Any]:
    """Create a summary dict for a journal entry."""
    return {
        "saga_id": saga_data["saga_id"],
        "saga_name": saga_data["saga_name"],
        "status": saga_data["status"],
        "created_at": saga_data["created_at"],
        "updated_at": saga_data["updated_at"],
        "step_count": len(saga_data["steps"]),
        "completed_steps": sum(
            1
            for step in saga_data["steps"]
            if step.get("status") == SagaStepStatus.COMPLETED.value
        ),
    }
