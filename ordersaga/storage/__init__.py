"""
Order and saga-journal storage backends.

Usage:
    >>> from ordersaga.storage import create_order_repository
    >>> orders = create_order_repository("sqlite:///./orders.db")
"""

from ordersaga.storage.base import OrderRepository, SagaJournal, SagaJournalError
from ordersaga.storage.factory import (
    create_inventory_ledger,
    create_order_repository,
    create_payment_client,
    create_saga_journal,
    parse_storage_url,
)
from ordersaga.storage.memory import InMemoryOrderRepository, InMemorySagaJournal
from ordersaga.storage.sqlite import SQLiteOrderRepository, SQLiteSagaJournal

__all__ = [
    "InMemoryOrderRepository",
    "InMemorySagaJournal",
    "OrderRepository",
    "SQLiteOrderRepository",
    "SQLiteSagaJournal",
    "SagaJournal",
    "SagaJournalError",
    "create_inventory_ledger",
    "create_order_repository",
    "create_payment_client",
    "create_saga_journal",
    "parse_storage_url",
]
