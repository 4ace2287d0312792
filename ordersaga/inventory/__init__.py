"""
Inventory ledger backends.

Usage:
    >>> from ordersaga.inventory import InMemoryInventoryLedger
    >>> ledger = InMemoryInventoryLedger({"SKU-1": 10})
    >>> await ledger.reserve("SKU-1", 3)
    7
"""

from ordersaga.inventory.base import InventoryLedger
from ordersaga.inventory.memory import InMemoryInventoryLedger
from ordersaga.inventory.sqlite import SQLiteInventoryLedger

__all__ = [
    "InMemoryInventoryLedger",
    "InventoryLedger",
    "SQLiteInventoryLedger",
]
