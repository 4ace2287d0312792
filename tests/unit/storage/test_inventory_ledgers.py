"""
Tests for the inventory ledger backends.

Both backends run the same behavioural tests; the concurrency tests hammer
a single product to check that stock never goes negative.
"""

import asyncio

import pytest
import pytest_asyncio

from ordersaga.core.exceptions import InsufficientStockError, ResourceNotFoundError
from ordersaga.inventory.memory import InMemoryInventoryLedger
from ordersaga.inventory.sqlite import SQLiteInventoryLedger


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def ledger(request):
    if request.param == "memory":
        ledger = InMemoryInventoryLedger()
    else:
        ledger = SQLiteInventoryLedger(":memory:")
        await ledger.initialize()
    await ledger.add_product("P-1", 10)
    await ledger.add_product("P-2", 0)
    yield ledger
    await ledger.close()


# ============================================================================
# Shared behaviour
# ============================================================================


@pytest.mark.asyncio
class TestInventoryLedger:
    """Behaviour every ledger backend must share."""

    async def test_get_stock(self, ledger):
        assert await ledger.get_stock("P-1") == 10
        assert await ledger.get_stock("P-2") == 0

    async def test_unknown_product(self, ledger):
        """Unknown products raise ResourceNotFoundError on every operation."""
        with pytest.raises(ResourceNotFoundError) as exc_info:
            await ledger.get_stock("nope")
        assert exc_info.value.resource == "Inventory"
        assert str(exc_info.value) == "Inventory not found for product ID: nope"

        with pytest.raises(ResourceNotFoundError):
            await ledger.reserve("nope", 1)
        with pytest.raises(ResourceNotFoundError):
            await ledger.release("nope", 1)
        with pytest.raises(ResourceNotFoundError):
            await ledger.check_availability("nope", 1)

    async def test_duplicate_product(self, ledger):
        with pytest.raises(ValueError, match="already exists"):
            await ledger.add_product("P-1", 5)

    async def test_check_availability_has_no_side_effects(self, ledger):
        assert await ledger.check_availability("P-1", 10)
        assert not await ledger.check_availability("P-1", 11)
        assert await ledger.get_stock("P-1") == 10

    async def test_reserve_decrements(self, ledger):
        assert await ledger.reserve("P-1", 3) == 7
        assert await ledger.get_stock("P-1") == 7

    async def test_reserve_exact_stock(self, ledger):
        assert await ledger.reserve("P-1", 10) == 0

    async def test_insufficient_stock_changes_nothing(self, ledger):
        """A refused reservation reports the numbers and leaves stock alone."""
        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.reserve("P-1", 15)

        error = exc_info.value
        assert (error.product_id, error.requested, error.available) == ("P-1", 15, 10)
        assert await ledger.get_stock("P-1") == 10

    async def test_reserve_from_empty(self, ledger):
        with pytest.raises(InsufficientStockError):
            await ledger.reserve("P-2", 1)
        assert await ledger.get_stock("P-2") == 0

    async def test_commit_has_reserve_semantics(self, ledger):
        assert await ledger.commit("P-1", 4) == 6
        with pytest.raises(InsufficientStockError):
            await ledger.commit("P-1", 7)
        assert await ledger.get_stock("P-1") == 6

    async def test_release_increments(self, ledger):
        await ledger.reserve("P-1", 3)
        assert await ledger.release("P-1", 3) == 10

    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_rejects_non_positive_quantities(self, ledger, quantity):
        with pytest.raises(ValueError):
            await ledger.reserve("P-1", quantity)
        with pytest.raises(ValueError):
            await ledger.release("P-1", quantity)
        assert await ledger.get_stock("P-1") == 10

    async def test_negative_initial_stock(self, ledger):
        with pytest.raises(ValueError):
            await ledger.add_product("P-9", -1)

    async def test_health_check(self, ledger):
        health = await ledger.health_check()
        assert health["status"] == "healthy"
        assert health["total_products"] == 2
        assert health["total_units"] == 10


# ============================================================================
# Concurrency
# ============================================================================


@pytest.mark.asyncio
class TestConcurrentReservations:
    """Concurrent reservations against one product never oversell."""

    async def test_exactly_stock_many_single_unit_reservations_succeed(self, ledger):
        results = await asyncio.gather(
            *(ledger.reserve("P-1", 1) for _ in range(25)), return_exceptions=True
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(succeeded) == 10
        assert len(refused) == 15
        assert await ledger.get_stock("P-1") == 0

    async def test_mixed_sizes_never_negative(self, ledger):
        quantities = [3, 4, 5, 2, 6, 1]
        results = await asyncio.gather(
            *(ledger.reserve("P-1", q) for q in quantities), return_exceptions=True
        )

        reserved = sum(q for q, r in zip(quantities, results) if not isinstance(r, Exception))
        assert reserved <= 10
        assert await ledger.get_stock("P-1") == 10 - reserved

    async def test_reserve_and_release_interleaved(self, ledger):
        await ledger.reserve("P-1", 10)
        await asyncio.gather(*(ledger.release("P-1", 1) for _ in range(5)))
        assert await ledger.get_stock("P-1") == 5


class TestInMemoryLedgerExtras:
    def test_initial_stock_and_snapshot(self):
        ledger = InMemoryInventoryLedger({"A": 1, "B": 2})
        assert ledger.snapshot() == {"A": 1, "B": 2}

    def test_initial_stock_validated(self):
        with pytest.raises(ValueError):
            InMemoryInventoryLedger({"A": -5})


@pytest.mark.asyncio
class TestSQLiteLedgerFile:
    """The SQLite ledger persists across connections to the same file."""

    async def test_stock_survives_reopen(self, tmp_path):
        path = str(tmp_path / "inventory.db")
        async with SQLiteInventoryLedger(path) as ledger:
            await ledger.add_product("P-1", 10)
            await ledger.reserve("P-1", 4)

        async with SQLiteInventoryLedger(path) as reopened:
            assert await reopened.get_stock("P-1") == 6

    async def test_two_connections_cannot_oversell(self, tmp_path):
        """Two ledgers sharing one file still only hand out what exists."""
        path = str(tmp_path / "inventory.db")
        async with SQLiteInventoryLedger(path) as first, SQLiteInventoryLedger(path) as second:
            await first.add_product("P-1", 5)
            results = await asyncio.gather(
                *(ledger.reserve("P-1", 1) for ledger in [first, second] * 5),
                return_exceptions=True,
            )
            assert sum(1 for r in results if not isinstance(r, Exception)) == 5
            assert await first.get_stock("P-1") == 0
