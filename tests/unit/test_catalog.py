"""Tests for the in-memory product catalog."""

from decimal import Decimal

import pytest

from ordersaga.core.exceptions import ResourceNotFoundError
from ordersaga.core.models import Product
from tests.conftest import GADGET, WIDGET


@pytest.mark.asyncio
class TestInMemoryProductCatalog:
    async def test_get_product(self, catalog):
        assert await catalog.get_product(WIDGET.id) == WIDGET

    async def test_unknown_product(self, catalog):
        with pytest.raises(ResourceNotFoundError):
            await catalog.get_product("P-404")

    async def test_add_product(self, catalog):
        await catalog.add_product(Product("P-900", "Doohickey", Decimal("1.25")))
        product = await catalog.get_product("P-900")
        assert product.price == Decimal("1.25")

    async def test_set_price_keeps_existing_order_lines(self, catalog, orchestrator):
        order = await orchestrator.create_order("cust-1", [(GADGET.id, 2)])

        updated = await catalog.set_price(GADGET.id, Decimal("6.00"))

        assert updated.price == Decimal("6.00")
        stored = await orchestrator.get_order(order.id)
        assert stored.total_amount == Decimal("10.00")

    async def test_set_price_unknown(self, catalog):
        with pytest.raises(ResourceNotFoundError):
            await catalog.set_price("P-404", Decimal("1.00"))

    async def test_deactivated_product_is_hidden(self, catalog):
        await catalog.deactivate(GADGET.id)
        with pytest.raises(ResourceNotFoundError):
            await catalog.get_product(GADGET.id)

    async def test_deactivate_unknown(self, catalog):
        with pytest.raises(ResourceNotFoundError):
            await catalog.deactivate("P-404")
