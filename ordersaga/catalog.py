"""
Product catalog lookups used by the ordering saga.

The saga only needs a price snapshot per product, so the catalog interface
is read-mostly. Inactive products are not orderable and look missing.
"""

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal

from ordersaga.core.exceptions import ResourceNotFoundError
from ordersaga.core.models import Product


class ProductCatalog(ABC):
    """Abstract product catalog"""

    @abstractmethod
    async def get_product(self, product_id: str) -> Product:
        """
        Fetch an orderable product.

        Raises:
            ResourceNotFoundError: Unknown or inactive product
        """

    @abstractmethod
    async def add_product(self, product: Product) -> None:
        """Register or replace a product."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class InMemoryProductCatalog(ProductCatalog):
    """Dictionary-backed catalog for development and tests."""

    def __init__(self, products: list[Product] | None = None):
        self._products: dict[str, Product] = {p.id: p for p in products or []}
        self._lock = asyncio.Lock()

    async def get_product(self, product_id: str) -> Product:
        async with self._lock:
            product = self._products.get(product_id)
        if product is None or not product.active:
            raise ResourceNotFoundError("Product", product_id)
        return product

    async def add_product(self, product: Product) -> None:
        async with self._lock:
            self._products[product.id] = product

    async def set_price(self, product_id: str, price: Decimal) -> Product:
        """Change a product's price. Existing order lines keep their snapshot."""
        async with self._lock:
            current = self._products.get(product_id)
            if current is None:
                raise ResourceNotFoundError("Product", product_id)
            updated = Product(current.id, current.name, price, current.active)
            self._products[product_id] = updated
            return updated

    async def deactivate(self, product_id: str) -> None:
        async with self._lock:
            current = self._products.get(product_id)
            if current is None:
                raise ResourceNotFoundError("Product", product_id)
            self._products[product_id] = Product(current.id, current.name, current.price, False)
