"""
Storage Factory - build stores and clients from URLs and config

Lets application code switch backends by changing ``storage_url`` instead of
importing specific classes.

Supported URLs:
    memory://               in-process dictionaries
    sqlite:///path/to.db    SQLite file
    sqlite://:memory:       SQLite in-memory database
"""

from typing import Any

from ordersaga.core.config import OrderSagaConfig, get_config
from ordersaga.inventory.base import InventoryLedger
from ordersaga.inventory.memory import InMemoryInventoryLedger
from ordersaga.payment.base import PaymentGatewayClient
from ordersaga.storage.base import OrderRepository, SagaJournal
from ordersaga.storage.memory import InMemoryOrderRepository, InMemorySagaJournal

AVAILABLE_SCHEMES = ("memory", "sqlite")


def parse_storage_url(url: str) -> tuple[str, str | None]:
    """
    Split a storage URL into (scheme, sqlite path).

    >>> parse_storage_url("sqlite:///data/orders.db")
    ('sqlite', '/data/orders.db')
    >>> parse_storage_url("sqlite://:memory:")
    ('sqlite', ':memory:')
    """
    scheme, sep, rest = url.strip().partition("://")
    scheme = scheme.lower()

    if not sep or scheme not in AVAILABLE_SCHEMES:
        msg = (
            f"Unknown storage URL: '{url}'\n"
            f"Available schemes: {', '.join(s + '://' for s in AVAILABLE_SCHEMES)}"
        )
        raise ValueError(msg)

    if scheme == "memory":
        return scheme, None
    if not rest:
        msg = f"SQLite storage URL needs a path: '{url}'"
        raise ValueError(msg)
    return scheme, rest


def create_order_repository(url: str = "memory://") -> OrderRepository:
    """
    Create an order store.

    Raises:
        ValueError: If the URL scheme is unknown
        MissingDependencyError: If aiosqlite isn't installed for sqlite://
    """
    scheme, path = parse_storage_url(url)
    if scheme == "memory":
        return InMemoryOrderRepository()

    from ordersaga.storage.sqlite import SQLiteOrderRepository

    return SQLiteOrderRepository(path)


def create_inventory_ledger(
    url: str = "memory://",
    initial_stock: dict[str, int] | None = None,
) -> InventoryLedger:
    """
    Create an inventory ledger.

    ``initial_stock`` seeds the in-memory ledger; SQLite ledgers are seeded
    with ``add_product``.
    """
    scheme, path = parse_storage_url(url)
    if scheme == "memory":
        return InMemoryInventoryLedger(initial_stock)

    from ordersaga.inventory.sqlite import SQLiteInventoryLedger

    return SQLiteInventoryLedger(path)


def create_saga_journal(url: str = "memory://") -> SagaJournal:
    scheme, path = parse_storage_url(url)
    if scheme == "memory":
        return InMemorySagaJournal()

    from ordersaga.storage.sqlite import SQLiteSagaJournal

    return SQLiteSagaJournal(path)


def create_payment_client(config: OrderSagaConfig | None = None, **kwargs: Any) -> PaymentGatewayClient:
    """
    Create a payment gateway client for ``config.payment_provider``.

    Args:
        config: Defaults to the global config
        **kwargs: Passed to the client constructor (e.g. ``api_key``, ``client``)

    Examples:
        >>> create_payment_client(OrderSagaConfig(payment_provider="mock"))
        >>> create_payment_client(
        ...     OrderSagaConfig(payment_provider="http", payment_base_url="https://pay.local"),
        ...     api_key="sk_test",
        ... )
    """
    config = config or get_config()
    provider = config.payment_provider

    if provider == "mock":
        from ordersaga.payment.mock import MockPaymentGatewayClient

        return MockPaymentGatewayClient(**kwargs)

    if provider == "http":
        if not config.payment_base_url:
            msg = (
                "HTTP payment provider requires payment_base_url.\n"
                "Example: ORDERSAGA_PAYMENT_BASE_URL=https://payments.example.com"
            )
            raise ValueError(msg)
        from ordersaga.payment.http import HttpPaymentGatewayClient

        return HttpPaymentGatewayClient(
            config.payment_base_url,
            timeout=config.payment_timeout,
            **kwargs,
        )

    msg = f"Unknown payment provider: '{provider}'\nAvailable providers: mock, http"
    raise ValueError(msg)
