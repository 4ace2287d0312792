"""
Pytest configuration and shared fixtures for order saga tests

Everything here is in-memory and deterministic: the mock gateway approves
every call unless a test scripts a decline or a transport failure.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from ordersaga.catalog import InMemoryProductCatalog
from ordersaga.core.config import OrderSagaConfig, reset_config
from ordersaga.core.logger import reset_logger
from ordersaga.core.models import Product
from ordersaga.execution.pool import SagaWorkerPool
from ordersaga.inventory.memory import InMemoryInventoryLedger
from ordersaga.monitoring.logging import saga_context
from ordersaga.monitoring.metrics import SagaMetrics
from ordersaga.orchestrator import OrderSagaOrchestrator
from ordersaga.payment.mock import MockPaymentGatewayClient
from ordersaga.service import OrderService
from ordersaga.storage.memory import InMemoryOrderRepository, InMemorySagaJournal

WIDGET = Product("P-100", "Widget", Decimal("19.99"))
GADGET = Product("P-200", "Gadget", Decimal("5.00"))
GIZMO = Product("P-300", "Gizmo", Decimal("2.50"))

STOCK = {WIDGET.id: 10, GADGET.id: 4, GIZMO.id: 1}


# ============================================
# AUTO-USE FIXTURES
# ============================================


@pytest.fixture(autouse=True)
def clean_globals():
    """Reset global config, custom logger and saga log context around each test."""
    reset_config()
    reset_logger()
    token = saga_context.set({})
    yield
    saga_context.reset(token)
    reset_config()
    reset_logger()


# ============================================
# COLLABORATORS
# ============================================


@pytest.fixture
def catalog():
    return InMemoryProductCatalog([WIDGET, GADGET, GIZMO])


@pytest.fixture
def inventory():
    return InMemoryInventoryLedger(dict(STOCK))


@pytest.fixture
def gateway():
    return MockPaymentGatewayClient()


@pytest.fixture
def orders():
    return InMemoryOrderRepository()


@pytest.fixture
def journal():
    return InMemorySagaJournal()


@pytest.fixture
def metrics():
    return SagaMetrics()


@pytest.fixture
def orchestrator(orders, inventory, gateway, catalog, journal, metrics):
    return OrderSagaOrchestrator(
        orders=orders,
        inventory=inventory,
        payments=gateway,
        catalog=catalog,
        journal=journal,
        config=OrderSagaConfig(),
        metrics=metrics,
    )


@pytest_asyncio.fixture
async def pool():
    pool = SagaWorkerPool(max_workers=4, name="test")
    await pool.start()
    yield pool
    await pool.shutdown(drain=True)


@pytest.fixture
def service(orchestrator, pool):
    return OrderService(orchestrator, pool)
