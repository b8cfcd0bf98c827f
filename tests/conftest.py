# tests/conftest.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.database import create_all, create_session_factory
from app.integrations.registry import DestinationRegistry
from app.main import create_app
from app.schemas.catalog import OptionData, ProductData, VariantData
from app.services.catalog_store import InMemoryCatalogStore
from app.services.inventory_pool import InventoryPool
from app.services.notification_relay import NotificationRelay
from app.services.sync_ledger import InMemoryLedgerStore, SyncStatusLedger
from app.services.sync_orchestrator import SyncOrchestrator
from tests.mocks.mock_destination import MockDestination

# Test database URL: in-memory SQLite shared across the engine's connections
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DESTINATION_IDS = ("d1", "d2", "d3")


def make_product(product_id: str = "p1", pools=(10, 5)) -> ProductData:
    """A two-variant product; variant ``{product_id}-v{n}`` has pool ``pools[n-1]``."""
    variants = [
        VariantData(
            id=f"{product_id}-v{index + 1}",
            title=size,
            price=Decimal("10.00") * (index + 1),
            compare_at_price=Decimal("15.00") * (index + 1),
            sku=f"{product_id.upper()}-{size}",
            inventory_quantity=pool,
            position=index,
            option_values={"Size": size},
        )
        for index, (size, pool) in enumerate(zip(("S", "M", "L"), pools))
    ]
    return ProductData(
        id=product_id,
        title=f"Test Guitar {product_id}",
        description="A test product",
        vendor="Fender",
        product_type="Electric Guitar",
        tags=["test"],
        variants=variants,
        options=[OptionData(name="Size", values=[v.title for v in variants])],
    )


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL="",
        SYNC_MAX_CONCURRENCY=4,
        SYNC_JOB_TIMEOUT_SECONDS=5.0,
        REMOTE_CALL_TIMEOUT_SECONDS=1.0,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def catalog():
    store = InMemoryCatalogStore()
    store.add_product(make_product("p1"))
    store.add_product(make_product("p2", pools=(4, 4)))
    return store


@pytest.fixture
def pool(catalog):
    return InventoryPool(catalog)


@pytest.fixture
def ledger():
    return SyncStatusLedger(InMemoryLedgerStore())


@pytest.fixture
def relay():
    relay = NotificationRelay()
    yield relay
    relay.close()


@pytest.fixture
def destinations():
    return {d_id: MockDestination(d_id) for d_id in DESTINATION_IDS}


@pytest.fixture
def registry(destinations):
    registry = DestinationRegistry()
    for d_id, client in destinations.items():
        registry.register(d_id, client, default_location_id=f"gid://{d_id}/Location/1")
    return registry


@pytest.fixture
def captured_events(relay):
    events = []
    relay.subscribe("*", events.append)
    return events


@pytest.fixture
def orchestrator(catalog, pool, ledger, registry, relay):
    return SyncOrchestrator(
        catalog,
        pool,
        ledger,
        registry,
        relay,
        max_concurrency=4,
        job_timeout=2.0,
        remote_call_timeout=0.5,
    )


@pytest.fixture
async def test_engine():
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def test_client(settings):
    """Provide a test client running the full lifespan with in-memory stores"""
    app = create_app(settings)
    with TestClient(app) as client:
        yield client
