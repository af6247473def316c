# tests/conftest.py
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("WEBHOOK_SECRET", "")
os.environ["POLL_SCHEDULE_ENABLED"] = "false"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from marketsync.core.config import get_settings, clear_settings_cache
from marketsync.core.counter_store import InMemoryCounterStore
from marketsync.database import Base
from marketsync.dependencies import get_db
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models import Marketplace, Product
from marketsync.services.notification_service import Notifier

from tests.mocks.mock_marketplace import MockMarketplaceClient

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingNotifier(Notifier):
    """Keeps every event it is handed."""

    def __init__(self):
        self.events = []

    async def _send(self, event):
        self.events.append(event)
        return True

    def of_type(self, type):
        return [e for e in self.events if e.type == type]


@pytest.fixture(scope="session")
def settings():
    clear_settings_cache()
    return get_settings()


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory database, one per test function."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def marketplace(db_session):
    marketplace = Marketplace(
        name="Trendyol",
        api_key="key",
        api_secret="secret",
        supplier_id="12345",
        is_active=True,
    )
    db_session.add(marketplace)
    await db_session.commit()
    return marketplace


@pytest.fixture
async def product(db_session):
    product = Product(
        sku="B123",
        name="Test Mug",
        price=49.9,
        stock_quantity=10,
        initial_stock_quantity=10,
    )
    db_session.add(product)
    await db_session.commit()
    return product


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def mock_client():
    return MockMarketplaceClient()


@pytest.fixture
def registry(mock_client):
    registry = MarketplaceClientRegistry()
    registry.register("trendyol", mock_client)
    return registry


@pytest.fixture
def app(session_factory, notifier, registry):
    """The FastAPI app wired to the test database. The lifespan is not run."""
    from marketsync.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.notifier = notifier
    app.state.client_registry = registry
    app.state.counter_store = InMemoryCounterStore()
    app.state.scheduler = None

    yield app

    app.dependency_overrides.clear()
    for name in ("notifier", "client_registry", "counter_store", "scheduler"):
        if hasattr(app.state, name):
            delattr(app.state, name)


@pytest.fixture
async def client(app):
    """HTTP client bound to the app on the test event loop."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# Payload builders

def trendyol_package(
    order_number="TY-1001",
    status="Created",
    lines=None,
    **extra,
):
    package = {
        "orderNumber": order_number,
        "shipmentPackageStatus": status,
        "id": 9001,
        "totalPrice": 99.8,
        "orderDate": 1760860800000,
        "customerFirstName": "Ayse",
        "customerLastName": "Yilmaz",
        "customerEmail": "ayse@example.com",
        "shipmentAddress": {"city": "Istanbul", "phone": "5550000000"},
        "lines": lines if lines is not None else [
            {"id": 1, "barcode": "B123", "quantity": 2, "price": 49.9, "productName": "Test Mug"},
        ],
    }
    package.update(extra)
    return package


@pytest.fixture
def package_factory():
    return trendyol_package
