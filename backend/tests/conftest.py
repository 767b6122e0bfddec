"""
Test Configuration — Fixtures for async DB, test client, fake source and metrics.

Uses per-test transactions with SAVEPOINT/rollback so app code can commit
freely while every test still starts from an empty database.
"""

import asyncio
from datetime import date, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import inventory.sync as sync_module
from api.deps import get_db, get_variant_source
from api.main import app
from db.session import Base
from integrations.base import Page, SourceType, VariantSource
from inventory.types import OrderLine, SalesWindow, VariantInventory, VariantMetric

# In-memory SQLite; StaticPool keeps schema and sessions on one connection.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SHOP = "demo-shop.myshopify.com"
NOW = datetime(2025, 3, 10, 12, 0, 0)


class FakeVariantSource(VariantSource):
    """In-memory source: pre-built pages, optional failures, call counters."""

    def __init__(
        self,
        inventory_pages: list[Page] | None = None,
        order_pages: list[Page] | None = None,
        *,
        inventory_error: Exception | None = None,
        orders_error: Exception | None = None,
        locations: list[dict] | None = None,
        delay: float = 0.0,
    ):
        super().__init__(SHOP)
        self.inventory_pages = inventory_pages or [Page()]
        self.order_pages = order_pages or [Page()]
        self.inventory_error = inventory_error
        self.orders_error = orders_error
        self.locations = locations or []
        self.delay = delay
        self.inventory_calls = 0
        self.orders_calls = 0
        self.since_seen: list[date] = []

    @property
    def source_type(self) -> SourceType:
        return SourceType.SHOPIFY

    @staticmethod
    def _page_for(pages: list[Page], cursor: str | None) -> Page:
        index = int(cursor) if cursor else 0
        return pages[index]

    async def fetch_inventory_page(self, cursor=None):
        self.inventory_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.inventory_error:
            raise self.inventory_error
        return self._page_for(self.inventory_pages, cursor)

    async def fetch_orders_page(self, cursor, since):
        self.orders_calls += 1
        self.since_seen.append(since)
        if self.orders_error:
            raise self.orders_error
        return self._page_for(self.order_pages, cursor)

    async def fetch_locations(self):
        return list(self.locations)


def paged(*pages: list) -> list[Page]:
    """Chain item lists into pages whose cursors point at the next index."""
    result = []
    for index, items in enumerate(pages):
        has_more = index < len(pages) - 1
        result.append(Page(items=list(items), next_cursor=str(index + 1) if has_more else None, has_more=has_more))
    return result


def make_inventory(
    variant_id: str,
    sku: str,
    available: int,
    unit_cost: float | None = 10.0,
    name: str = "Test Product",
) -> VariantInventory:
    return VariantInventory(
        id=variant_id,
        sku=sku,
        product_name=name,
        variant_title="Default",
        available=available,
        unit_cost=unit_cost,
    )


def make_metric(
    variant_id: str = "gid://shopify/ProductVariant/1",
    sku: str = "SKU-1",
    available: int = 10,
    unit_cost: float | None = 10.0,
    sales: tuple[int, int, int] = (0, 0, 0),
    last_calculated: datetime | None = None,
) -> VariantMetric:
    return VariantMetric(
        id=variant_id,
        sku=sku,
        product_name=f"Product {sku}",
        variant_title="Default",
        available=available,
        unit_cost=unit_cost,
        sales=SalesWindow(*sales),
        last_calculated=last_calculated,
    )


def order_line(variant_id: str, quantity: int, created_at: datetime) -> OrderLine:
    return OrderLine(variant_id=variant_id, quantity=quantity, created_at=created_at)


@pytest.fixture(autouse=True)
def reset_shop_locks():
    """Per-shop locks are process-wide; don't leak them across test event loops."""
    sync_module._shop_locks.clear()
    yield
    sync_module._shop_locks.clear()


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Create a test session wrapped in a transaction that rolls back after each test."""
    async with test_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        # Use SAVEPOINT so nested commits inside app code don't end our transaction
        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(db_session, transaction):
            if transaction.nested and not transaction._parent.nested:
                session.sync_session.begin_nested()

        await conn.begin_nested()  # SAVEPOINT

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def fake_source():
    """Two variants on hand plus a few recent paid order lines."""
    inventory = paged(
        [
            make_inventory("gid://shopify/ProductVariant/1", "TEE-BLK-M", available=4, unit_cost=12.0),
            make_inventory("gid://shopify/ProductVariant/2", "MUG-WHT", available=300, unit_cost=5.0),
        ]
    )
    orders = paged(
        [
            order_line("gid://shopify/ProductVariant/1", 30, datetime(2025, 3, 5)),
            order_line("gid://shopify/ProductVariant/1", 15, datetime(2025, 1, 20)),
            order_line("gid://shopify/ProductVariant/2", 2, datetime(2025, 2, 28)),
        ]
    )
    return FakeVariantSource(inventory, orders, locations=[{"id": "gid://shopify/Location/1", "name": "Warehouse"}])


@pytest.fixture
async def client(test_db, fake_source):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_variant_source():
        return fake_source

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_variant_source] = override_get_variant_source

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
