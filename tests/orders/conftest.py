from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from order_service import models  # noqa: F401
from order_service.database import Base, get_db
from order_service.main import app


class FakeInventory:
    """Answers batch price lookups from a dict, like a reachable inventory service."""

    def __init__(self, prices=None):
        self.prices: dict[int, Decimal] = dict(prices or {})
        self.calls: list[list[int]] = []

    async def get_prices(self, book_ids, request_id=None):
        self.calls.append(list(book_ids))
        return {book_id: self.prices[book_id] for book_id in book_ids if book_id in self.prices}


@pytest.fixture()
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def inventory():
    return FakeInventory({2: Decimal("10.00"), 7: Decimal("4.50")})


@pytest.fixture()
async def client(session_factory, publisher, inventory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.state.event_publisher = publisher
    app.state.inventory_client = inventory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
