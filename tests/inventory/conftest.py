from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from inventory_service import models  # noqa: F401
from inventory_service.database import Base, get_db
from inventory_service.main import app
from inventory_service.models.book import Book, BookPrice
from inventory_service.models.inventory import BookInventory


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
def add_book(session_factory):
    """Insert a book with an optional price and stock row; returns its id."""

    async def _add(title="Dune", price="9.99", quantity=None, deleted=False) -> int:
        async with session_factory() as session:
            book = Book(title=title, author="Test Author", is_deleted=deleted)
            session.add(book)
            await session.flush()
            if price is not None:
                session.add(BookPrice(book_id=book.id, price=Decimal(price)))
            if quantity is not None:
                session.add(BookInventory(book_id=book.id, quantity=quantity))
            await session.commit()
            return book.id

    return _add


@pytest.fixture()
def stock_of(session_factory):
    async def _stock(book_id: int) -> int | None:
        async with session_factory() as session:
            result = await session.execute(
                select(BookInventory.quantity).where(BookInventory.book_id == book_id)
            )
            return result.scalar_one_or_none()

    return _stock


@pytest.fixture()
async def client(session_factory, publisher):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.state.event_publisher = publisher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
