import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_service.models.book import Book, BookPrice
from inventory_service.models.inventory import BookInventory, InventoryAction, InventoryLog
from inventory_service.schemas.book import BookResponse
from shared.exceptions import NotFoundError

logger = logging.getLogger(__name__)

_CATALOG_SEED = [
    {"title": "Dune", "author": "Frank Herbert", "genre": "Science Fiction",
     "isbn": "9780441172719", "price": Decimal("9.99"), "quantity": 25},
    {"title": "Neuromancer", "author": "William Gibson", "genre": "Science Fiction",
     "isbn": "9780441569595", "price": Decimal("8.99"), "quantity": 12},
    {"title": "The Left Hand of Darkness", "author": "Ursula K. Le Guin",
     "genre": "Science Fiction", "isbn": "9780441478125", "price": Decimal("10.50"),
     "quantity": 4},
    {"title": "Middlemarch", "author": "George Eliot", "genre": "Classics",
     "isbn": "9780141439549", "price": Decimal("12.00"), "quantity": 7},
    {"title": "Beloved", "author": "Toni Morrison", "genre": "Fiction",
     "isbn": "9781400033416", "price": Decimal("14.25"), "quantity": 0},
]


async def seed_catalog(session_factory: async_sessionmaker) -> None:
    """Populate books if the table is empty. Called once on startup."""
    async with session_factory() as db:
        result = await db.execute(select(Book).limit(1))
        if result.scalars().first() is not None:
            return
        for item in _CATALOG_SEED:
            book = Book(
                title=item["title"], author=item["author"], genre=item["genre"], isbn=item["isbn"]
            )
            db.add(book)
            await db.flush()  # obtain book.id before inserting price and stock
            db.add(BookPrice(book_id=book.id, price=item["price"]))
            db.add(BookInventory(book_id=book.id, quantity=item["quantity"]))
            db.add(InventoryLog(book_id=book.id, action=InventoryAction.CREATE,
                                quantity=item["quantity"]))
        await db.commit()
        logger.info("Seeded %d books", len(_CATALOG_SEED))


async def get_book(db: AsyncSession, book_id: int) -> BookResponse:
    result = await db.execute(
        select(Book, BookPrice.price, BookInventory.quantity)
        .outerjoin(BookPrice, BookPrice.book_id == Book.id)
        .outerjoin(BookInventory, BookInventory.book_id == Book.id)
        .where(Book.id == book_id, Book.is_deleted.is_(False))
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Book not found")
    book, price, quantity = row
    return BookResponse(
        id=book.id,
        title=book.title,
        author=book.author,
        price=price if price is not None else Decimal("0"),
        quantity=quantity if quantity is not None else 0,
    )


async def get_book_prices(db: AsyncSession, book_ids: list[int]) -> dict[int, Decimal]:
    """Prices of the requested books; deleted or unpriced books are left out."""
    if not book_ids:
        return {}
    result = await db.execute(
        select(BookPrice.book_id, BookPrice.price)
        .join(Book, Book.id == BookPrice.book_id)
        .where(BookPrice.book_id.in_(book_ids), Book.is_deleted.is_(False))
    )
    return {book_id: price for book_id, price in result.all()}
