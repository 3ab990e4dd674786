"""
Stock ledger: per-book quantities and their audit trail.

Every path that lowers a quantity goes through ``_take_stock`` so the
``quantity >= 0`` invariant is enforced in one place, for direct API calls
and for order events alike.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_service.models.book import Book
from inventory_service.models.inventory import (
    BookInventory,
    InventoryAction,
    InventoryLog,
    ProcessedEvent,
)
from inventory_service.schemas.inventory import (
    InventoryDecreaseRequest,
    InventoryLogEntry,
    InventoryStatus,
    InventoryUpdateRequest,
)
from shared.event_bus import EventPublisher, EventPublishError
from shared.events import (
    INVENTORY_EVENTS_TOPIC,
    INVENTORY_UPDATED,
    EventMessage,
    InventoryUpdatedPayload,
    OrderEventPayload,
    StockShortagePayload,
)
from shared.exceptions import InsufficientStockError, NotFoundError

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_SHORTAGE = "shortage"


@dataclass
class OrderStockResult:
    outcome: str
    shortages: list[StockShortagePayload] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_active_book(db: AsyncSession, book_id: int) -> Book:
    result = await db.execute(
        select(Book).where(Book.id == book_id, Book.is_deleted.is_(False))
    )
    book = result.scalars().first()
    if book is None:
        raise NotFoundError("Book not found")
    return book


async def _get_inventory(
    db: AsyncSession, book_id: int, for_update: bool = False
) -> BookInventory | None:
    stmt = select(BookInventory).where(BookInventory.book_id == book_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalars().first()


def _append_log(db: AsyncSession, book_id: int, action: InventoryAction, quantity: int) -> None:
    db.add(InventoryLog(book_id=book_id, action=action, quantity=quantity))


def _take_stock(inventory: BookInventory, amount: int) -> int:
    if amount > inventory.quantity:
        raise InsufficientStockError()
    inventory.quantity -= amount
    return inventory.quantity


# ---------------------------------------------------------------------------
# Direct inventory mutations
# ---------------------------------------------------------------------------


async def update_inventory(
    db: AsyncSession,
    request: InventoryUpdateRequest,
    publisher: EventPublisher,
    request_id: str | None = None,
) -> None:
    """Set a book's quantity, creating the inventory row if needed."""
    await _get_active_book(db, request.book_id)
    inventory = await _get_inventory(db, request.book_id, for_update=True)
    if inventory is None:
        db.add(BookInventory(book_id=request.book_id, quantity=request.quantity))
        action = InventoryAction.CREATE
    else:
        inventory.quantity = request.quantity
        action = InventoryAction.UPDATE
    _append_log(db, request.book_id, action, request.quantity)
    await db.commit()

    logger.info(
        "Inventory updated",
        extra={
            "book_id": request.book_id,
            "quantity": request.quantity,
            "action": action.value,
            "request_id": request_id,
        },
    )

    event = EventMessage.wrap(
        INVENTORY_UPDATED,
        InventoryUpdatedPayload(book_id=request.book_id, quantity=request.quantity),
        correlation_id=request_id,
    )
    try:
        await publisher.publish(INVENTORY_EVENTS_TOPIC, event, key=str(request.book_id))
    except EventPublishError as exc:
        logger.error(
            "Inventory committed but InventoryUpdated was not published",
            extra={"book_id": request.book_id, "error": str(exc)},
        )


async def decrease_inventory(
    db: AsyncSession, request: InventoryDecreaseRequest, request_id: str | None = None
) -> int:
    """Lower a book's quantity; rejects any decrease that would go below zero."""
    await _get_active_book(db, request.book_id)
    inventory = await _get_inventory(db, request.book_id, for_update=True)
    if inventory is None:
        raise NotFoundError("Inventory not found for book")

    new_quantity = _take_stock(inventory, request.decrease_by)
    _append_log(db, request.book_id, InventoryAction.DECREASE, new_quantity)
    await db.commit()

    logger.info(
        "Inventory decreased",
        extra={
            "book_id": request.book_id,
            "decrease_by": request.decrease_by,
            "quantity": new_quantity,
            "request_id": request_id,
        },
    )
    return new_quantity


# ---------------------------------------------------------------------------
# Order events
# ---------------------------------------------------------------------------


async def _already_processed(db: AsyncSession, order_id: int, event_type: str) -> bool:
    result = await db.execute(
        select(ProcessedEvent.id).where(
            ProcessedEvent.order_id == order_id, ProcessedEvent.event_type == event_type
        )
    )
    return result.first() is not None


async def apply_order_created(
    db: AsyncSession, payload: OrderEventPayload, event_type: str
) -> OrderStockResult:
    """
    Take stock for every line of a newly created order, all or nothing.

    If any book has no inventory row or not enough stock, no quantity changes
    and the offending lines are returned as shortages. Either way the event is
    recorded so a redelivery is recognised as a duplicate.
    """
    if await _already_processed(db, payload.order_id, event_type):
        return OrderStockResult(OUTCOME_DUPLICATE)

    requested = Counter()
    for line in payload.items:
        requested[line.book_id] += line.quantity

    # Lock rows in a stable order so concurrent orders cannot deadlock
    rows: dict[int, BookInventory | None] = {}
    for book_id in sorted(requested):
        rows[book_id] = await _get_inventory(db, book_id, for_update=True)

    shortages = []
    for book_id in sorted(requested):
        inventory = rows[book_id]
        if inventory is None:
            shortages.append(
                StockShortagePayload(
                    order_id=payload.order_id,
                    book_id=book_id,
                    requested=requested[book_id],
                    available=0,
                    reason="Inventory not found for book",
                )
            )
        elif inventory.quantity < requested[book_id]:
            shortages.append(
                StockShortagePayload(
                    order_id=payload.order_id,
                    book_id=book_id,
                    requested=requested[book_id],
                    available=inventory.quantity,
                    reason="Not enough stock to decrease",
                )
            )

    if not shortages:
        for book_id in sorted(requested):
            new_quantity = _take_stock(rows[book_id], requested[book_id])
            _append_log(db, book_id, InventoryAction.DECREASE, new_quantity)

    outcome = OUTCOME_SHORTAGE if shortages else OUTCOME_PROCESSED
    db.add(ProcessedEvent(order_id=payload.order_id, event_type=event_type, outcome=outcome))
    try:
        await db.commit()
    except IntegrityError:
        # Another consumer recorded the same event first
        await db.rollback()
        return OrderStockResult(OUTCOME_DUPLICATE)

    return OrderStockResult(outcome, shortages)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_inventory_status(db: AsyncSession, book_id: int) -> InventoryStatus:
    book = await _get_active_book(db, book_id)
    inventory = await _get_inventory(db, book_id)
    return InventoryStatus(
        book_id=book.id,
        title=book.title,
        quantity=inventory.quantity if inventory is not None else 0,
    )


async def filter_books_by_stock(db: AsyncSession, min_stock: int) -> list[InventoryStatus]:
    result = await db.execute(
        select(Book.id, Book.title, BookInventory.quantity)
        .join(BookInventory, BookInventory.book_id == Book.id)
        .where(Book.is_deleted.is_(False), BookInventory.quantity >= min_stock)
        .order_by(Book.id)
    )
    return [
        InventoryStatus(book_id=book_id, title=title, quantity=quantity)
        for book_id, title, quantity in result.all()
    ]


async def list_low_or_out_of_stock_books(
    db: AsyncSession, threshold: int = 5
) -> list[InventoryStatus]:
    """Books at or below ``threshold``, including books with no inventory row at all."""
    result = await db.execute(
        select(Book.id, Book.title, BookInventory.quantity)
        .outerjoin(BookInventory, BookInventory.book_id == Book.id)
        .where(Book.is_deleted.is_(False))
        .order_by(Book.id)
    )
    low = []
    for book_id, title, quantity in result.all():
        if quantity is None:
            low.append(InventoryStatus(book_id=book_id, title=title, quantity=0))
        elif quantity <= threshold:
            low.append(InventoryStatus(book_id=book_id, title=title, quantity=quantity))
    return low


async def get_inventory_log(db: AsyncSession, book_id: int) -> list[InventoryLogEntry]:
    await _get_active_book(db, book_id)
    result = await db.execute(
        select(InventoryLog).where(InventoryLog.book_id == book_id).order_by(InventoryLog.id)
    )
    return [InventoryLogEntry.model_validate(entry) for entry in result.scalars().all()]
