from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from inventory_service.database import Base
from inventory_service.models.book import utcnow


class InventoryAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DECREASE = "DECREASE"
    # Written by catalog removal, which lives outside this service; read back in audits
    SOFT_DELETE = "SOFT_DELETE"


class BookInventory(Base):
    __tablename__ = "books_inventory"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_books_inventory_quantity"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(
        ForeignKey("books.id"), unique=True, index=True, nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)


class InventoryLog(Base):
    """Append-only audit trail; rows are never updated or deleted."""

    __tablename__ = "inventory_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    action: Mapped[InventoryAction] = mapped_column(
        SAEnum(InventoryAction, name="inventoryaction"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class ProcessedEvent(Base):
    """Order events already applied to stock, for at-least-once redelivery."""

    __tablename__ = "processed_events"
    __table_args__ = (
        UniqueConstraint("order_id", "event_type", name="uq_processed_events_order_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
