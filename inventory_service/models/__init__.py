# Import all models here so SQLAlchemy registers them with Base.metadata
from inventory_service.models.book import Book, BookPrice
from inventory_service.models.inventory import (
    BookInventory,
    InventoryAction,
    InventoryLog,
    ProcessedEvent,
)

__all__ = [
    "Book",
    "BookInventory",
    "BookPrice",
    "InventoryAction",
    "InventoryLog",
    "ProcessedEvent",
]
