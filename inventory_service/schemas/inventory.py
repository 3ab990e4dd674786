from datetime import datetime

from pydantic import Field

from inventory_service.models.inventory import InventoryAction
from shared.events import CamelModel


class InventoryUpdateRequest(CamelModel):
    book_id: int
    quantity: int = Field(ge=0, description="Quantity must be zero or positive")


class InventoryDecreaseRequest(CamelModel):
    book_id: int
    decrease_by: int = Field(ge=0, description="Decrease amount must be zero or positive")


class InventoryStatus(CamelModel):
    book_id: int
    title: str
    quantity: int


class InventoryLogEntry(CamelModel):
    book_id: int
    action: InventoryAction
    quantity: int
    timestamp: datetime

    model_config = {"from_attributes": True}
