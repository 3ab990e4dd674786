"""
Pydantic event schemas shared across all services.

Every message on the bus is an EventMessage envelope: an ``eventType`` tag and
a string-keyed ``payload``. Payload models below describe the payload of each
event type; they are dumped into the envelope in JSON mode so the wire format
stays camelCase and language-neutral.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

ORDER_EVENTS_TOPIC = "order-events"
INVENTORY_EVENTS_TOPIC = "inventory-events"
USER_EVENTS_TOPIC = "user-events"

ORDER_CREATED = "OrderCreated"
ORDER_PAID = "OrderPaid"
INVENTORY_UPDATED = "InventoryUpdated"
STOCK_SHORTAGE = "StockShortage"
USER_CREATED = "UserCreated"


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }


class EventMessage(CamelModel):
    event_type: str
    payload: dict[str, Any]
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    correlation_id: str | None = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def wrap(
        cls, event_type: str, payload: BaseModel, correlation_id: str | None = None
    ) -> "EventMessage":
        return cls(
            event_type=event_type,
            payload=payload.model_dump(mode="json", by_alias=True),
            correlation_id=correlation_id,
        )

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()


class OrderLinePayload(CamelModel):
    book_id: int
    quantity: int = Field(gt=0)
    price: Decimal


class OrderEventPayload(CamelModel):
    order_id: int
    user_id: int
    items: list[OrderLinePayload] = Field(min_length=1)


class InventoryUpdatedPayload(CamelModel):
    book_id: int
    quantity: int


class StockShortagePayload(CamelModel):
    order_id: int
    book_id: int
    requested: int
    available: int
    reason: str


class UserCreatedPayload(CamelModel):
    user_id: int
    user_name: str
    email: str
