from datetime import datetime
from decimal import Decimal

from pydantic import Field

from order_service.models.order import OrderStatus
from shared.events import CamelModel


class OrderItemCreate(CamelModel):
    book_id: int
    quantity: int
    price: Decimal = Field(max_digits=10, decimal_places=2)


class OrderCreate(CamelModel):
    user_id: int
    items: list[OrderItemCreate]


class OrderItemResponse(CamelModel):
    book_id: int
    quantity: int
    price: Decimal


class OrderResponse(CamelModel):
    id: int
    user_id: int
    items: list[OrderItemResponse]
    status: OrderStatus
    created_at: datetime
