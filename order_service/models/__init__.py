# Import all models here so SQLAlchemy registers them with Base.metadata
from order_service.models.cart import Cart, CartItem
from order_service.models.order import Order, OrderItem, OrderStatus

__all__ = [
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
]
