import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.metrics import EVENTS_PUBLISH_FAILED, ORDERS_CREATED
from order_service.models.order import Order, OrderItem, OrderStatus
from order_service.schemas.order import OrderCreate, OrderItemResponse, OrderResponse
from order_service.services import cart_service
from order_service.services.inventory_client import InventoryClient
from shared.event_bus import EventPublisher, EventPublishError
from shared.events import (
    ORDER_CREATED,
    ORDER_EVENTS_TOPIC,
    ORDER_PAID,
    EventMessage,
    OrderEventPayload,
    OrderLinePayload,
)
from shared.exceptions import InvalidStateError, NotFoundError, ValidationFailureError

logger = logging.getLogger(__name__)

# Matches the scale of the Numeric(10, 2) price column
_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        items=[
            OrderItemResponse(book_id=item.book_id, quantity=item.quantity, price=item.price)
            for item in order.items
        ],
        status=order.status,
        created_at=order.created_at,
    )


async def _fetch_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalars().first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _order_event(event_type: str, order: Order, request_id: str | None) -> EventMessage:
    payload = OrderEventPayload(
        order_id=order.id,
        user_id=order.user_id,
        items=[
            OrderLinePayload(book_id=item.book_id, quantity=item.quantity, price=item.price)
            for item in order.items
        ],
    )
    return EventMessage.wrap(event_type, payload, correlation_id=request_id)


async def _publish_order_event(
    publisher: EventPublisher, event_type: str, order: Order, request_id: str | None
) -> None:
    """
    Publish after the local commit. The order is already durable at this
    point, so a broker failure is logged and counted rather than surfaced.
    """
    event = _order_event(event_type, order, request_id)
    try:
        await publisher.publish(ORDER_EVENTS_TOPIC, event, key=str(order.id))
    except EventPublishError as exc:
        EVENTS_PUBLISH_FAILED.labels(event_type).inc()
        logger.error(
            "Order committed but %s event was not published",
            event_type,
            extra={"order_id": order.id, "request_id": request_id, "error": str(exc)},
        )


async def _persist(db: AsyncSession, order: Order) -> Order:
    db.add(order)
    try:
        await db.commit()  # order + lines in one transaction
    except SQLAlchemyError:
        await db.rollback()
        raise
    return order


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    order_data: OrderCreate,
    publisher: EventPublisher,
    request_id: str | None = None,
) -> OrderResponse:
    """Place an order with client-supplied prices; no cart is involved."""
    if not order_data.items:
        raise ValidationFailureError("Order must contain at least one item")
    for item in order_data.items:
        if item.quantity <= 0:
            raise ValidationFailureError(
                f"Invalid quantity for book {item.book_id}: {item.quantity}"
            )
        if item.price <= 0:
            raise ValidationFailureError(f"Invalid price for book {item.book_id}: {item.price}")

    order = Order(
        user_id=order_data.user_id,
        status=OrderStatus.CREATED,
        items=[
            OrderItem(
                book_id=item.book_id, quantity=item.quantity, price=item.price.quantize(_CENT)
            )
            for item in order_data.items
        ],
    )
    await _persist(db, order)
    ORDERS_CREATED.labels("direct").inc()
    logger.info(
        "Order created successfully",
        extra={"order_id": order.id, "user_id": order.user_id, "request_id": request_id},
    )

    await _publish_order_event(publisher, ORDER_CREATED, order, request_id)
    return _build_response(order)


async def create_order_from_cart(
    db: AsyncSession,
    user_id: int,
    inventory: InventoryClient,
    publisher: EventPublisher,
    request_id: str | None = None,
) -> OrderResponse:
    cart = await cart_service.find_cart(db, user_id)
    if cart is None:
        raise NotFoundError(f"Cart not found for user {user_id}")
    if not cart.items:
        raise InvalidStateError("Cart is empty")

    lines = [(item.book_id, item.quantity) for item in cart.items]
    prices = await inventory.get_prices([book_id for book_id, _ in lines], request_id=request_id)
    if not prices:
        raise InvalidStateError("Unable to fetch prices for books")

    order_items: list[OrderItem] = []
    for book_id, quantity in lines:
        price: Decimal | None = prices.get(book_id)
        if price is not None:
            price = price.quantize(_CENT, rounding=ROUND_HALF_UP)
        # A zero price is what the breaker fallback hands back: not a real price
        if price is None or price <= 0:
            raise InvalidStateError(f"Price not found for book {book_id}")
        order_items.append(OrderItem(book_id=book_id, quantity=quantity, price=price))

    order = Order(user_id=user_id, status=OrderStatus.CREATED, items=order_items)
    await _persist(db, order)
    ORDERS_CREATED.labels("cart").inc()
    logger.info(
        "Order created from cart",
        extra={
            "order_id": order.id,
            "user_id": user_id,
            "total_items": len(order_items),
            "request_id": request_id,
        },
    )

    # Best effort: the order is committed, a leftover cart is harmless
    try:
        await cart_service.clear_cart(db, user_id)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "Order created but cart could not be cleared",
            extra={"order_id": order.id, "user_id": user_id, "error": str(exc)},
        )

    await _publish_order_event(publisher, ORDER_CREATED, order, request_id)
    return _build_response(order)


async def get_order_status(db: AsyncSession, order_id: int) -> OrderStatus:
    order = await _fetch_order(db, order_id)
    return order.status


async def get_order_history(db: AsyncSession, user_id: int) -> list[OrderResponse]:
    result = await db.execute(
        select(Order).where(Order.user_id == user_id).order_by(Order.id)
    )
    return [_build_response(order) for order in result.scalars().all()]


async def confirm_payment(
    db: AsyncSession,
    order_id: int,
    publisher: EventPublisher,
    request_id: str | None = None,
) -> OrderResponse:
    """
    Mark an order PAID and publish OrderPaid.

    Confirming an already PAID order is allowed: the status stays PAID and the
    event is published again.
    """
    order = await _fetch_order(db, order_id)
    if order.status == OrderStatus.PAID:
        logger.info(
            "Payment re-confirmed for already paid order",
            extra={"order_id": order_id, "request_id": request_id},
        )
    order.status = OrderStatus.PAID
    await _persist(db, order)
    logger.info("Payment confirmed", extra={"order_id": order.id, "request_id": request_id})

    await _publish_order_event(publisher, ORDER_PAID, order, request_id)
    return _build_response(order)
