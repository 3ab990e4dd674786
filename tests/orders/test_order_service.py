"""Tests for the order workflow: direct orders, orders from carts, payment."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from order_service.models.order import Order, OrderStatus
from order_service.schemas.cart import AddToCartRequest, RemoveFromCartRequest
from order_service.schemas.order import OrderCreate, OrderItemCreate
from order_service.services import cart_service, order_service
from shared.events import ORDER_EVENTS_TOPIC
from shared.exceptions import InvalidStateError, NotFoundError, ValidationFailureError


def _order(user_id=1, *items):
    return OrderCreate(
        user_id=user_id,
        items=[OrderItemCreate(book_id=b, quantity=q, price=Decimal(p)) for b, q, p in items],
    )


async def _order_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Order))).scalar_one()


async def _fill_cart(db, user_id, *lines):
    for book_id, quantity in lines:
        await cart_service.add_to_cart(
            db, AddToCartRequest(user_id=user_id, book_id=book_id, quantity=quantity)
        )


class TestCreateOrder:
    async def test_creates_order_and_publishes_event(self, db, publisher, producer):
        order = await order_service.create_order(db, _order(1, (2, 3, "10.00")), publisher, "req-1")

        assert order.status == OrderStatus.CREATED
        assert order.user_id == 1
        assert [(i.book_id, i.quantity, i.price) for i in order.items] == [
            (2, 3, Decimal("10.00"))
        ]

        events = producer.events(ORDER_EVENTS_TOPIC)
        assert len(events) == 1
        assert events[0].event_type == "OrderCreated"
        assert events[0].correlation_id == "req-1"
        assert events[0].payload == {
            "orderId": order.id,
            "userId": 1,
            "items": [{"bookId": 2, "quantity": 3, "price": "10.00"}],
        }
        assert producer.sent[0].key == str(order.id).encode()

    @pytest.mark.parametrize("price", ["0", "-1.50"])
    async def test_rejects_non_positive_price(self, db, publisher, producer, price):
        with pytest.raises(ValidationFailureError, match="Invalid price for book 2"):
            await order_service.create_order(
                db, _order(1, (5, 1, "3.00"), (2, 1, price)), publisher
            )

        assert await _order_count(db) == 0
        assert producer.sent == []

    async def test_rejects_empty_order(self, db, publisher):
        with pytest.raises(ValidationFailureError):
            await order_service.create_order(db, _order(1), publisher)

    async def test_rejects_non_positive_quantity(self, db, publisher):
        with pytest.raises(ValidationFailureError, match="Invalid quantity"):
            await order_service.create_order(db, _order(1, (2, 0, "10.00")), publisher)

    async def test_committed_order_survives_publish_failure(self, db, publisher, producer):
        producer.fail = True

        order = await order_service.create_order(db, _order(1, (2, 1, "10.00")), publisher)

        assert order.id is not None
        assert await _order_count(db) == 1


class TestCreateOrderFromCart:
    async def test_missing_cart_is_not_found(self, db, inventory, publisher, producer):
        with pytest.raises(NotFoundError, match="Cart not found for user 1"):
            await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await _order_count(db) == 0
        assert inventory.calls == []
        assert producer.sent == []

    async def test_empty_cart_is_invalid(self, db, inventory, publisher):
        await _fill_cart(db, 1, (2, 1))
        await cart_service.remove_from_cart(db, RemoveFromCartRequest(user_id=1, book_id=2))

        with pytest.raises(InvalidStateError, match="Cart is empty"):
            await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await _order_count(db) == 0

    async def test_uses_resolved_prices(self, db, inventory, publisher, producer):
        await _fill_cart(db, 1, (2, 3), (7, 1), (2, 2))

        order = await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert {i.book_id: (i.quantity, i.price) for i in order.items} == {
            2: (5, Decimal("10.00")),
            7: (1, Decimal("4.50")),
        }
        assert inventory.calls == [[2, 7]]
        [event] = producer.events(ORDER_EVENTS_TOPIC)
        assert event.event_type == "OrderCreated"
        assert event.payload["orderId"] == order.id

    async def test_clears_cart(self, db, inventory, publisher):
        await _fill_cart(db, 1, (2, 1))

        await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await cart_service.find_cart(db, 1) is None

    async def test_no_prices_at_all_is_invalid(self, db, inventory, publisher, producer):
        inventory.prices.clear()
        await _fill_cart(db, 1, (2, 1))

        with pytest.raises(InvalidStateError, match="Unable to fetch prices"):
            await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await _order_count(db) == 0
        assert producer.sent == []

    async def test_missing_price_names_the_book(self, db, inventory, publisher):
        await _fill_cart(db, 1, (2, 1), (404, 1))

        with pytest.raises(InvalidStateError, match="Price not found for book 404"):
            await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await _order_count(db) == 0
        # The cart is untouched so the user can retry
        assert len((await cart_service.view_cart(db, 1)).items) == 2

    async def test_fallback_zero_price_is_unresolved(self, db, inventory, publisher):
        inventory.prices[2] = Decimal("0")
        await _fill_cart(db, 1, (2, 1))

        with pytest.raises(InvalidStateError, match="Price not found for book 2"):
            await order_service.create_order_from_cart(db, 1, inventory, publisher)

        assert await _order_count(db) == 0

    async def test_catalog_price_is_rounded_to_cents(self, db, inventory, publisher, producer):
        inventory.prices[7] = Decimal("4.505")
        await _fill_cart(db, 1, (7, 2))

        created = await order_service.create_order_from_cart(db, 1, inventory, publisher)

        [stored] = await order_service.get_order_history(db, 1)
        assert created.items[0].price == stored.items[0].price == Decimal("4.51")
        [event] = producer.events(ORDER_EVENTS_TOPIC)
        assert event.payload["items"][0]["price"] == "4.51"

    async def test_prices_are_frozen_at_creation(self, db, inventory, publisher):
        await _fill_cart(db, 1, (2, 1))
        created = await order_service.create_order_from_cart(db, 1, inventory, publisher)

        inventory.prices[2] = Decimal("99.99")

        [order] = await order_service.get_order_history(db, 1)
        assert order.id == created.id
        assert order.items[0].price == Decimal("10.00")


class TestConfirmPayment:
    async def test_marks_order_paid(self, db, publisher, producer):
        created = await order_service.create_order(db, _order(1, (2, 3, "10.00")), publisher)

        paid = await order_service.confirm_payment(db, created.id, publisher)

        assert paid.status == OrderStatus.PAID
        assert await order_service.get_order_status(db, created.id) == OrderStatus.PAID
        events = producer.events(ORDER_EVENTS_TOPIC)
        assert [e.event_type for e in events] == ["OrderCreated", "OrderPaid"]
        assert events[1].payload == events[0].payload

    async def test_confirming_twice_republishes(self, db, publisher, producer):
        created = await order_service.create_order(db, _order(1, (2, 1, "10.00")), publisher)

        await order_service.confirm_payment(db, created.id, publisher)
        again = await order_service.confirm_payment(db, created.id, publisher)

        assert again.status == OrderStatus.PAID
        assert again.items == created.items
        assert [e.event_type for e in producer.events(ORDER_EVENTS_TOPIC)] == [
            "OrderCreated",
            "OrderPaid",
            "OrderPaid",
        ]

    async def test_unknown_order_is_not_found(self, db, publisher, producer):
        with pytest.raises(NotFoundError, match="Order not found"):
            await order_service.confirm_payment(db, 12345, publisher)

        assert producer.sent == []


class TestReads:
    async def test_status_of_new_order(self, db, publisher):
        created = await order_service.create_order(db, _order(1, (2, 1, "10.00")), publisher)

        assert await order_service.get_order_status(db, created.id) == OrderStatus.CREATED

    async def test_status_of_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            await order_service.get_order_status(db, 1)

    async def test_history_lists_only_the_users_orders(self, db, publisher):
        first = await order_service.create_order(db, _order(1, (2, 1, "10.00")), publisher)
        await order_service.create_order(db, _order(2, (3, 1, "5.00")), publisher)
        second = await order_service.create_order(db, _order(1, (4, 2, "7.25")), publisher)

        history = await order_service.get_order_history(db, 1)

        assert [o.id for o in history] == [first.id, second.id]

    async def test_history_of_user_without_orders_is_empty(self, db):
        assert await order_service.get_order_history(db, 99) == []
