from decimal import Decimal

import pytest

from inventory_service import consumer
from inventory_service.config import settings
from inventory_service.services import inventory_service
from shared.events import (
    INVENTORY_EVENTS_TOPIC,
    ORDER_CREATED,
    ORDER_PAID,
    EventMessage,
    OrderEventPayload,
    OrderLinePayload,
)


def _order_created(order_id, *lines, event_type=ORDER_CREATED):
    payload = OrderEventPayload(
        order_id=order_id,
        user_id=1,
        items=[
            OrderLinePayload(book_id=book_id, quantity=quantity, price=Decimal("9.99"))
            for book_id, quantity in lines
        ],
    )
    return EventMessage.wrap(event_type, payload, correlation_id=f"req-{order_id}")


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "event_retry_backoff", 0)


@pytest.fixture()
def handle(publisher, session_factory, kafka_message):
    async def _handle(value, **kwargs):
        msg = kafka_message(value, **kwargs)
        return await consumer.handle_message(msg, publisher, session_factory)

    return _handle


class TestOrderCreated:
    async def test_takes_stock_for_every_line(self, handle, add_book, stock_of, db):
        dune = await add_book(quantity=10)
        emma = await add_book(title="Emma", quantity=4)

        status = await handle(_order_created(1, (dune, 3), (emma, 4), (dune, 2)))

        assert status == "processed"
        assert await stock_of(dune) == 5
        assert await stock_of(emma) == 0
        [entry] = await inventory_service.get_inventory_log(db, dune)
        assert (entry.action.value, entry.quantity) == ("DECREASE", 5)

    async def test_redelivery_is_skipped(self, handle, add_book, stock_of, producer):
        book_id = await add_book(quantity=10)
        event = _order_created(1, (book_id, 3))

        assert await handle(event) == "processed"
        assert await handle(event, offset=1) == "skipped"

        assert await stock_of(book_id) == 7
        assert producer.sent == []

    async def test_same_order_id_with_new_event_id_is_still_a_duplicate(
        self, handle, add_book, stock_of
    ):
        book_id = await add_book(quantity=10)

        await handle(_order_created(1, (book_id, 3)))
        assert await handle(_order_created(1, (book_id, 3))) == "skipped"

        assert await stock_of(book_id) == 7


class TestShortage:
    async def test_shortage_rejects_the_whole_order(self, handle, add_book, stock_of, producer):
        plenty = await add_book(quantity=10)
        scarce = await add_book(title="Scarce", quantity=5)

        status = await handle(_order_created(7, (plenty, 2), (scarce, 10)))

        assert status == "shortage"
        assert await stock_of(plenty) == 10
        assert await stock_of(scarce) == 5

        [alert] = producer.events(INVENTORY_EVENTS_TOPIC)
        assert alert.event_type == "StockShortage"
        assert alert.correlation_id == "req-7"
        assert alert.payload == {
            "orderId": 7,
            "bookId": scarce,
            "requested": 10,
            "available": 5,
            "reason": "Not enough stock to decrease",
        }
        assert producer.sent[0].key == str(scarce).encode()

    async def test_book_without_stock_row_is_a_shortage(self, handle, add_book, producer):
        book_id = await add_book()

        assert await handle(_order_created(8, (book_id, 1))) == "shortage"

        [alert] = producer.events(INVENTORY_EVENTS_TOPIC)
        assert alert.payload["available"] == 0
        assert alert.payload["reason"] == "Inventory not found for book"

    async def test_shortage_is_recorded_once(self, handle, add_book, producer):
        book_id = await add_book(quantity=1)
        event = _order_created(9, (book_id, 2))

        await handle(event)
        assert await handle(event) == "skipped"

        assert len(producer.events(INVENTORY_EVENTS_TOPIC)) == 1

    async def test_alert_publish_failure_does_not_block_commit(
        self, handle, add_book, producer
    ):
        book_id = await add_book(quantity=1)
        producer.fail = True

        assert await handle(_order_created(10, (book_id, 2))) == "shortage"


class TestDeadLetter:
    async def test_malformed_message_is_forwarded_untouched(self, handle, producer):
        raw = b'{"eventType": "OrderCreated", "payload": '

        assert await handle(raw, key=b"42") == "dlq"

        [forwarded] = producer.sent
        assert forwarded.topic == "order-events.dlq"
        assert forwarded.value == raw
        assert forwarded.key == b"42"

    async def test_invalid_payload_is_dead_lettered(self, handle, producer):
        event = EventMessage(event_type=ORDER_CREATED, payload={"userId": 1})

        assert await handle(event) == "dlq"
        assert producer.raw("order-events.dlq") == [event.to_json()]

    @pytest.mark.parametrize("quantity", [-10, 0])
    async def test_non_positive_line_quantity_is_dead_lettered(
        self, handle, add_book, stock_of, producer, db, quantity
    ):
        book_id = await add_book(quantity=5)
        event = EventMessage(
            event_type=ORDER_CREATED,
            payload={
                "orderId": 20,
                "userId": 1,
                "items": [{"bookId": book_id, "quantity": quantity, "price": "9.99"}],
            },
        )

        assert await handle(event) == "dlq"

        assert await stock_of(book_id) == 5
        assert await inventory_service.get_inventory_log(db, book_id) == []
        assert producer.raw("order-events.dlq") == [event.to_json()]

    async def test_order_without_lines_is_dead_lettered(self, handle, producer):
        event = EventMessage(
            event_type=ORDER_CREATED, payload={"orderId": 21, "userId": 1, "items": []}
        )

        assert await handle(event) == "dlq"
        assert len(producer.raw("order-events.dlq")) == 1

    async def test_gives_up_after_retries(self, handle, add_book, stock_of, producer, monkeypatch):
        book_id = await add_book(quantity=10)
        attempts = []

        async def _broken(db, payload, event_type):
            attempts.append(payload.order_id)
            raise RuntimeError("database is locked")

        monkeypatch.setattr(inventory_service, "apply_order_created", _broken)

        assert await handle(_order_created(3, (book_id, 1))) == "dlq"

        assert attempts == [3] * settings.event_max_retries
        assert len(producer.raw("order-events.dlq")) == 1
        assert await stock_of(book_id) == 10

    async def test_transient_failure_is_retried(self, handle, add_book, stock_of, monkeypatch):
        book_id = await add_book(quantity=10)
        real = inventory_service.apply_order_created
        attempts = []

        async def _flaky(db, payload, event_type):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("connection reset")
            return await real(db, payload, event_type)

        monkeypatch.setattr(inventory_service, "apply_order_created", _flaky)

        assert await handle(_order_created(4, (book_id, 6))) == "processed"
        assert len(attempts) == 2
        assert await stock_of(book_id) == 4


async def test_other_order_events_are_ignored(handle, add_book, stock_of, producer):
    book_id = await add_book(quantity=10)

    assert await handle(_order_created(5, (book_id, 1), event_type=ORDER_PAID)) == "ignored"

    assert await stock_of(book_id) == 10
    assert producer.sent == []


async def test_loop_commits_after_each_message(publisher, session_factory, kafka_message):
    class FakeConsumer:
        def __init__(self, messages):
            self._messages = messages
            self.commits = 0

        def __aiter__(self):
            return self._iterate()

        async def _iterate(self):
            for msg in self._messages:
                yield msg

        async def commit(self):
            self.commits += 1

    fake = FakeConsumer([kafka_message(b"junk", offset=0), kafka_message(b"junk", offset=1)])

    await consumer.run_consumer(fake, publisher, session_factory)

    assert fake.commits == 2
