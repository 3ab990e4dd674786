"""
Order service listener for ``user-events`` and ``inventory-events``.

Events are only recorded in the log for now; a failure to handle one message
is logged and never stops the loop.
"""

import logging

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace

from shared.event_bus import MalformedEventError, decode_event, trace_context
from shared.events import INVENTORY_UPDATED, STOCK_SHORTAGE, USER_CREATED, EventMessage

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _on_user_created(event: EventMessage) -> None:
    logger.info(
        "User created",
        extra={"user_id": event.payload.get("userId"), "correlation_id": event.correlation_id},
    )


def _on_inventory_updated(event: EventMessage) -> None:
    logger.info(
        "Inventory updated",
        extra={
            "book_id": event.payload.get("bookId"),
            "quantity": event.payload.get("quantity"),
        },
    )


def _on_stock_shortage(event: EventMessage) -> None:
    logger.warning(
        "Stock shortage reported for order",
        extra={
            "order_id": event.payload.get("orderId"),
            "book_id": event.payload.get("bookId"),
            "requested": event.payload.get("requested"),
            "available": event.payload.get("available"),
        },
    )


HANDLERS = {
    USER_CREATED: _on_user_created,
    INVENTORY_UPDATED: _on_inventory_updated,
    STOCK_SHORTAGE: _on_stock_shortage,
}


async def run_consumer(consumer: AIOKafkaConsumer) -> None:
    """Main consumer loop; runs until cancelled."""
    async for msg in consumer:
        handle_message(msg)


def handle_message(msg) -> None:
    with tracer.start_as_current_span(f"kafka.consume.{msg.topic}", context=trace_context(msg)):
        try:
            event = decode_event(msg.value)
        except MalformedEventError as exc:
            logger.error(
                "Failed to parse event",
                extra={"topic": msg.topic, "offset": msg.offset, "error": str(exc)},
            )
            return

        handler = HANDLERS.get(event.event_type)
        if handler is None:
            logger.debug("Ignoring event %s", event.event_type, extra={"topic": msg.topic})
            return
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Failed to process event %s",
                event.event_type,
                extra={"topic": msg.topic, "offset": msg.offset},
            )
