"""
At-least-once consumer applying order events to the stock ledger.

Guarantees:
  - Idempotency: an order event already recorded in processed_events is skipped
  - No overselling: stock is taken through the same quantity >= 0 check as the
    direct decrease API; a shortage rejects the whole order and is reported
    as a StockShortage event on inventory-events
  - Transient failures are retried with exponential backoff, then the message
    is forwarded to the dead-letter topic
  - The caller commits the offset only once a message reached a final outcome
"""

import asyncio
import logging
import time

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from inventory_service.config import settings
from inventory_service.database import AsyncSessionLocal
from inventory_service.metrics import MESSAGES_CONSUMED, PROCESSING_RETRIES, PROCESSING_TIME
from inventory_service.services import inventory_service
from inventory_service.services.inventory_service import (
    OUTCOME_DUPLICATE,
    OUTCOME_SHORTAGE,
    OrderStockResult,
)
from shared.event_bus import (
    EventPublisher,
    EventPublishError,
    MalformedEventError,
    decode_event,
    trace_context,
)
from shared.events import (
    INVENTORY_EVENTS_TOPIC,
    ORDER_CREATED,
    STOCK_SHORTAGE,
    EventMessage,
    OrderEventPayload,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

STATUS_PROCESSED = "processed"
STATUS_SKIPPED = "skipped"
STATUS_SHORTAGE = "shortage"
STATUS_IGNORED = "ignored"
STATUS_DLQ = "dlq"


async def run_consumer(
    consumer: AIOKafkaConsumer,
    publisher: EventPublisher,
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> None:
    """Main consumer loop; runs until cancelled."""
    async for msg in consumer:
        await handle_message(msg, publisher, session_factory)
        await consumer.commit()


async def handle_message(
    msg, publisher: EventPublisher, session_factory: async_sessionmaker
) -> str:
    with tracer.start_as_current_span("kafka.consume.order-events", context=trace_context(msg)):
        try:
            event = decode_event(msg.value)
        except MalformedEventError as exc:
            logger.error(
                "Failed to parse order-events message, sending to DLQ",
                extra={"error": str(exc), "offset": msg.offset, "partition": msg.partition},
            )
            return await _dead_letter(msg, publisher)

        if event.event_type != ORDER_CREATED:
            logger.debug("Ignoring %s event", event.event_type, extra={"offset": msg.offset})
            MESSAGES_CONSUMED.labels(STATUS_IGNORED).inc()
            return STATUS_IGNORED

        return await _on_order_created(event, msg, publisher, session_factory)


async def _on_order_created(
    event: EventMessage, msg, publisher: EventPublisher, session_factory: async_sessionmaker
) -> str:
    try:
        payload = OrderEventPayload.model_validate(event.payload)
    except ValidationError as exc:
        logger.error(
            "OrderCreated payload is invalid, sending to DLQ",
            extra={"error": str(exc), "offset": msg.offset, "event_id": str(event.event_id)},
        )
        return await _dead_letter(msg, publisher)

    logger.info(
        "Received OrderCreated event",
        extra={
            "order_id": payload.order_id,
            "correlation_id": event.correlation_id,
            "item_count": len(payload.items),
        },
    )

    start = time.monotonic()
    result = await _apply_with_retry(payload, event.event_type, session_factory)
    PROCESSING_TIME.observe(time.monotonic() - start)

    if result is None:
        return await _dead_letter(msg, publisher)

    if result.outcome == OUTCOME_DUPLICATE:
        logger.info(
            "OrderCreated already applied, skipping (idempotency)",
            extra={"order_id": payload.order_id, "correlation_id": event.correlation_id},
        )
        MESSAGES_CONSUMED.labels(STATUS_SKIPPED).inc()
        return STATUS_SKIPPED

    if result.outcome == OUTCOME_SHORTAGE:
        await _report_shortages(result, event.correlation_id, publisher)
        MESSAGES_CONSUMED.labels(STATUS_SHORTAGE).inc()
        return STATUS_SHORTAGE

    logger.info(
        "Stock taken for order",
        extra={"order_id": payload.order_id, "correlation_id": event.correlation_id},
    )
    MESSAGES_CONSUMED.labels(STATUS_PROCESSED).inc()
    return STATUS_PROCESSED


async def _apply_with_retry(
    payload: OrderEventPayload, event_type: str, session_factory: async_sessionmaker
) -> OrderStockResult | None:
    """Apply the order to stock, retrying transient failures. None means give up."""
    for attempt in range(1, settings.event_max_retries + 1):
        try:
            async with session_factory() as db:
                return await inventory_service.apply_order_created(db, payload, event_type)
        except Exception as exc:
            logger.warning(
                "Applying order to stock failed on attempt %d/%d",
                attempt,
                settings.event_max_retries,
                extra={"order_id": payload.order_id, "error": str(exc)},
            )
            if attempt < settings.event_max_retries:
                backoff_seconds = settings.event_retry_backoff * 2 ** (attempt - 1)
                PROCESSING_RETRIES.inc()
                await asyncio.sleep(backoff_seconds)

    logger.error(
        "Giving up on order after %d attempt(s)",
        settings.event_max_retries,
        extra={"order_id": payload.order_id},
    )
    return None


async def _report_shortages(
    result: OrderStockResult, correlation_id: str | None, publisher: EventPublisher
) -> None:
    for shortage in result.shortages:
        logger.error(
            "Stock shortage, order not applied to inventory",
            extra={
                "order_id": shortage.order_id,
                "book_id": shortage.book_id,
                "requested": shortage.requested,
                "available": shortage.available,
                "reason": shortage.reason,
            },
        )
        alert = EventMessage.wrap(STOCK_SHORTAGE, shortage, correlation_id=correlation_id)
        try:
            await publisher.publish(INVENTORY_EVENTS_TOPIC, alert, key=str(shortage.book_id))
        except EventPublishError as exc:
            logger.error(
                "StockShortage alert was not published",
                extra={"order_id": shortage.order_id, "error": str(exc)},
            )


async def _dead_letter(msg, publisher: EventPublisher) -> str:
    await publisher.forward_raw(settings.dead_letter_topic, msg.value or b"", key=msg.key)
    MESSAGES_CONSUMED.labels(STATUS_DLQ).inc()
    logger.warning(
        "Message forwarded to dead-letter topic",
        extra={"topic": settings.dead_letter_topic, "offset": msg.offset},
    )
    return STATUS_DLQ
