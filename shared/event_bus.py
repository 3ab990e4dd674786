"""
Thin publish/subscribe wrapper over Kafka.

Publishing is at-least-once from the broker's point of view but is NOT
transactional with the caller's database commit: callers publish after their
local commit and treat a failed publish as a logged, best-effort gap.
"""

import logging

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError
from opentelemetry.propagate import extract, inject
from pydantic import ValidationError

from shared.events import EventMessage

logger = logging.getLogger(__name__)


class EventPublishError(Exception):
    """The broker did not acknowledge a published event."""


class MalformedEventError(Exception):
    """A consumed message is not a valid EventMessage envelope."""


class EventPublisher:
    def __init__(self, producer: AIOKafkaProducer):
        self._producer = producer

    async def publish(self, topic: str, event: EventMessage, key: str | None = None) -> None:
        # Propagate the current trace context into the Kafka message
        outgoing_headers: dict[str, str] = {}
        inject(outgoing_headers)
        kafka_headers = [(k, v.encode()) for k, v in outgoing_headers.items()]

        try:
            await self._producer.send_and_wait(
                topic,
                key=key.encode() if key is not None else None,
                value=event.to_json(),
                headers=kafka_headers,
            )
        except KafkaError as exc:
            raise EventPublishError(
                f"Failed to publish {event.event_type} to {topic}: {exc}"
            ) from exc

        logger.info(
            "Published %s event",
            event.event_type,
            extra={
                "topic": topic,
                "key": key,
                "event_id": str(event.event_id),
                "correlation_id": event.correlation_id,
            },
        )

    async def forward_raw(self, topic: str, value: bytes, key: bytes | None = None) -> None:
        """Send an undecoded message as-is, e.g. to a dead-letter topic."""
        try:
            await self._producer.send_and_wait(topic, key=key, value=value)
        except KafkaError as exc:
            raise EventPublishError(f"Failed to forward message to {topic}: {exc}") from exc


def decode_event(raw: bytes | str | None) -> EventMessage:
    if raw is None:
        raise MalformedEventError("Empty message")
    try:
        return EventMessage.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedEventError(str(exc)) from exc


def trace_context(msg):
    """Extract the W3C trace context propagated via Kafka headers."""
    headers = {k: v.decode() for k, v in msg.headers} if msg.headers else {}
    return extract(headers)
