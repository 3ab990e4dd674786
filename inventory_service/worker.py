"""
Inventory stock ledger worker.
Starts the AIOKafka consumer + producer, then runs the order-events loop.
"""

import asyncio
import logging

import prometheus_client
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer

from inventory_service import models  # noqa: F401  (registers tables)
from inventory_service.config import settings
from inventory_service.consumer import run_consumer
from shared.event_bus import EventPublisher
from shared.events import ORDER_EVENTS_TOPIC
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(f"{settings.service_name}-worker", settings.log_level)
logger = logging.getLogger(__name__)


async def main() -> None:
    prometheus_client.start_http_server(settings.metrics_port)
    setup_tracing(f"{settings.service_name}-worker", settings.otlp_endpoint)

    consumer = AIOKafkaConsumer(
        ORDER_EVENTS_TOPIC,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )
    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )

    await producer.start()
    await consumer.start()
    logger.info(
        "Inventory worker started",
        extra={
            "bootstrap_servers": settings.kafka_bootstrap_servers,
            "consumer_group": settings.kafka_consumer_group,
            "metrics_port": settings.metrics_port,
        },
    )

    try:
        await run_consumer(consumer, EventPublisher(producer))
    finally:
        await consumer.stop()
        await producer.stop()
        logger.info("Inventory worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
