import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import httpx
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from order_service import models  # noqa: F401  (registers tables)
from order_service.config import settings
from order_service.consumer import run_consumer
from order_service.database import create_tables, engine
from order_service.routers import cart, orders
from order_service.services.inventory_client import InventoryClient
from shared.event_bus import EventPublisher
from shared.events import INVENTORY_EVENTS_TOPIC, USER_EVENTS_TOPIC
from shared.exceptions import register_exception_handlers
from shared.middleware.metrics import MetricsMiddleware
from shared.middleware.request_id import RequestIDMiddleware
from shared.tracing import setup_tracing
from shared.utils.logging import setup_logging

setup_logging(settings.service_name, settings.log_level)
logger = logging.getLogger(__name__)

setup_tracing(settings.service_name, settings.otlp_endpoint)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up, creating database tables")
    await create_tables()

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )
    await producer.start()
    app.state.event_publisher = EventPublisher(producer)

    http_client = httpx.AsyncClient(base_url=settings.inventory_service_url)
    app.state.inventory_client = InventoryClient(http_client)

    consumer_task = None
    consumer = None
    if settings.kafka_consumer_enabled:
        consumer = AIOKafkaConsumer(
            USER_EVENTS_TOPIC,
            INVENTORY_EVENTS_TOPIC,
            bootstrap_servers=settings.kafka_bootstrap_servers,
            group_id=settings.kafka_consumer_group,
            enable_auto_commit=True,
            auto_offset_reset="earliest",
        )
        await consumer.start()
        consumer_task = asyncio.create_task(run_consumer(consumer))
    logger.info("Startup complete")

    yield

    if consumer_task is not None:
        consumer_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer_task
        await consumer.stop()
    await http_client.aclose()
    await producer.stop()
    await engine.dispose()
    logger.info("Shutting down")


app = FastAPI(
    title="Bookstore Order Management Service",
    description="Shopping cart and order workflow",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])

# Expose Prometheus metrics at /metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
