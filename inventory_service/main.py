import logging
from contextlib import asynccontextmanager

from aiokafka import AIOKafkaProducer
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from inventory_service import models  # noqa: F401  (registers tables)
from inventory_service.config import settings
from inventory_service.database import AsyncSessionLocal, create_tables, engine
from inventory_service.routers import books, inventory
from inventory_service.services.book_service import seed_catalog
from shared.event_bus import EventPublisher
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

    if settings.seed_catalog:
        await seed_catalog(AsyncSessionLocal)

    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )
    await producer.start()
    app.state.event_publisher = EventPublisher(producer)
    logger.info("Startup complete")

    yield

    await producer.stop()
    await engine.dispose()
    logger.info("Shutting down")


app = FastAPI(
    title="Bookstore Inventory Service",
    description="Book prices, stock levels and the inventory audit trail",
    version="1.0.0",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)
app.include_router(books.router, prefix="/api/books", tags=["books"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["inventory"])

# Expose Prometheus metrics at /metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
