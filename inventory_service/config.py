from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    service_name: str = "book-inventory-service"
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/inventory"
    log_level: str = "INFO"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "book-inventory-group"
    dead_letter_topic: str = "order-events.dlq"

    # Order event processing
    event_max_retries: int = 3
    event_retry_backoff: float = 0.5

    # Stock
    low_stock_threshold: int = 5
    seed_catalog: bool = True

    # Auth
    jwt_secret: str = "change-me-bookstore-jwt-secret"

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"
    metrics_port: int = 8003

    model_config = {"env_file": ".env"}


settings = Settings()
