from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    service_name: str = "order-management-service"
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/orders"
    log_level: str = "INFO"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "order-management-group"
    kafka_consumer_enabled: bool = True

    # Book inventory service
    inventory_service_url: str = "http://book-inventory-service:8081"
    inventory_price_timeout: float = 5.0
    inventory_batch_price_timeout: float = 10.0

    # Circuit breaker around the inventory service
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_timeout: float = 30.0
    circuit_breaker_half_open_max_calls: int = 3

    # Auth
    jwt_secret: str = "change-me-bookstore-jwt-secret"
    jwt_service_token_ttl: int = 300

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env"}


settings = Settings()
