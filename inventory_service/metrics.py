from prometheus_client import Counter, Histogram

MESSAGES_CONSUMED = Counter(
    "inventory_messages_consumed_total",
    "Kafka messages consumed by the inventory stock ledger",
    ["status"],  # processed | skipped | shortage | ignored | dlq
)

PROCESSING_TIME = Histogram(
    "inventory_event_processing_duration_seconds",
    "Time spent applying one order event to the stock ledger",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

PROCESSING_RETRIES = Counter(
    "inventory_event_retries_total",
    "Retries of order events after a transient processing failure",
)
