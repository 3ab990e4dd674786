from prometheus_client import Counter, Gauge

CIRCUIT_STATE = Gauge(
    "order_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["breaker"],
)

CIRCUIT_FALLBACKS = Counter(
    "order_circuit_breaker_fallbacks_total",
    "Calls answered by a fallback instead of the downstream service",
    ["breaker", "reason"],  # open | error
)

ORDERS_CREATED = Counter(
    "orders_created_total",
    "Orders persisted by the order service",
    ["source"],  # direct | cart
)

EVENTS_PUBLISH_FAILED = Counter(
    "order_events_publish_failed_total",
    "Domain events that could not be published after a local commit",
    ["event_type"],
)
