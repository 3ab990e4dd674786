"""
Circuit breaker guarding calls to peer services.

One breaker per downstream service name. While CLOSED every call goes through;
after ``failure_threshold`` consecutive failures the breaker OPENS and calls
are answered by the fallback without touching the network. Once
``recovery_timeout`` has elapsed it turns HALF_OPEN and admits up to
``half_open_max_calls`` trial calls: if they all succeed the breaker closes,
any failure re-opens it.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from order_service.config import settings
from order_service.metrics import CIRCUIT_FALLBACKS, CIRCUIT_STATE

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class CircuitBreakerOpenError(Exception):
    """Circuit breaker is open: the call was not attempted."""


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int
    recovery_timeout: float
    half_open_max_calls: int = 1
    tracked_exceptions: tuple[type[BaseException], ...] = (Exception,)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _failures: int = field(default=0, init=False, repr=False)
    _last_failure_time: float | None = field(default=None, init=False, repr=False)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False, repr=False)
    _half_open_calls: int = field(default=0, init=False, repr=False)
    _half_open_successes: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._set_state(CircuitState.CLOSED)

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._last_failure_time is not None
            and self.clock() - self._last_failure_time >= self.recovery_timeout
        ):
            self._set_state(CircuitState.HALF_OPEN)
            logger.info("Circuit breaker %s transitioned to HALF_OPEN", self.name)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def _set_state(self, state: CircuitState) -> None:
        self._state = state
        if state != CircuitState.CLOSED:
            self._half_open_calls = 0
            self._half_open_successes = 0
        CIRCUIT_STATE.labels(self.name).set(_STATE_GAUGE_VALUES[state])

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.OPEN:
            # A call admitted before the breaker tripped; the trip stands
            return
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes < self.half_open_max_calls:
                return
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker %s CLOSED", self.name)
        self._failures = 0
        self._set_state(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = self.clock()
        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
            logger.warning("Circuit breaker %s re-OPENED by a failed trial call", self.name)
        elif self._failures >= self.failure_threshold and self._state != CircuitState.OPEN:
            self._set_state(CircuitState.OPEN)
            logger.warning(
                "Circuit breaker %s OPENED after %d consecutive failures",
                self.name,
                self._failures,
            )

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: Callable[[BaseException], T],
    ) -> T:
        """Run ``func`` through the breaker, answering with ``fallback(exc)`` when it can't."""
        if not self.allow_request():
            CIRCUIT_FALLBACKS.labels(self.name, "open").inc()
            logger.warning("Circuit breaker %s OPEN, using fallback", self.name)
            return fallback(CircuitBreakerOpenError(f"Circuit breaker {self.name} is open"))

        try:
            result = await func()
        except self.tracked_exceptions as exc:
            self.record_failure()
            CIRCUIT_FALLBACKS.labels(self.name, "error").inc()
            logger.warning(
                "Call through circuit breaker %s failed, using fallback: %s",
                self.name,
                exc,
            )
            return fallback(exc)

        self.record_success()
        return result


_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, **overrides) -> CircuitBreaker:
    """Return the process-wide breaker for a downstream service, creating it on first use."""
    breaker = _breakers.get(name)
    if breaker is None:
        options = {
            "failure_threshold": settings.circuit_breaker_failure_threshold,
            "recovery_timeout": settings.circuit_breaker_recovery_timeout,
            "half_open_max_calls": settings.circuit_breaker_half_open_max_calls,
        }
        options.update(overrides)
        breaker = CircuitBreaker(name=name, **options)
        _breakers[name] = breaker
    return breaker


def reset_circuit_breakers() -> None:
    _breakers.clear()
