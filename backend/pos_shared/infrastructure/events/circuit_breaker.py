"""
Circuit Breaker for broker publishing.

Stops hammering an unreachable broker: after repeated failures publishes
fail fast until the recovery timeout has elapsed.
"""

from __future__ import annotations

import random
import threading
import time
from enum import Enum

from pos_shared.config.settings import settings
from pos_shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failure mode - requests rejected
    HALF_OPEN = "half_open"  # Recovery testing


class EventCircuitBreaker:
    """
    Lightweight circuit breaker for event publishing.

    Fails fast while the broker is down instead of waiting for a socket
    timeout on every publish attempt.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        clock=time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float = 0
        self._half_open_calls = 0
        self._lock = threading.Lock()

        # Metrics
        self._rejected_count = 0

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    def can_execute(self) -> bool:
        """
        Check if a call can proceed.

        Returns True if allowed, False if circuit is open.
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._clock() - self._last_failure_time >= self._recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    self._half_open_calls = 0
                    logger.info("Event circuit breaker transitioning to HALF_OPEN")
                    return True
                self._rejected_count += 1
                return False

            if self._half_open_calls >= self._half_open_max_calls:
                return False
            self._half_open_calls += 1
            return True

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.error("Event circuit breaker OPEN (half-open test failed)")
            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self._failure_threshold:
                    self._state = CircuitState.OPEN
                    logger.error(
                        "Event circuit breaker OPEN",
                        failure_count=self._failure_count,
                        threshold=self._failure_threshold,
                    )

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                logger.info("Event circuit breaker recovered to CLOSED")
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def trip(self) -> None:
        """Open the circuit now, starting the recovery timeout from this moment."""
        with self._lock:
            self._state = CircuitState.OPEN
            self._failure_count = max(self._failure_count, self._failure_threshold)
            self._last_failure_time = self._clock()
        logger.warning("Event circuit breaker forced OPEN")

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        with self._lock:
            return {
                "state": self._state.value,
                "failure_count": self._failure_count,
                "rejected_count": self._rejected_count,
                "last_failure_time": self._last_failure_time,
            }


def build_event_circuit_breaker() -> EventCircuitBreaker:
    """Create a breaker tuned from settings."""
    return EventCircuitBreaker(
        failure_threshold=settings.broker_failure_threshold,
        recovery_timeout=settings.broker_recovery_timeout,
        half_open_max_calls=3,
    )


# =============================================================================
# Jitter utilities for retry delay
# =============================================================================


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.5) -> float:
    """
    Calculate retry delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds with jitter applied
    """
    exp_delay = min(base_delay * (2 ** attempt), 10.0)
    return random.uniform(base_delay, exp_delay)
