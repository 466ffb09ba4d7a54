"""
Event Publishers.

Two implementations behind one interface, selected once at startup:

- LocalPublisher: delivers to subscribers registered in this process.
- BrokerPublisher: fans out through Redis pub/sub to every process instance
  from a background worker, with retry and a circuit breaker. It always
  delivers locally as well, inline, so observers in this process never miss
  an event while the broker is down.

Publishing never raises into the caller: failures are logged and counted.
"""

from __future__ import annotations

import queue
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

import redis

from pos_shared.config.settings import settings
from pos_shared.config.logging import get_logger
from .event_types import MAX_EVENT_SIZE
from .event_schema import Event
from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    build_event_circuit_breaker,
    calculate_retry_delay_with_jitter,
)
from .redis_pool import get_redis_sync_client

logger = get_logger(__name__)

Subscriber = Callable[[str, Event], None]

_STOP = object()


def _validate_event_size(event_json: str, event_type: str) -> None:
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes")


class Publisher(ABC):
    """Delivers an event to a set of channels."""

    mode: str = "abstract"

    @abstractmethod
    def publish(self, channels: list[str], event: Event) -> None:
        ...

    @abstractmethod
    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        """Register an in-process subscriber. Returns an unsubscribe function."""

    @property
    def degraded(self) -> bool:
        return False

    def health(self) -> dict[str, Any]:
        return {"mode": self.mode, "degraded": self.degraded}

    def close(self) -> None:
        """Release any external resources."""


class LocalPublisher(Publisher):
    """Same-process fan-out. Subscriber errors are logged and isolated."""

    mode = "local"

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[channel].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(channel, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, channels: list[str], event: Event) -> None:
        for channel in channels:
            with self._lock:
                callbacks = list(self._subscribers.get(channel, ()))
            for callback in callbacks:
                try:
                    callback(channel, event)
                except Exception as e:
                    logger.error(
                        "Local subscriber failed",
                        channel=channel,
                        event_type=event.type,
                        error=str(e),
                    )


class BrokerPublisher(Publisher):
    """
    Redis pub/sub fan-out across process instances.

    Local delivery happens inline in publish(). The broker leg is queued and
    sent by a single worker thread, so a slow or hung broker never holds up
    the request that produced the event. When the bounded queue is full the
    event is dropped for the broker and counted.

    Each channel publish is retried with exponential backoff and jitter.
    When retries are exhausted the circuit breaker records a failure; once
    it opens, publishes skip Redis entirely until the recovery timeout.
    The publisher reports itself degraded while the breaker is not closed
    or the latest broker publish failed.
    """

    mode = "broker"

    def __init__(
        self,
        client: redis.Redis,
        local: LocalPublisher | None = None,
        circuit_breaker: EventCircuitBreaker | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        queue_max_size: int | None = None,
    ) -> None:
        self._client = client
        self._local = local or LocalPublisher()
        self._breaker = circuit_breaker or build_event_circuit_breaker()
        self._max_retries = max(1, max_retries or settings.redis_publish_max_retries)
        self._retry_delay = retry_delay if retry_delay is not None else settings.redis_publish_retry_delay
        self._sleep = sleep
        self._last_publish_failed = self._breaker.state != CircuitState.CLOSED
        self._failed_publishes = 0
        self._dropped_events = 0

        self._queue: queue.Queue = queue.Queue(maxsize=queue_max_size or settings.broker_queue_max_size)
        self._worker = threading.Thread(target=self._worker_loop, name="broker_publisher", daemon=True)
        self._worker.start()

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        return self._local.subscribe(channel, callback)

    @property
    def degraded(self) -> bool:
        return self._last_publish_failed or self._breaker.state != CircuitState.CLOSED

    def publish(self, channels: list[str], event: Event) -> None:
        self._local.publish(channels, event)

        try:
            payload = event.to_json()
            _validate_event_size(payload, event.type)
        except ValueError as e:
            logger.error("Event rejected before broker publish", event_type=event.type, error=str(e))
            return

        try:
            self._queue.put_nowait((list(channels), event.type, payload))
        except queue.Full:
            self._dropped_events += 1
            self._last_publish_failed = True
            logger.error(
                "Broker queue full, event not fanned out",
                event_type=event.type,
                queue_max_size=self._queue.maxsize,
            )

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                channels, event_type, payload = item
                for channel in channels:
                    self._publish_one(channel, event_type, payload)
            except Exception as e:
                logger.error("Broker worker error", error=str(e))
            finally:
                self._queue.task_done()

    def _publish_one(self, channel: str, event_type: str, payload: str) -> None:
        if not self._breaker.can_execute():
            self._last_publish_failed = True
            logger.warning(
                "Event publish skipped - circuit breaker open",
                channel=channel,
                event_type=event_type,
            )
            return

        for attempt in range(self._max_retries):
            try:
                self._client.publish(channel, payload)
                self._breaker.record_success()
                self._last_publish_failed = False
                return
            except redis.RedisError as e:
                if attempt < self._max_retries - 1:
                    delay = calculate_retry_delay_with_jitter(attempt, self._retry_delay)
                    logger.warning(
                        "Redis publish failed, retrying",
                        channel=channel,
                        event_type=event_type,
                        attempt=attempt + 1,
                        max_retries=self._max_retries,
                        delay_seconds=round(delay, 2),
                        error=str(e),
                    )
                    self._sleep(delay)
                else:
                    logger.error(
                        "Redis publish failed after all retries",
                        channel=channel,
                        event_type=event_type,
                        error=str(e),
                    )

        self._breaker.record_failure()
        self._last_publish_failed = True
        self._failed_publishes += 1

    def flush(self, timeout: float = 5.0) -> bool:
        """
        Wait until every queued broker publish has been attempted.

        Returns False if the queue did not drain within the timeout.
        """
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def health(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "degraded": self.degraded,
            "failed_publishes": self._failed_publishes,
            "dropped_events": self._dropped_events,
            "queued": self._queue.qsize(),
            "circuit_breaker": self._breaker.get_stats(),
        }

    def close(self) -> None:
        timeout = settings.broker_drain_timeout
        if self._worker.is_alive():
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("Broker queue still full at shutdown", queued=self._queue.qsize())
            self._worker.join(timeout)
            if self._worker.is_alive():
                logger.warning("Broker worker did not stop in time", queued=self._queue.qsize())
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.warning("Error closing broker client", error=str(e))


def build_publisher(redis_url: str | None = None) -> Publisher:
    """
    Select the publisher implementation at startup.

    Uses in-process delivery only when no Redis URL is configured. With a
    URL the broker publisher is always used; if Redis does not answer the
    startup ping its breaker starts open, so the publisher reports degraded
    and tries the broker again after the recovery timeout.
    """
    url = settings.redis_url if redis_url is None else redis_url
    if not url:
        logger.info("No broker configured, using in-process event delivery")
        return LocalPublisher()

    client = get_redis_sync_client(url)
    breaker = build_event_circuit_breaker()
    try:
        client.ping()
    except redis.RedisError as e:
        breaker.trip()
        logger.warning(
            "Broker unreachable at startup, delivering in-process until it recovers",
            error=str(e),
            retry_after_seconds=settings.broker_recovery_timeout,
        )
    else:
        logger.info("Broker reachable, using Redis event fan-out")
    return BrokerPublisher(client, circuit_breaker=breaker)
