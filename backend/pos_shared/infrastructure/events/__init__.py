"""
Real-time event system.

- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Channel naming functions
- circuit_breaker.py: Circuit breaker and retry jitter
- redis_pool.py: Sync Redis connection pool
- publisher.py: Publisher interface with local and broker implementations
- notifier.py: RealtimeNotifier routing events to channels
"""

from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    calculate_retry_delay_with_jitter,
)
from .event_types import (
    TABLE_UPDATE,
    ORDER_UPDATE,
    KOT_UPDATE,
    BILL_STATUS,
    PAYMENT_UPDATE,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import (
    channel_outlet,
    channel_floor,
    channel_station,
    channel_role,
)
from .redis_pool import get_redis_sync_client, close_redis_sync_client
from .publisher import Publisher, LocalPublisher, BrokerPublisher, build_publisher
from .notifier import RealtimeNotifier, channels_for, get_notifier, close_notifier

__all__ = [
    # Circuit Breaker
    "CircuitState",
    "EventCircuitBreaker",
    "calculate_retry_delay_with_jitter",
    # Event Types
    "TABLE_UPDATE",
    "ORDER_UPDATE",
    "KOT_UPDATE",
    "BILL_STATUS",
    "PAYMENT_UPDATE",
    "MAX_EVENT_SIZE",
    # Event Schema
    "Event",
    # Channels
    "channel_outlet",
    "channel_floor",
    "channel_station",
    "channel_role",
    # Redis Pool
    "get_redis_sync_client",
    "close_redis_sync_client",
    # Publishers
    "Publisher",
    "LocalPublisher",
    "BrokerPublisher",
    "build_publisher",
    # Notifier
    "RealtimeNotifier",
    "channels_for",
    "get_notifier",
    "close_notifier",
]
