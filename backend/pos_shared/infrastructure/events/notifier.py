"""
Realtime Notifier.

Routes typed POS events to the channels their consumers listen on and
hands them to the configured Publisher. Publication is fire-and-forget:
nothing here raises into the operation that triggered the event.

Routing:
    table:update    outlet, floor
    order:update    outlet, captains, cashiers
    kot:update      kitchen, station, captains, cashiers
    bill:status     captains, cashiers, outlet
    payment:update  cashiers, outlet
"""

from __future__ import annotations

import threading
from typing import Any, TYPE_CHECKING

from pos_shared.config.constants import Roles
from pos_shared.config.logging import events_logger as logger
from .channels import channel_outlet, channel_floor, channel_station, channel_role
from .event_schema import Event
from .event_types import TABLE_UPDATE, ORDER_UPDATE, KOT_UPDATE, BILL_STATUS, PAYMENT_UPDATE
from .publisher import Publisher, build_publisher

if TYPE_CHECKING:
    from pos_shared.security.auth import Actor


def channels_for(event: Event) -> list[str]:
    """Compute the channel list for an event from its type and scope."""
    outlet_id = event.outlet_id

    if event.type == TABLE_UPDATE:
        channels = [channel_outlet(outlet_id)]
        if event.floor_id:
            channels.append(channel_floor(outlet_id, event.floor_id))
        return channels

    if event.type == ORDER_UPDATE:
        return [
            channel_outlet(outlet_id),
            channel_role(outlet_id, Roles.CAPTAIN),
            channel_role(outlet_id, Roles.CASHIER),
        ]

    if event.type == KOT_UPDATE:
        channels = [channel_role(outlet_id, Roles.KITCHEN)]
        if event.station:
            channels.append(channel_station(outlet_id, event.station))
        channels.append(channel_role(outlet_id, Roles.CAPTAIN))
        channels.append(channel_role(outlet_id, Roles.CASHIER))
        return channels

    if event.type == BILL_STATUS:
        return [
            channel_role(outlet_id, Roles.CAPTAIN),
            channel_role(outlet_id, Roles.CASHIER),
            channel_outlet(outlet_id),
        ]

    if event.type == PAYMENT_UPDATE:
        return [channel_role(outlet_id, Roles.CASHIER), channel_outlet(outlet_id)]

    raise ValueError(f"No routing for event type {event.type!r}")


class RealtimeNotifier:
    """
    Publishes one event per state change.

    Services receive a notifier through their constructor and call it only
    after their transaction has committed.
    """

    def __init__(self, publisher: Publisher):
        self._publisher = publisher

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    def publish(self, event: Event) -> None:
        try:
            channels = channels_for(event)
            self._publisher.publish(channels, event)
            logger.debug("Event published", event_type=event.type, channels=channels)
        except Exception as e:
            logger.error(
                "Event publication failed",
                event_type=event.type,
                outlet_id=event.outlet_id,
                error=str(e),
            )

    def _emit(self, event_type: str, outlet_id: int, entity: dict[str, Any], actor: "Actor | None", **scope: Any) -> None:
        try:
            event = Event(
                type=event_type,
                outlet_id=outlet_id,
                entity=entity,
                actor=actor.as_dict() if actor is not None else {},
                **scope,
            )
        except (TypeError, ValueError) as e:
            logger.error("Malformed event dropped", event_type=event_type, outlet_id=outlet_id, error=str(e))
            return
        self.publish(event)

    def publish_table(
        self,
        outlet_id: int,
        table_id: int,
        entity: dict[str, Any],
        floor_id: int | None = None,
        actor: "Actor | None" = None,
    ) -> None:
        self._emit(TABLE_UPDATE, outlet_id, entity, actor, table_id=table_id, floor_id=floor_id)

    def publish_order(
        self,
        outlet_id: int,
        entity: dict[str, Any],
        table_id: int | None = None,
        actor: "Actor | None" = None,
    ) -> None:
        self._emit(ORDER_UPDATE, outlet_id, entity, actor, table_id=table_id)

    def publish_kot(
        self,
        outlet_id: int,
        station: str,
        entity: dict[str, Any],
        table_id: int | None = None,
        actor: "Actor | None" = None,
    ) -> None:
        self._emit(KOT_UPDATE, outlet_id, entity, actor, station=station, table_id=table_id)

    def publish_bill(
        self,
        outlet_id: int,
        entity: dict[str, Any],
        table_id: int | None = None,
        actor: "Actor | None" = None,
    ) -> None:
        self._emit(BILL_STATUS, outlet_id, entity, actor, table_id=table_id)

    def publish_payment(
        self,
        outlet_id: int,
        entity: dict[str, Any],
        table_id: int | None = None,
        actor: "Actor | None" = None,
    ) -> None:
        self._emit(PAYMENT_UPDATE, outlet_id, entity, actor, table_id=table_id)

    def health(self) -> dict[str, Any]:
        return self._publisher.health()

    def close(self) -> None:
        self._publisher.close()


# =============================================================================
# Process-wide instance (composition root only)
# =============================================================================

_notifier: RealtimeNotifier | None = None
_notifier_lock = threading.Lock()


def get_notifier() -> RealtimeNotifier:
    """Get or create the process-wide notifier."""
    global _notifier
    if _notifier is None:
        with _notifier_lock:
            if _notifier is None:
                _notifier = RealtimeNotifier(build_publisher())
    return _notifier


def close_notifier() -> None:
    """Close the process-wide notifier on application shutdown."""
    global _notifier
    with _notifier_lock:
        if _notifier is not None:
            _notifier.close()
            _notifier = None
