"""
Event Schema.

Defines the unified Event dataclass for all real-time notifications.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any

from .event_types import ALL_EVENT_TYPES


@dataclass
class Event:
    """
    Unified event schema for every state change of the POS core.

    The 'entity' field carries the changed entity's new state.
    The 'actor' field identifies who triggered the event.
    floor_id and station select the extra channels the event is routed to.
    """

    type: str
    outlet_id: int
    floor_id: int | None = None
    station: str | None = None
    table_id: int | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version for future compatibility

    def __post_init__(self) -> None:
        """Reject malformed events before they reach any subscriber."""
        if self.type not in ALL_EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type!r}")

        if not isinstance(self.outlet_id, int) or self.outlet_id <= 0:
            raise ValueError("Event outlet_id must be a positive integer")

        if self.floor_id is not None and (not isinstance(self.floor_id, int) or self.floor_id <= 0):
            raise ValueError("Event floor_id must be a positive integer or None")

        if self.table_id is not None and (not isinstance(self.table_id, int) or self.table_id <= 0):
            raise ValueError("Event table_id must be a positive integer or None")

        if self.station is not None and not self.station:
            raise ValueError("Event station must be a non-empty string or None")

        if not isinstance(self.entity, dict) or not isinstance(self.actor, dict):
            raise ValueError("Event entity and actor must be dicts")

        if self.ts is None:
            self.ts = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string. Validation runs in __post_init__."""
        data = json.loads(json_str)
        return cls(**data)
