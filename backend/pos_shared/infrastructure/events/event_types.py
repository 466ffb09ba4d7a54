"""
Event Type Constants.

One event type per entity whose state changes.
"""

from __future__ import annotations

from pos_shared.config.settings import settings

# Table status and session lifecycle
TABLE_UPDATE = "table:update"

# Order lifecycle and item changes
ORDER_UPDATE = "order:update"

# Kitchen order tickets
KOT_UPDATE = "kot:update"

# Invoice issued, recomputed, cancelled or paid
BILL_STATUS = "bill:status"

# Payment recorded
PAYMENT_UPDATE = "payment:update"

ALL_EVENT_TYPES = frozenset({TABLE_UPDATE, ORDER_UPDATE, KOT_UPDATE, BILL_STATUS, PAYMENT_UPDATE})

# Size limit for serialized events (bytes)
MAX_EVENT_SIZE = settings.ws_max_message_size
