"""
Centralized constants for the POS core.
Avoids magic strings for roles, statuses and allowed transitions.

Usage:
    from pos_shared.config.constants import OrderStatus, TableStatus

    if order.status in OrderStatus.TERMINAL:
        ...
"""

from typing import Final


# =============================================================================
# Staff Roles
# =============================================================================


class Roles:
    """Staff role constants, as supplied by the authentication layer."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    CASHIER: Final[str] = "CASHIER"
    CAPTAIN: Final[str] = "CAPTAIN"  # Floor staff who open tables and take orders
    KITCHEN: Final[str] = "KITCHEN"

    ALL: Final[list[str]] = [ADMIN, MANAGER, CASHIER, CAPTAIN, KITCHEN]


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})


# =============================================================================
# Table / Session
# =============================================================================


class TableStatus:
    """Physical table status."""

    AVAILABLE: Final[str] = "available"
    OCCUPIED: Final[str] = "occupied"  # Session started, nothing sent to kitchen yet
    RUNNING: Final[str] = "running"  # At least one KOT sent
    BILLING: Final[str] = "billing"  # Invoice issued, awaiting payment
    CLEANING: Final[str] = "cleaning"
    RESERVED: Final[str] = "reserved"
    BLOCKED: Final[str] = "blocked"
    MERGED: Final[str] = "merged"  # Secondary table absorbed into a primary

    ALL: Final[list[str]] = [
        AVAILABLE, OCCUPIED, RUNNING, BILLING, CLEANING, RESERVED, BLOCKED, MERGED,
    ]
    # Cleaning is operationally the same as available
    FREE: Final[frozenset[str]] = frozenset({AVAILABLE, CLEANING})
    STARTABLE: Final[frozenset[str]] = frozenset({AVAILABLE, CLEANING, RESERVED})
    IN_USE: Final[frozenset[str]] = frozenset({OCCUPIED, RUNNING, BILLING})
    # Statuses a manager may set by hand on an idle table
    MANUAL: Final[frozenset[str]] = frozenset({AVAILABLE, RESERVED, BLOCKED, CLEANING})


class SessionStatus:
    """Table session status."""

    ACTIVE: Final[str] = "active"
    COMPLETED: Final[str] = "completed"


# =============================================================================
# Orders
# =============================================================================


class OrderType:
    DINE_IN: Final[str] = "dine_in"
    TAKEAWAY: Final[str] = "takeaway"
    DELIVERY: Final[str] = "delivery"

    ALL: Final[list[str]] = [DINE_IN, TAKEAWAY, DELIVERY]


class OrderStatus:
    """Order lifecycle: confirmed → preparing → served → billing → completed."""

    CONFIRMED: Final[str] = "confirmed"
    PREPARING: Final[str] = "preparing"
    SERVED: Final[str] = "served"
    BILLING: Final[str] = "billing"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    TERMINAL: Final[frozenset[str]] = frozenset({COMPLETED, CANCELLED})
    ACTIVE: Final[frozenset[str]] = frozenset({CONFIRMED, PREPARING, SERVED, BILLING})


ORDER_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    # Preparing may fall straight to served when the last open ticket is cancelled
    OrderStatus.PREPARING: frozenset({OrderStatus.SERVED, OrderStatus.CANCELLED}),
    # A served order that gets another KOT goes back to the kitchen
    OrderStatus.SERVED: frozenset({OrderStatus.PREPARING, OrderStatus.BILLING, OrderStatus.CANCELLED}),
    # Cancelling the invoice drops the order back to served for a re-bill
    OrderStatus.BILLING: frozenset({OrderStatus.COMPLETED, OrderStatus.SERVED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class OrderItemStatus:
    PENDING: Final[str] = "pending"  # Added, not yet sent to a station
    SENT: Final[str] = "sent"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    CANCELLED: Final[str] = "cancelled"


class KotStatus:
    """Kitchen order ticket status."""

    PENDING: Final[str] = "pending"
    ACCEPTED: Final[str] = "accepted"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    CANCELLED: Final[str] = "cancelled"

    OPEN: Final[frozenset[str]] = frozenset({PENDING, ACCEPTED, PREPARING, READY})


KOT_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    KotStatus.PENDING: frozenset({KotStatus.ACCEPTED, KotStatus.PREPARING, KotStatus.READY, KotStatus.CANCELLED}),
    KotStatus.ACCEPTED: frozenset({KotStatus.PREPARING, KotStatus.READY, KotStatus.CANCELLED}),
    KotStatus.PREPARING: frozenset({KotStatus.READY, KotStatus.CANCELLED}),
    KotStatus.READY: frozenset({KotStatus.SERVED, KotStatus.CANCELLED}),
    KotStatus.SERVED: frozenset(),
    KotStatus.CANCELLED: frozenset(),
}


# Station a ticket goes to when the catalog entry does not name one
DEFAULT_STATION: Final[str] = "kitchen"


# =============================================================================
# Discounts
# =============================================================================


class DiscountType:
    FLAT: Final[str] = "flat"
    PERCENTAGE: Final[str] = "percentage"
    CODE: Final[str] = "code"

    MANUAL: Final[frozenset[str]] = frozenset({FLAT, PERCENTAGE})


# =============================================================================
# Billing
# =============================================================================


class PaymentStatus:
    """Invoice payment status, driven by the sum of completed payments."""

    PENDING: Final[str] = "pending"
    PARTIAL: Final[str] = "partial"
    PAID: Final[str] = "paid"

    UNPAID: Final[frozenset[str]] = frozenset({PENDING, PARTIAL})


class PaymentMode:
    CASH: Final[str] = "cash"
    CARD: Final[str] = "card"
    UPI: Final[str] = "upi"
    WALLET: Final[str] = "wallet"
    OTHER: Final[str] = "other"

    ALL: Final[list[str]] = [CASH, CARD, UPI, WALLET, OTHER]


class TaxCode:
    """Well-known tax component codes."""

    CGST: Final[str] = "CGST"
    SGST: Final[str] = "SGST"
    IGST: Final[str] = "IGST"
    VAT: Final[str] = "VAT"
    CESS: Final[str] = "CESS"


# =============================================================================
# Limits
# =============================================================================


class Limits:
    MAX_ITEM_QUANTITY: Final[int] = 999
    MAX_GUEST_COUNT: Final[int] = 100
    MAX_PERCENT_BPS: Final[int] = 10_000  # 100.00 %
