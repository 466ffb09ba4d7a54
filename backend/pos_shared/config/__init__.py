"""
Configuration module: Settings, logging, constants.
"""

from pos_shared.config.settings import settings, get_settings, DATABASE_URL
from pos_shared.config.logging import get_logger, setup_logging
from pos_shared.config.constants import (
    Roles,
    TableStatus,
    SessionStatus,
    OrderType,
    OrderStatus,
    OrderItemStatus,
    KotStatus,
    DiscountType,
    PaymentStatus,
    PaymentMode,
    MANAGEMENT_ROLES,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Roles",
    "TableStatus",
    "SessionStatus",
    "OrderType",
    "OrderStatus",
    "OrderItemStatus",
    "KotStatus",
    "DiscountType",
    "PaymentStatus",
    "PaymentMode",
    "MANAGEMENT_ROLES",
]
