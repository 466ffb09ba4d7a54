"""
Dependency providers for the routers.

Every request gets services bound to its own DB session and the
process-wide notifier. Tests override get_db and provide_notifier.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from pos_shared.infrastructure.db import get_db
from pos_shared.infrastructure.events import RealtimeNotifier, get_notifier
from pos_api.services.domain import (
    BillingService,
    DiscountResolver,
    OrderService,
    TableSessionService,
)


def provide_notifier() -> RealtimeNotifier:
    return get_notifier()


def get_session_service(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(provide_notifier),
) -> TableSessionService:
    return TableSessionService(db, notifier)


def get_order_service(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(provide_notifier),
) -> OrderService:
    return OrderService(db, notifier)


def get_discount_resolver(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(provide_notifier),
) -> DiscountResolver:
    return DiscountResolver(db, notifier)


def get_billing_service(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(provide_notifier),
) -> BillingService:
    return BillingService(db, notifier)
