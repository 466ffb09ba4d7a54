"""
Domain Services - the POS transactional core.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

TaxEngine and the discount arithmetic are pure functions; the services
own the transactions and publish events once they have committed.

Usage:
    from pos_api.services.domain import OrderService

    # In router
    service = OrderService(db, notifier)
    order = service.create_order(actor, table_id=4, items=[NewItem(item_id=1, quantity=2)])
"""

from .tax_engine import (
    TaxRate,
    BillLine,
    LineBreakdown,
    TaxComponentTotal,
    BillBreakdown,
    calculate_bill,
    collapse_interstate,
)
from .catalog import Catalog, CatalogEntry, SqlCatalog
from .session_service import TableSessionService
from .order_service import OrderService, NewItem
from .discount_resolver import (
    DiscountResolver,
    DiscountResolution,
    ResolvedDiscount,
    manual_amount,
    code_amount,
    resolve_code,
    total_discount,
)
from .billing_service import BillingService, PaymentInput

__all__ = [
    # Pure computation
    "TaxRate",
    "BillLine",
    "LineBreakdown",
    "TaxComponentTotal",
    "BillBreakdown",
    "calculate_bill",
    "collapse_interstate",
    "DiscountResolution",
    "ResolvedDiscount",
    "manual_amount",
    "code_amount",
    "resolve_code",
    "total_discount",
    # Catalog
    "Catalog",
    "CatalogEntry",
    "SqlCatalog",
    # Services
    "TableSessionService",
    "OrderService",
    "NewItem",
    "DiscountResolver",
    "BillingService",
    "PaymentInput",
]
