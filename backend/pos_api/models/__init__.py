"""
SQLAlchemy ORM models for the POS core.

Modules:
- base.py: Base, AuditMixin
- table.py: Table, TableSession, TableMerge, TableHistory
- order.py: Order, OrderItem, OrderTransferLog
- kitchen.py: KotTicket
- discount.py: DiscountCode, OrderDiscount
- billing.py: Invoice, InvoiceTax, InvoiceItem, Payment
- catalog.py: TaxGroup, TaxGroupComponent, MenuItem
"""

from .base import Base, AuditMixin
from .table import Table, TableSession, TableMerge, TableHistory, SessionLock
from .order import Order, OrderItem, OrderTransferLog
from .kitchen import KotTicket
from .discount import DiscountCode, OrderDiscount
from .billing import Invoice, InvoiceTax, InvoiceItem, Payment
from .catalog import TaxGroup, TaxGroupComponent, MenuItem

__all__ = [
    "Base",
    "AuditMixin",
    "Table",
    "TableSession",
    "TableMerge",
    "TableHistory",
    "SessionLock",
    "Order",
    "OrderItem",
    "OrderTransferLog",
    "KotTicket",
    "DiscountCode",
    "OrderDiscount",
    "Invoice",
    "InvoiceTax",
    "InvoiceItem",
    "Payment",
    "TaxGroup",
    "TaxGroupComponent",
    "MenuItem",
]
