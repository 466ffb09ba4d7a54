"""
Repository layer: locked reads and queries used by the domain services.
"""

from .base import BaseRepository
from .table import TableRepository
from .order import OrderRepository
from .invoice import InvoiceRepository

__all__ = [
    "BaseRepository",
    "TableRepository",
    "OrderRepository",
    "InvoiceRepository",
]
