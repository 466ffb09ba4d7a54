"""
Invoice Repository - invoices and payments.
"""

from typing import Sequence

from sqlalchemy import Select, select
from sqlalchemy.orm import selectinload

from pos_shared.config.constants import PaymentStatus
from pos_api.models import Invoice
from .base import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):

    @property
    def model(self) -> type[Invoice]:
        return Invoice

    def _base_query(self) -> Select:
        return select(Invoice).options(
            selectinload(Invoice.taxes),
            selectinload(Invoice.items),
            selectinload(Invoice.payments),
        )

    def active_for_order(self, order_id: int, for_update: bool = False) -> Invoice | None:
        """The latest non-cancelled invoice of an order."""
        query = (
            self._base_query()
            .where(Invoice.order_id == order_id, Invoice.is_cancelled.is_(False))
            .order_by(Invoice.id.desc())
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._db.scalar(query)

    def unpaid_for_order(self, order_id: int) -> Sequence[Invoice]:
        query = (
            self._base_query()
            .where(
                Invoice.order_id == order_id,
                Invoice.is_cancelled.is_(False),
                Invoice.payment_status.in_(PaymentStatus.UNPAID),
            )
            .order_by(Invoice.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._db.execute(query).scalars().all()

    def list_pending(self, outlet_id: int) -> Sequence[Invoice]:
        """Issued invoices still awaiting payment. Cancelled ones never appear."""
        query = (
            self._base_query()
            .where(
                Invoice.outlet_id == outlet_id,
                Invoice.is_cancelled.is_(False),
                Invoice.payment_status.in_(PaymentStatus.UNPAID),
            )
            .order_by(Invoice.id)
        )
        return self._db.execute(query).scalars().all()
