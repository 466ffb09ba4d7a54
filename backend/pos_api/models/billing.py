"""
Billing Models: Invoice, InvoiceTax, InvoiceItem, Payment.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_shared.config.constants import PaymentStatus
from .base import AuditMixin, Base, IdType

if TYPE_CHECKING:
    from .order import Order


class Invoice(AuditMixin, Base):
    """
    The bill issued for an order.

    Derived amounts are recomputed from the order's live items and
    discounts whenever charges are toggled. The row is frozen once paid.
    """

    __tablename__ = "invoice"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(String(30), index=True)

    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    taxable_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tax_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_charge_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    round_off_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    grand_total_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Original request flag; the removal toggles are applied on top of it
    apply_service_charge: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    service_charge_bps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_charge_removed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gst_removed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_interstate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_gstin: Mapped[Optional[str]] = mapped_column(String(20))

    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[Optional[int]] = mapped_column(BigInteger)

    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING, nullable=False, index=True
    )
    paid_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    generated_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="invoices")
    taxes: Mapped[list["InvoiceTax"]] = relationship(
        back_populates="invoice", order_by="InvoiceTax.id", cascade="all, delete-orphan"
    )
    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice", order_by="InvoiceItem.id", cascade="all, delete-orphan"
    )
    payments: Mapped[list["Payment"]] = relationship(back_populates="invoice", order_by="Payment.id")

    __table_args__ = (
        CheckConstraint("paid_cents >= 0", name="chk_invoice_paid_non_negative"),
        CheckConstraint("discount_cents <= subtotal_cents", name="chk_invoice_discount_within_subtotal"),
        Index("ix_invoice_outlet_pending", "outlet_id", "is_cancelled", "payment_status"),
    )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def balance_cents(self) -> int:
        return max(self.grand_total_cents - self.paid_cents, 0)

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, order={self.order_id}, total={self.grand_total_cents}, "
            f"paid={self.paid_cents}, status={self.payment_status}, cancelled={self.is_cancelled})>"
        )


class InvoiceTax(Base):
    """Aggregated amount of one tax component on an invoice."""

    __tablename__ = "invoice_tax"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("invoice.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    rate_bps: Mapped[int] = mapped_column(Integer, nullable=False)
    taxable_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="taxes")


class InvoiceItem(Base):
    """Snapshot of a billed order line."""

    __tablename__ = "invoice_item"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("invoice.id"), nullable=False, index=True
    )
    order_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_share_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")


class Payment(AuditMixin, Base):
    """
    A payment towards an invoice.
    Several payments (split tender) may settle one invoice.
    """

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    invoice_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("invoice.id"), nullable=False, index=True
    )
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tip_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(Text)
    received_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="chk_payment_amount_positive"),
        CheckConstraint("tip_cents >= 0", name="chk_payment_tip_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, invoice={self.invoice_id}, mode={self.mode}, amount={self.amount_cents})>"
