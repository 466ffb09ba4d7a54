"""
Order Models: Order, OrderItem, OrderTransferLog.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
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

from pos_shared.config.constants import OrderStatus, OrderItemStatus, OrderType
from .base import AuditMixin, Base, IdType, utcnow

if TYPE_CHECKING:
    from .table import TableSession
    from .kitchen import KotTicket
    from .discount import OrderDiscount
    from .billing import Invoice


class Order(AuditMixin, Base):
    """
    A customer order. Dine-in orders belong to a table session.

    The *_cents totals are a cache of the latest invoice computation.
    """

    __tablename__ = "customer_order"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(30), index=True)
    table_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), index=True
    )
    table_session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("table_session.id"), index=True
    )
    floor_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    order_type: Mapped[str] = mapped_column(String(20), default=OrderType.DINE_IN, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.CONFIRMED, nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30))
    is_interstate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_charge_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    round_off_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    session: Mapped[Optional["TableSession"]] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.id"
    )
    tickets: Mapped[list["KotTicket"]] = relationship(
        back_populates="order", order_by="KotTicket.id"
    )
    discounts: Mapped[list["OrderDiscount"]] = relationship(
        back_populates="order", order_by="OrderDiscount.id"
    )
    invoices: Mapped[list["Invoice"]] = relationship(
        back_populates="order", order_by="Invoice.id"
    )

    __table_args__ = (
        Index("ix_order_outlet_status", "outlet_id", "status"),
    )

    @property
    def live_items(self) -> list["OrderItem"]:
        """Items that still count towards totals."""
        return [item for item in self.items if item.status != OrderItemStatus.CANCELLED]

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, type={self.order_type}, status={self.status})>"


class OrderItem(AuditMixin, Base):
    """
    One line of an order. Price and tax components are snapshotted from
    the catalog when the item is added. Cancelled lines stay for audit.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    station: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_group_code: Mapped[Optional[str]] = mapped_column(String(30))
    # [{"code": "CGST", "name": "Central GST", "rate_bps": 250}, ...]
    tax_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=OrderItemStatus.PENDING, nullable=False, index=True)
    kot_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("kot_ticket.id"), index=True
    )
    cancelled_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order: Mapped["Order"] = relationship(back_populates="items")
    ticket: Mapped[Optional["KotTicket"]] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="chk_order_item_quantity_non_negative"),
        CheckConstraint("unit_price_cents >= 0", name="chk_order_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order={self.order_id}, qty={self.quantity}, status={self.status})>"


class OrderTransferLog(Base):
    """A dine-in order moved from one table to another."""

    __tablename__ = "order_transfer_log"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    table_session_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    from_table_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("restaurant_table.id"), nullable=False)
    to_table_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("restaurant_table.id"), nullable=False)
    transferred_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transferred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("from_table_id <> to_table_id", name="chk_transfer_distinct_tables"),
    )
