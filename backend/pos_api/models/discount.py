"""
Discount Models: DiscountCode (master definition), OrderDiscount.
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

from .base import AuditMixin, Base, IdType

if TYPE_CHECKING:
    from .order import Order


class DiscountCode(AuditMixin, Base):
    """
    A named promotional code.

    value is basis points for percentage codes and cents for flat codes.
    """

    __tablename__ = "discount_code"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    min_order_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_discount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("uq_discount_code_outlet_code", "outlet_id", "code", unique=True),
        CheckConstraint("value >= 0", name="chk_discount_code_value_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<DiscountCode(id={self.id}, code={self.code}, type={self.discount_type}, value={self.value})>"


class OrderDiscount(AuditMixin, Base):
    """
    A discount attached to an order: manual flat/percentage or a code.

    discount_cents holds the amount computed at the last billing.
    Rows are frozen once is_billed is set. Removed discounts are
    soft-deleted (is_active=False).
    """

    __tablename__ = "order_discount"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Percentage: basis points. Flat: cents. Code: the code's own value.
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    # Rate type of a code discount (percentage or flat)
    code_type: Mapped[Optional[str]] = mapped_column(String(20))
    discount_code: Mapped[Optional[str]] = mapped_column(String(40))
    discount_code_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("discount_code.id")
    )
    min_order_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_discount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    applied_on: Mapped[str] = mapped_column(String(20), default="subtotal", nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    is_superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_billed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="discounts")

    __table_args__ = (
        CheckConstraint("discount_cents >= 0", name="chk_order_discount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<OrderDiscount(id={self.id}, order={self.order_id}, type={self.discount_type}, cents={self.discount_cents})>"
