"""
Catalog Models: TaxGroup, TaxGroupComponent, MenuItem.

Read model for the catalog collaborator. Orders snapshot price, station
and tax components from here when items are added.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, IdType


class TaxGroup(AuditMixin, Base):
    """A named set of tax components, e.g. GST5 = CGST 2.5 % + SGST 2.5 %."""

    __tablename__ = "tax_group"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    components: Mapped[list["TaxGroupComponent"]] = relationship(
        back_populates="group", order_by="TaxGroupComponent.id"
    )

    __table_args__ = (
        Index("uq_tax_group_outlet_code", "outlet_id", "code", unique=True),
    )


class TaxGroupComponent(AuditMixin, Base):
    __tablename__ = "tax_group_component"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    tax_group_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tax_group.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    rate_bps: Mapped[int] = mapped_column(Integer, nullable=False)

    group: Mapped["TaxGroup"] = relationship(back_populates="components")

    __table_args__ = (
        CheckConstraint("rate_bps >= 0", name="chk_tax_component_rate_non_negative"),
    )


class MenuItem(AuditMixin, Base):
    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    station: Mapped[Optional[str]] = mapped_column(String(50))
    tax_group_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("tax_group.id")
    )

    tax_group: Mapped[Optional["TaxGroup"]] = relationship()

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="chk_menu_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name={self.name}, price={self.price_cents})>"
