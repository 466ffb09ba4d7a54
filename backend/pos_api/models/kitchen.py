"""
Kitchen Models: KotTicket.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_shared.config.constants import KotStatus
from .base import AuditMixin, Base, IdType

if TYPE_CHECKING:
    from .order import Order, OrderItem


class KotTicket(AuditMixin, Base):
    """
    Kitchen order ticket: the items of one order routed to one station.
    """

    __tablename__ = "kot_ticket"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    kot_number: Mapped[Optional[str]] = mapped_column(String(30))
    station: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=KotStatus.PENDING, nullable=False, index=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    preparing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order: Mapped["Order"] = relationship(back_populates="tickets")
    items: Mapped[list["OrderItem"]] = relationship(back_populates="ticket", order_by="OrderItem.id")

    __table_args__ = (
        Index("ix_kot_outlet_station_status", "outlet_id", "station", "status"),
    )

    def __repr__(self) -> str:
        return f"<KotTicket(id={self.id}, order={self.order_id}, station={self.station}, status={self.status})>"
