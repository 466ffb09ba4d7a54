"""
Table Models: Table, TableSession, TableMerge, TableHistory.
"""

from __future__ import annotations

from dataclasses import dataclass
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
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_shared.config.constants import TableStatus, SessionStatus
from .base import AuditMixin, Base, IdType, utcnow

if TYPE_CHECKING:
    from .order import Order


@dataclass(frozen=True)
class SessionLock:
    """The staff member holding a table session, and since when."""

    holder: int
    acquired_at: datetime


class Table(AuditMixin, Base):
    """
    A physical table in an outlet.
    Status is the operational state shown on the floor map.
    """

    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    floor_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    section_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    table_number: Mapped[str] = mapped_column(String(20), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    is_mergeable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_splittable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TableStatus.AVAILABLE, nullable=False, index=True
    )

    sessions: Mapped[list["TableSession"]] = relationship(back_populates="table")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="chk_table_capacity_positive"),
        Index("uq_table_outlet_number", "outlet_id", "table_number", unique=True),
        Index("ix_table_outlet_floor", "outlet_id", "floor_id"),
    )

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, number={self.table_number}, status={self.status})>"


class TableSession(AuditMixin, Base):
    """
    A guest session on a table.

    started_by is written once when the session starts and never changes:
    it is the actor-lock consulted before every order mutation.
    """

    __tablename__ = "table_session"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    guest_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    guest_name: Mapped[Optional[str]] = mapped_column(Text)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(30))
    started_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    started_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    lock_acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.ACTIVE, nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ended_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    order_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)

    table: Mapped["Table"] = relationship(back_populates="sessions")
    merges: Mapped[list["TableMerge"]] = relationship(back_populates="session")
    orders: Mapped[list["Order"]] = relationship(back_populates="session")

    __table_args__ = (
        # At most one active session per table
        Index(
            "uq_table_session_active",
            "table_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        CheckConstraint("guest_count > 0", name="chk_session_guest_count_positive"),
    )

    @property
    def lock(self) -> SessionLock:
        return SessionLock(holder=self.started_by, acquired_at=self.lock_acquired_at)

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<TableSession(id={self.id}, table={self.table_id}, status={self.status}, by={self.started_by})>"


class TableMerge(AuditMixin, Base):
    """
    One secondary table absorbed into a primary table's session.
    Each row is reverted on its own, so merges can be partially undone.
    """

    __tablename__ = "table_merge"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    primary_table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    merged_table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    table_session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("table_session.id"), index=True
    )
    added_capacity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    merged_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    merged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    unmerged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    unmerged_by: Mapped[Optional[int]] = mapped_column(BigInteger)

    session: Mapped[Optional["TableSession"]] = relationship(back_populates="merges")

    __table_args__ = (
        CheckConstraint("primary_table_id <> merged_table_id", name="chk_merge_distinct_tables"),
    )

    @property
    def is_open(self) -> bool:
        return self.unmerged_at is None

    def __repr__(self) -> str:
        return f"<TableMerge(id={self.id}, primary={self.primary_table_id}, merged={self.merged_table_id})>"


class TableHistory(Base):
    """
    Append-only log of a table's status changes.

    event_type says what caused the change (session_started, tables_merged,
    transferred_in...); event_data carries its context.
    """

    __tablename__ = "table_history"

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    from_status: Mapped[Optional[str]] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<TableHistory(table={self.table_id}, {self.from_status}->{self.to_status}, {self.event_type})>"
