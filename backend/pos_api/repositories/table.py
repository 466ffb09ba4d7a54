"""
Table Repository - tables, sessions, merges and status history.
"""

from typing import Sequence

from sqlalchemy import select

from pos_shared.config.constants import SessionStatus
from pos_api.models import Table, TableHistory, TableMerge, TableSession
from .base import BaseRepository


class TableRepository(BaseRepository[Table]):

    @property
    def model(self) -> type[Table]:
        return Table

    def list_for_outlet(self, outlet_id: int, floor_id: int | None = None) -> Sequence[Table]:
        query = select(Table).where(Table.outlet_id == outlet_id, Table.is_active.is_(True))
        if floor_id is not None:
            query = query.where(Table.floor_id == floor_id)
        return self._db.execute(query.order_by(Table.id)).scalars().all()

    def active_session(self, table_id: int, for_update: bool = False) -> TableSession | None:
        query = select(TableSession).where(
            TableSession.table_id == table_id,
            TableSession.status == SessionStatus.ACTIVE,
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._db.scalar(query)

    def get_session(self, session_id: int) -> TableSession | None:
        return self._db.get(TableSession, session_id)

    def open_merges(self, primary_table_id: int) -> Sequence[TableMerge]:
        query = (
            select(TableMerge)
            .where(
                TableMerge.primary_table_id == primary_table_id,
                TableMerge.unmerged_at.is_(None),
            )
            .order_by(TableMerge.id)
        )
        return self._db.execute(query).scalars().all()

    def all_merges(self, primary_table_id: int) -> Sequence[TableMerge]:
        query = (
            select(TableMerge)
            .where(TableMerge.primary_table_id == primary_table_id)
            .order_by(TableMerge.id)
        )
        return self._db.execute(query).scalars().all()

    def open_merge_of_secondary(self, merged_table_id: int) -> TableMerge | None:
        """The open merge that absorbed this table, if any."""
        query = select(TableMerge).where(
            TableMerge.merged_table_id == merged_table_id,
            TableMerge.unmerged_at.is_(None),
        )
        return self._db.scalar(query)

    def history(self, table_id: int, limit: int = 50) -> Sequence[TableHistory]:
        """Newest status changes first."""
        query = (
            select(TableHistory)
            .where(TableHistory.table_id == table_id)
            .order_by(TableHistory.id.desc())
            .limit(limit)
        )
        return self._db.execute(query).scalars().all()
