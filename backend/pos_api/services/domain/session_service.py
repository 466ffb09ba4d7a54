"""
Table Session Domain Service.

Owns table status and the guest session on it: start, end, merge, unmerge.
Every status change is written to the table history.

Invariants:
- A table has at most one active session. Every decision is taken on the
  table row read with a write lock, so two staff members starting a
  session on the same table serialize and the loser sees TableUnavailableError.
- The session's started_by is written once, at start, and is the actor-lock
  checked by assert_can_mutate before any order mutation.
"""

from sqlalchemy.orm import Session

from pos_shared.config.constants import (
    MANAGEMENT_ROLES,
    SessionStatus,
    TableStatus,
)
from pos_shared.config.logging import table_logger as logger
from pos_shared.infrastructure.db import atomic
from pos_shared.infrastructure.events import RealtimeNotifier
from pos_shared.security.auth import Actor, require_outlet, require_roles
from pos_shared.utils.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    SessionLockViolationError,
    SessionNotFoundError,
    TableNotFoundError,
    TableNotMergeableError,
    TableUnavailableError,
    ValidationError,
)
from pos_api.models import Order, Table, TableHistory, TableMerge, TableSession
from pos_api.models.base import utcnow
from pos_api.repositories import OrderRepository, TableRepository
from .notifications import notify_tables

MAX_HISTORY_LIMIT = 200


class TableSessionService:
    """
    Domain service for table sessions and merges.

    Public methods run in their own transaction and publish after commit.
    Methods documented as "locked" expect the caller to hold the table lock
    inside an open transaction; OrderService and BillingService use them.
    """

    def __init__(self, db: Session, notifier: RealtimeNotifier):
        self._db = db
        self._notifier = notifier
        self._tables = TableRepository(db)
        self._orders = OrderRepository(db)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_table(self, table_id: int, actor: Actor | None = None) -> Table:
        table = self._tables.find_by_id(table_id)
        if table is None or not table.is_active:
            raise TableNotFoundError(table_id)
        if actor is not None:
            require_outlet(actor, table.outlet_id)
        return table

    def list_tables(self, actor: Actor, floor_id: int | None = None) -> list[Table]:
        return list(self._tables.list_for_outlet(actor.outlet_id, floor_id))

    def get_active_session(self, table_id: int) -> TableSession | None:
        return self._tables.active_session(table_id)

    def list_merges(self, primary_table_id: int, actor: Actor | None = None) -> list[TableMerge]:
        """Full merge history of a primary table, open and reverted."""
        self.get_table(primary_table_id, actor)
        return list(self._tables.all_merges(primary_table_id))

    # =========================================================================
    # Actor-lock
    # =========================================================================

    @staticmethod
    def assert_can_mutate(session: TableSession, actor: Actor) -> None:
        """
        Allow the session holder, or a role that may override the lock.

        Raises:
            SessionLockViolationError: any other actor.
        """
        lock = session.lock
        if actor.actor_id == lock.holder or actor.can_override_session:
            return
        raise SessionLockViolationError(session.id, lock.holder, actor.actor_id, role=actor.role)

    def assert_order_mutable(self, order: Order, actor: Actor) -> None:
        """Apply the actor-lock of the order's table session, if it has an open one."""
        if order.table_session_id is None:
            return
        session = self._tables.get_session(order.table_session_id)
        if session is not None and session.is_open:
            self.assert_can_mutate(session, actor)

    # =========================================================================
    # Start / end
    # =========================================================================

    def lock_table(self, table_id: int, actor: Actor) -> Table:
        """Read the table with a write lock. Caller owns the transaction."""
        table = self._tables.get_for_update(table_id)
        if table is None or not table.is_active:
            raise TableNotFoundError(table_id)
        require_outlet(actor, table.outlet_id)
        return table

    def open_session_locked(
        self,
        table: Table,
        actor: Actor,
        guest_count: int = 1,
        guest_name: str | None = None,
        guest_phone: str | None = None,
    ) -> TableSession:
        """Create the session on a locked table and take the actor-lock."""
        if table.status not in TableStatus.STARTABLE:
            raise TableUnavailableError(table.id, table.status)
        if self._tables.active_session(table.id, for_update=True) is not None:
            raise TableUnavailableError(table.id, table.status, reason="active session exists")

        now = utcnow()
        session = TableSession(
            outlet_id=table.outlet_id,
            table_id=table.id,
            guest_count=guest_count,
            guest_name=guest_name,
            guest_phone=guest_phone,
            started_by=actor.actor_id,
            started_by_role=actor.role,
            lock_acquired_at=now,
            started_at=now,
            status=SessionStatus.ACTIVE,
        )
        session.set_created_by(actor.actor_id)
        self._tables.save(session)

        self.change_status_locked(table, TableStatus.OCCUPIED, actor, "session_started", session_id=session.id)
        return session

    def start_session(
        self,
        table_id: int,
        actor: Actor,
        guest_count: int = 1,
        guest_name: str | None = None,
        guest_phone: str | None = None,
    ) -> TableSession:
        """
        Start a guest session on an available or reserved table.

        Raises:
            TableNotFoundError: unknown table.
            TableUnavailableError: table busy, blocked or merged.
        """
        with atomic(self._db):
            table = self.lock_table(table_id, actor)
            session = self.open_session_locked(table, actor, guest_count, guest_name, guest_phone)

        logger.info(
            "Table session started",
            table_id=table.id,
            session_id=session.id,
            started_by=actor.actor_id,
            guest_count=guest_count,
        )
        notify_tables(self._notifier, [table], actor, "session_started")
        return session

    def release_table_locked(self, table: Table, actor: Actor, reason: str = "session_ended") -> list[Table]:
        """
        End the table's active session, undo its merges and free the table.

        Returns every table whose status changed. Caller holds the table lock.
        reason is recorded in the table history.
        """
        session = self._tables.active_session(table.id, for_update=True)
        if session is not None:
            session.status = SessionStatus.COMPLETED
            session.ended_at = utcnow()
            session.ended_by = actor.actor_id

        changed = [table]
        for merge in self._tables.open_merges(table.id):
            changed.append(self._revert_merge(table, merge, actor))

        self.change_status_locked(
            table,
            TableStatus.AVAILABLE,
            actor,
            reason,
            session_id=session.id if session is not None else None,
        )
        return changed

    def end_session(self, table_id: int, actor: Actor) -> TableSession:
        """
        End the active session on a table and release it.

        Orders end their own sessions on payment or cancellation, so a
        session with an order still in progress cannot be ended here.

        Raises:
            SessionNotFoundError: no active session.
            SessionLockViolationError: actor does not hold the session.
            InvalidStateError: a non-terminal order is attached.
        """
        with atomic(self._db):
            table = self.lock_table(table_id, actor)
            session = self._tables.active_session(table.id, for_update=True)
            if session is None:
                raise SessionNotFoundError(table_id)
            self.assert_can_mutate(session, actor)

            live_order = self._orders.live_order_for_session(session.id)
            if live_order is not None:
                raise InvalidStateError(
                    f"Table session {session.id}",
                    f"order {live_order.id} {live_order.status}",
                    ["no open order"],
                    table_id=table_id,
                )

            session.order_id = None
            changed = self.release_table_locked(table, actor)

        logger.info("Table session ended", table_id=table_id, session_id=session.id, ended_by=actor.actor_id)
        notify_tables(self._notifier, changed, actor, "session_ended")
        return session

    # =========================================================================
    # Merge / unmerge
    # =========================================================================

    def merge_tables(self, primary_table_id: int, table_ids: list[int], actor: Actor) -> list[TableMerge]:
        """
        Absorb free tables of the same floor into a primary table.

        One TableMerge row per secondary table; the primary's capacity grows
        by each secondary's capacity.

        Raises:
            TableNotMergeableError: primary or candidate not mergeable,
                candidate on another floor, or the primary itself listed.
            TableUnavailableError: candidate not free.
        """
        candidate_ids = list(dict.fromkeys(table_ids))
        if primary_table_id in candidate_ids:
            raise TableNotMergeableError(primary_table_id, "a table cannot be merged into itself")

        with atomic(self._db):
            locked = {t.id: t for t in self._tables.find_by_ids_for_update([primary_table_id, *candidate_ids])}
            primary = locked.get(primary_table_id)
            if primary is None or not primary.is_active:
                raise TableNotFoundError(primary_table_id)
            require_outlet(actor, primary.outlet_id)
            if not primary.is_mergeable:
                raise TableNotMergeableError(primary.id, "primary table is not mergeable")
            if primary.status == TableStatus.MERGED:
                raise TableNotMergeableError(primary.id, "table is already merged into another table")

            session = self._tables.active_session(primary.id)
            if session is not None:
                self.assert_can_mutate(session, actor)

            merges = []
            for table_id in candidate_ids:
                table = locked.get(table_id)
                if table is None or not table.is_active:
                    raise TableNotFoundError(table_id)
                if table.outlet_id != primary.outlet_id or table.floor_id != primary.floor_id:
                    raise TableNotMergeableError(table.id, "tables are on different floors")
                if not table.is_mergeable:
                    raise TableNotMergeableError(table.id, "table is not mergeable")
                if table.status not in TableStatus.FREE:
                    raise TableUnavailableError(table.id, table.status)

                merge = TableMerge(
                    primary_table_id=primary.id,
                    merged_table_id=table.id,
                    table_session_id=session.id if session else None,
                    added_capacity=table.capacity,
                    merged_by=actor.actor_id,
                    merged_at=utcnow(),
                )
                merge.set_created_by(actor.actor_id)
                self._tables.save(merge)
                merges.append(merge)

                self.change_status_locked(table, TableStatus.MERGED, actor, "tables_merged", primary_table_id=primary.id)
                primary.capacity += table.capacity

            primary.set_updated_by(actor.actor_id)

        logger.info(
            "Tables merged",
            primary_table_id=primary.id,
            merged_table_ids=candidate_ids,
            capacity=primary.capacity,
        )
        notify_tables(self._notifier, [primary, *(locked[i] for i in candidate_ids)], actor, "tables_merged")
        return merges

    def _revert_merge(self, primary: Table, merge: TableMerge, actor: Actor) -> Table:
        secondary = self._tables.get_for_update(merge.merged_table_id)
        merge.unmerged_at = utcnow()
        merge.unmerged_by = actor.actor_id
        self.change_status_locked(secondary, TableStatus.AVAILABLE, actor, "tables_unmerged", primary_table_id=primary.id)
        primary.capacity = max(1, primary.capacity - merge.added_capacity)
        return secondary

    def unmerge_tables(
        self,
        table_id: int,
        actor: Actor,
        merged_table_ids: list[int] | None = None,
    ) -> list[TableMerge]:
        """
        Revert merges of a primary table.

        table_id may also be a secondary table; its primary is resolved.
        With merged_table_ids only those merges are reverted.

        Raises:
            ValidationError: nothing merged, or an id is not currently merged.
        """
        with atomic(self._db):
            table = self.lock_table(table_id, actor)
            primary = table
            open_merges = list(self._tables.open_merges(table.id))
            if not open_merges:
                as_secondary = self._tables.open_merge_of_secondary(table.id)
                if as_secondary is not None:
                    primary = self.lock_table(as_secondary.primary_table_id, actor)
                    open_merges = list(self._tables.open_merges(primary.id))
            if not open_merges:
                raise ValidationError(f"Table {table_id} has no merged tables", table_id=table_id)

            session = self._tables.active_session(primary.id)
            if session is not None:
                self.assert_can_mutate(session, actor)

            if merged_table_ids is not None:
                wanted = set(merged_table_ids)
                unknown = wanted - {m.merged_table_id for m in open_merges}
                if unknown:
                    raise ValidationError(
                        f"Tables {sorted(unknown)} are not merged into table {primary.id}",
                        table_id=primary.id,
                    )
                open_merges = [m for m in open_merges if m.merged_table_id in wanted]

            changed = [primary]
            for merge in open_merges:
                changed.append(self._revert_merge(primary, merge, actor))
            primary.set_updated_by(actor.actor_id)

        logger.info(
            "Tables unmerged",
            primary_table_id=primary.id,
            unmerged_table_ids=[m.merged_table_id for m in open_merges],
            capacity=primary.capacity,
        )
        notify_tables(self._notifier, changed, actor, "tables_unmerged")
        return open_merges

    # =========================================================================
    # Status history
    # =========================================================================

    def change_status_locked(self, table: Table, status: str, actor: Actor, event_type: str, **event_data) -> None:
        """Set a locked table's status and log the change. Unchanged status logs nothing."""
        if table.status == status:
            return
        self._db.add(
            TableHistory(
                outlet_id=table.outlet_id,
                table_id=table.id,
                event_type=event_type,
                from_status=table.status,
                to_status=status,
                event_data=event_data,
                created_by=actor.actor_id,
            )
        )
        table.status = status
        table.set_updated_by(actor.actor_id)

    def get_history(self, table_id: int, actor: Actor, limit: int = 50) -> list[TableHistory]:
        """Latest status changes of a table, newest first."""
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}", field="limit", value=limit)
        self.get_table(table_id, actor)
        return list(self._tables.history(table_id, limit))

    # =========================================================================
    # Manual status (reserve / block / unblock)
    # =========================================================================

    def set_table_status(self, table_id: int, status: str, actor: Actor) -> Table:
        """
        Set an idle table to available, reserved, blocked or cleaning.

        Raises:
            InsufficientRoleError: caller is not a manager.
            InvalidTransitionError: table in use or merged, or target not manual.
        """
        require_roles(actor, MANAGEMENT_ROLES)
        with atomic(self._db):
            table = self.lock_table(table_id, actor)
            if status not in TableStatus.MANUAL:
                raise InvalidTransitionError(f"Table {table_id}", table.status, status)
            if table.status in TableStatus.IN_USE or table.status == TableStatus.MERGED:
                raise InvalidTransitionError(f"Table {table_id}", table.status, status)
            if self._tables.active_session(table.id) is not None:
                raise InvalidTransitionError(f"Table {table_id}", table.status, status)

            previous = table.status
            self.change_status_locked(table, status, actor, "status_changed")

        logger.info("Table status changed", table_id=table_id, from_status=previous, to_status=status)
        notify_tables(self._notifier, [table], actor, "status_changed")
        return table
