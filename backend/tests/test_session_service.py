"""
Tests for TableSessionService: sessions, actor-lock, merges and manual status.
"""

import pytest

from pos_shared.config.constants import SessionStatus, TableStatus
from pos_shared.utils.exceptions import (
    InsufficientRoleError,
    InvalidStateError,
    InvalidTransitionError,
    OutletAccessError,
    SessionLockViolationError,
    SessionNotFoundError,
    TableNotMergeableError,
    TableUnavailableError,
    ValidationError,
)
from pos_api.services.domain import NewItem


class TestStartSession:

    def test_start_session_occupies_table(self, session_service, seed_tables, captain, publisher):
        table = seed_tables["T1"]

        session = session_service.start_session(table.id, captain, guest_count=3, guest_name="Rao")

        assert session.status == SessionStatus.ACTIVE
        assert session.started_by == captain.actor_id
        assert session.started_by_role == captain.role
        assert session.lock.holder == captain.actor_id
        assert session_service.get_table(table.id).status == TableStatus.OCCUPIED

        (channels, event), = publisher.published
        assert event.type == "table:update"
        assert channels == ["outlet:1", "floor:1:1"]
        assert event.entity["status"] == TableStatus.OCCUPIED
        assert event.actor == {"id": captain.actor_id, "role": captain.role}

    def test_second_start_loses(self, session_service, seed_tables, captain, other_captain):
        table = seed_tables["T1"]
        session_service.start_session(table.id, captain)

        with pytest.raises(TableUnavailableError):
            session_service.start_session(table.id, other_captain)

        session = session_service.get_active_session(table.id)
        assert session.started_by == captain.actor_id

    def test_reserved_table_can_start(self, db_session, session_service, seed_tables, captain):
        table = seed_tables["T2"]
        table.status = TableStatus.RESERVED
        db_session.commit()

        session_service.start_session(table.id, captain)

        assert session_service.get_table(table.id).status == TableStatus.OCCUPIED

    @pytest.mark.parametrize("status", [TableStatus.BLOCKED, TableStatus.MERGED, TableStatus.BILLING])
    def test_unavailable_statuses(self, db_session, session_service, seed_tables, captain, status):
        table = seed_tables["T2"]
        table.status = status
        db_session.commit()

        with pytest.raises(TableUnavailableError):
            session_service.start_session(table.id, captain)

    def test_other_outlet_is_rejected(self, session_service, seed_tables, foreign_captain):
        with pytest.raises(OutletAccessError):
            session_service.start_session(seed_tables["T1"].id, foreign_captain)


class TestActorLock:

    def test_holder_and_override_roles(self, session_service, seed_tables, captain, other_captain, cashier, manager):
        session = session_service.start_session(seed_tables["T1"].id, captain)

        session_service.assert_can_mutate(session, captain)
        session_service.assert_can_mutate(session, cashier)
        session_service.assert_can_mutate(session, manager)
        with pytest.raises(SessionLockViolationError):
            session_service.assert_can_mutate(session, other_captain)

    def test_order_mutation_by_other_captain_is_rejected(
        self, order_service, seed_tables, seed_menu, captain, other_captain
    ):
        order = order_service.create_order(captain, table_id=seed_tables["T1"].id)

        with pytest.raises(SessionLockViolationError):
            order_service.add_items(order.id, [NewItem(item_id=seed_menu["chai"].id, quantity=1)], other_captain)


class TestEndSession:

    def test_end_session_frees_table(self, session_service, seed_tables, captain):
        table = seed_tables["T1"]
        session_service.start_session(table.id, captain)

        session = session_service.end_session(table.id, captain)

        assert session.status == SessionStatus.COMPLETED
        assert session.ended_by == captain.actor_id
        assert session_service.get_active_session(table.id) is None
        assert session_service.get_table(table.id).status == TableStatus.AVAILABLE

    def test_no_session(self, session_service, seed_tables, captain):
        with pytest.raises(SessionNotFoundError):
            session_service.end_session(seed_tables["T1"].id, captain)

    def test_only_holder_may_end(self, session_service, seed_tables, captain, other_captain):
        session_service.start_session(seed_tables["T1"].id, captain)

        with pytest.raises(SessionLockViolationError):
            session_service.end_session(seed_tables["T1"].id, other_captain)

    def test_open_order_blocks_end(self, session_service, order_service, seed_tables, captain):
        order_service.create_order(captain, table_id=seed_tables["T1"].id)

        with pytest.raises(InvalidStateError):
            session_service.end_session(seed_tables["T1"].id, captain)


class TestMergeTables:

    def test_merge_adds_capacity(self, session_service, seed_tables, captain):
        t1, t2, t3 = seed_tables["T1"], seed_tables["T2"], seed_tables["T3"]

        merges = session_service.merge_tables(t1.id, [t2.id, t3.id, t2.id], captain)

        assert [m.merged_table_id for m in merges] == [t2.id, t3.id]
        assert session_service.get_table(t1.id).capacity == 10
        assert session_service.get_table(t2.id).status == TableStatus.MERGED
        assert session_service.get_table(t3.id).status == TableStatus.MERGED

    def test_merge_records_primary_session(self, session_service, seed_tables, captain):
        session = session_service.start_session(seed_tables["T1"].id, captain)

        (merge,) = session_service.merge_tables(seed_tables["T1"].id, [seed_tables["T2"].id], captain)

        assert merge.table_session_id == session.id

    def test_rejections(self, session_service, seed_tables, captain, other_captain):
        t1 = seed_tables["T1"]
        with pytest.raises(TableNotMergeableError):
            session_service.merge_tables(t1.id, [t1.id], captain)
        with pytest.raises(TableNotMergeableError):
            session_service.merge_tables(t1.id, [seed_tables["T4"].id], captain)
        with pytest.raises(TableNotMergeableError):
            session_service.merge_tables(t1.id, [seed_tables["T5"].id], captain)

        session_service.start_session(seed_tables["T3"].id, other_captain)
        with pytest.raises(TableUnavailableError):
            session_service.merge_tables(t1.id, [seed_tables["T3"].id], captain)

    def test_merge_into_held_table_needs_holder(self, session_service, seed_tables, captain, other_captain):
        session_service.start_session(seed_tables["T1"].id, captain)

        with pytest.raises(SessionLockViolationError):
            session_service.merge_tables(seed_tables["T1"].id, [seed_tables["T2"].id], other_captain)


class TestUnmergeTables:

    def test_partial_unmerge(self, session_service, seed_tables, captain):
        t1, t2, t3 = seed_tables["T1"], seed_tables["T2"], seed_tables["T3"]
        session_service.merge_tables(t1.id, [t2.id, t3.id], captain)

        reverted = session_service.unmerge_tables(t1.id, captain, merged_table_ids=[t2.id])

        assert [m.merged_table_id for m in reverted] == [t2.id]
        assert reverted[0].unmerged_by == captain.actor_id
        assert session_service.get_table(t1.id).capacity == 8
        assert session_service.get_table(t2.id).status == TableStatus.AVAILABLE
        assert session_service.get_table(t3.id).status == TableStatus.MERGED

    def test_unmerge_through_secondary(self, session_service, seed_tables, captain):
        t1, t2 = seed_tables["T1"], seed_tables["T2"]
        session_service.merge_tables(t1.id, [t2.id], captain)

        session_service.unmerge_tables(t2.id, captain)

        assert session_service.get_table(t1.id).capacity == 4
        assert session_service.get_table(t2.id).status == TableStatus.AVAILABLE
        history = session_service.list_merges(t1.id)
        assert len(history) == 1
        assert history[0].unmerged_at is not None

    def test_nothing_to_unmerge(self, session_service, seed_tables, captain):
        with pytest.raises(ValidationError):
            session_service.unmerge_tables(seed_tables["T1"].id, captain)

    def test_unknown_merged_id(self, session_service, seed_tables, captain):
        session_service.merge_tables(seed_tables["T1"].id, [seed_tables["T2"].id], captain)

        with pytest.raises(ValidationError):
            session_service.unmerge_tables(seed_tables["T1"].id, captain, merged_table_ids=[seed_tables["T3"].id])


class TestManualStatus:

    def test_manager_blocks_and_frees(self, session_service, seed_tables, manager):
        table = seed_tables["T2"]

        assert session_service.set_table_status(table.id, TableStatus.BLOCKED, manager).status == TableStatus.BLOCKED
        assert session_service.set_table_status(table.id, TableStatus.AVAILABLE, manager).status == TableStatus.AVAILABLE

    def test_requires_management_role(self, session_service, seed_tables, captain):
        with pytest.raises(InsufficientRoleError):
            session_service.set_table_status(seed_tables["T2"].id, TableStatus.BLOCKED, captain)

    def test_table_in_use(self, session_service, seed_tables, captain, manager):
        session_service.start_session(seed_tables["T1"].id, captain)

        with pytest.raises(InvalidTransitionError):
            session_service.set_table_status(seed_tables["T1"].id, TableStatus.BLOCKED, manager)

    def test_non_manual_target(self, session_service, seed_tables, manager):
        with pytest.raises(InvalidTransitionError):
            session_service.set_table_status(seed_tables["T2"].id, TableStatus.RUNNING, manager)


class TestTableHistory:

    def test_session_start_and_end(self, session_service, seed_tables, captain):
        table = seed_tables["T1"]
        session = session_service.start_session(table.id, captain)
        session_service.end_session(table.id, captain)

        history = session_service.get_history(table.id, captain)

        assert [(h.event_type, h.from_status, h.to_status) for h in history] == [
            ("session_ended", TableStatus.OCCUPIED, TableStatus.AVAILABLE),
            ("session_started", TableStatus.AVAILABLE, TableStatus.OCCUPIED),
        ]
        assert history[1].event_data == {"session_id": session.id}
        assert {h.created_by for h in history} == {captain.actor_id}

    def test_merge_unmerge_and_manual_status(self, session_service, seed_tables, captain, manager):
        t1, t2 = seed_tables["T1"], seed_tables["T2"]
        session_service.merge_tables(t1.id, [t2.id], captain)
        session_service.unmerge_tables(t1.id, captain)
        session_service.set_table_status(t2.id, TableStatus.BLOCKED, manager)

        history = session_service.get_history(t2.id, manager)

        assert [h.event_type for h in history] == ["status_changed", "tables_unmerged", "tables_merged"]
        assert history[2].event_data == {"primary_table_id": t1.id}
        assert history[0].created_by == manager.actor_id

    def test_unchanged_status_is_not_logged(self, session_service, seed_tables, manager):
        session_service.set_table_status(seed_tables["T2"].id, TableStatus.AVAILABLE, manager)

        assert session_service.get_history(seed_tables["T2"].id, manager) == []

    def test_order_lifecycle_is_logged(self, session_service, order_service, seed_tables, seed_menu, captain):
        order = order_service.create_order(
            captain,
            table_id=seed_tables["T1"].id,
            items=[NewItem(item_id=seed_menu["chai"].id, quantity=1)],
        )
        order_service.send_kot(order.id, captain)
        order_service.cancel_order(order.id, "guest left", captain)

        history = session_service.get_history(seed_tables["T1"].id, captain)

        assert [(h.event_type, h.to_status) for h in history] == [
            ("order_cancelled", TableStatus.AVAILABLE),
            ("kot_sent", TableStatus.RUNNING),
            ("session_started", TableStatus.OCCUPIED),
        ]
        assert history[1].event_data == {"order_id": order.id}

    def test_limit(self, session_service, seed_tables, captain):
        table = seed_tables["T1"]
        session_service.start_session(table.id, captain)
        session_service.end_session(table.id, captain)

        assert [h.event_type for h in session_service.get_history(table.id, captain, limit=1)] == ["session_ended"]
        with pytest.raises(ValidationError):
            session_service.get_history(table.id, captain, limit=0)

    def test_other_outlet_is_rejected(self, session_service, seed_tables, foreign_captain):
        with pytest.raises(OutletAccessError):
            session_service.get_history(seed_tables["T1"].id, foreign_captain)
