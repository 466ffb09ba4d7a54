"""
Tests for OrderService: order and kitchen ticket lifecycle.
"""

import pytest

from pos_shared.config.constants import (
    KotStatus,
    OrderItemStatus,
    OrderStatus,
    OrderType,
    SessionStatus,
    TableStatus,
)
from pos_shared.utils.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    MenuItemNotFoundError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    SessionLockViolationError,
    TableNotFoundError,
    TableUnavailableError,
    ValidationError,
)
from pos_api.models import TableSession
from pos_api.services.domain import NewItem
from tests.conftest import serve_all


@pytest.fixture
def dine_in(order_service, seed_tables, seed_menu, captain):
    """Confirmed dine-in order on T1 with paneer (kitchen) and two chai (bar)."""
    return order_service.create_order(
        captain,
        table_id=seed_tables["T1"].id,
        customer_name="Rao",
        items=[
            NewItem(item_id=seed_menu["paneer"].id, quantity=1),
            NewItem(item_id=seed_menu["chai"].id, quantity=2, notes="less sugar"),
        ],
    )


class TestCreateOrder:

    def test_dine_in_bootstraps_session(self, dine_in, order_service, seed_tables, captain, publisher):
        session = order_service.sessions.get_active_session(seed_tables["T1"].id)

        assert dine_in.status == OrderStatus.CONFIRMED
        assert dine_in.order_number == f"ORD-{dine_in.id:06d}"
        assert dine_in.table_session_id == session.id
        assert session.order_id == dine_in.id
        assert session.started_by == captain.actor_id
        assert order_service.sessions.get_table(seed_tables["T1"].id).status == TableStatus.OCCUPIED
        assert [e.type for e in publisher.events()] == ["order:update", "table:update"]

    def test_items_snapshot_catalog(self, dine_in, seed_menu):
        paneer, chai = dine_in.items

        assert paneer.item_name == "Paneer Tikka"
        assert paneer.station == "kitchen"
        assert paneer.status == OrderItemStatus.PENDING
        assert paneer.tax_group_code == "GST5"
        assert [t["rate_bps"] for t in paneer.tax_details] == [250, 250]
        assert chai.total_price_cents == 2 * 9900
        assert chai.notes == "less sugar"

    def test_joins_existing_session_of_holder(self, order_service, session_service, seed_tables, captain):
        session = session_service.start_session(seed_tables["T1"].id, captain)

        order = order_service.create_order(captain, table_id=seed_tables["T1"].id)

        assert order.table_session_id == session.id

    def test_existing_session_of_someone_else(self, order_service, session_service, seed_tables, captain, other_captain):
        session_service.start_session(seed_tables["T1"].id, captain)

        with pytest.raises(SessionLockViolationError):
            order_service.create_order(other_captain, table_id=seed_tables["T1"].id)

    def test_table_with_open_order(self, dine_in, order_service, seed_tables, cashier):
        with pytest.raises(TableUnavailableError):
            order_service.create_order(cashier, table_id=seed_tables["T1"].id)

    def test_blocked_table(self, db_session, order_service, seed_tables, captain):
        seed_tables["T2"].status = TableStatus.BLOCKED
        db_session.commit()

        with pytest.raises(TableUnavailableError):
            order_service.create_order(captain, table_id=seed_tables["T2"].id)

    def test_dine_in_needs_table(self, order_service, captain):
        with pytest.raises(ValidationError):
            order_service.create_order(captain, order_type=OrderType.DINE_IN)

    def test_takeaway_has_no_session(self, order_service, seed_menu, captain):
        order = order_service.create_order(
            captain,
            order_type=OrderType.TAKEAWAY,
            items=[NewItem(item_id=seed_menu["chai"].id, quantity=1)],
        )

        assert order.table_id is None
        assert order.table_session_id is None

    def test_unknown_menu_item_rolls_back(self, order_service, session_service, seed_tables, seed_menu, captain):
        with pytest.raises(MenuItemNotFoundError):
            order_service.create_order(
                captain,
                table_id=seed_tables["T1"].id,
                items=[NewItem(item_id=9999, quantity=1)],
            )

        assert session_service.get_active_session(seed_tables["T1"].id) is None
        assert session_service.get_table(seed_tables["T1"].id).status == TableStatus.AVAILABLE


class TestItems:

    def test_add_items(self, dine_in, order_service, seed_menu, captain):
        (water,) = order_service.add_items(dine_in.id, [NewItem(item_id=seed_menu["water"].id, quantity=3)], captain)

        assert water.total_price_cents == 6000
        assert water.tax_details == []
        assert len(order_service.get_order(dine_in.id, captain).items) == 3

    def test_partial_cancel_reduces_quantity(self, dine_in, order_service, captain):
        chai = dine_in.items[1]

        item = order_service.cancel_item(dine_in.id, chai.id, captain, reason="spilled", quantity=1)

        assert item.status == OrderItemStatus.PENDING
        assert item.quantity == 1
        assert item.cancelled_quantity == 1
        assert item.total_price_cents == 9900

    def test_cancel_whole_line(self, dine_in, order_service, captain):
        paneer = dine_in.items[0]

        item = order_service.cancel_item(dine_in.id, paneer.id, captain, reason="out of stock")

        assert item.status == OrderItemStatus.CANCELLED
        assert item.cancelled_by == captain.actor_id
        with pytest.raises(InvalidTransitionError):
            order_service.cancel_item(dine_in.id, paneer.id, captain, reason="again")

    def test_cancel_more_than_ordered(self, dine_in, order_service, captain):
        with pytest.raises(ValidationError):
            order_service.cancel_item(dine_in.id, dine_in.items[1].id, captain, reason="x", quantity=5)

    def test_cancelling_last_item_keeps_order(self, dine_in, order_service, captain):
        for item in dine_in.items:
            order_service.cancel_item(dine_in.id, item.id, captain, reason="left")

        order = order_service.get_order(dine_in.id, captain)
        assert order.status == OrderStatus.CONFIRMED
        assert order.live_items == []


class TestUpdateItemQuantity:

    def test_pending_line(self, dine_in, order_service, captain, publisher):
        chai = dine_in.items[1]
        publisher.clear()

        item = order_service.update_item_quantity(dine_in.id, chai.id, 4, captain)

        assert (item.quantity, item.total_price_cents) == (4, 4 * 9900)
        (event,) = publisher.events("order:update")
        assert event.entity["event"] == "item_modified"

    def test_sent_line_must_be_cancelled_instead(self, dine_in, order_service, captain):
        order_service.send_kot(dine_in.id, captain)
        chai = dine_in.items[1]

        with pytest.raises(InvalidStateError):
            order_service.update_item_quantity(dine_in.id, chai.id, 1, captain)

        assert order_service.get_order(dine_in.id, captain).items[1].quantity == 2

    def test_quantity_must_be_positive(self, dine_in, order_service, captain):
        with pytest.raises(ValidationError):
            order_service.update_item_quantity(dine_in.id, dine_in.items[0].id, 0, captain)

    def test_unknown_line(self, dine_in, order_service, captain):
        with pytest.raises(OrderItemNotFoundError):
            order_service.update_item_quantity(dine_in.id, 404, 1, captain)

    def test_session_lock(self, dine_in, order_service, other_captain):
        with pytest.raises(SessionLockViolationError):
            order_service.update_item_quantity(dine_in.id, dine_in.items[0].id, 3, other_captain)


class TestKitchenFlow:

    def test_send_kot_groups_by_station(self, dine_in, order_service, seed_tables, captain, publisher):
        publisher.clear()

        tickets = order_service.send_kot(dine_in.id, captain)

        assert [t.station for t in tickets] == ["kitchen", "bar"]
        assert all(t.status == KotStatus.PENDING for t in tickets)
        assert tickets[0].kot_number == f"KOT-{tickets[0].id:06d}"
        order = order_service.get_order(dine_in.id, captain)
        assert order.status == OrderStatus.PREPARING
        assert all(i.status == OrderItemStatus.SENT for i in order.items)
        assert order_service.sessions.get_table(seed_tables["T1"].id).status == TableStatus.RUNNING

        kot_channels = [channels for channels, e in publisher.published if e.type == "kot:update"]
        assert kot_channels[0] == ["role:1:KITCHEN", "station:1:kitchen", "role:1:CAPTAIN", "role:1:CASHIER"]
        assert kot_channels[1][1] == "station:1:bar"

    def test_nothing_pending(self, dine_in, order_service, captain):
        order_service.send_kot(dine_in.id, captain)

        with pytest.raises(ValidationError):
            order_service.send_kot(dine_in.id, captain)

    def test_ticket_progress(self, dine_in, order_service, captain, chef):
        kitchen, bar = order_service.send_kot(dine_in.id, captain)

        assert order_service.accept_ticket(kitchen.id, chef).status == KotStatus.ACCEPTED
        assert order_service.start_preparing(kitchen.id, chef).status == KotStatus.PREPARING
        ready = order_service.mark_ticket_ready(kitchen.id, chef)
        assert ready.ready_at is not None
        assert all(i.status == OrderItemStatus.READY for i in ready.items)

        order_service.mark_ticket_served(kitchen.id, captain)
        assert order_service.get_order(dine_in.id, captain).status == OrderStatus.PREPARING

        order_service.mark_ticket_ready(bar.id, chef)
        order_service.mark_ticket_served(bar.id, captain)
        assert order_service.get_order(dine_in.id, captain).status == OrderStatus.SERVED

    def test_invalid_ticket_transition(self, dine_in, order_service, captain, chef):
        kitchen, _ = order_service.send_kot(dine_in.id, captain)

        with pytest.raises(InvalidTransitionError):
            order_service.mark_ticket_served(kitchen.id, chef)

    def test_served_order_returns_to_preparing_on_new_kot(self, dine_in, order_service, seed_menu, captain):
        serve_all(order_service, dine_in.id, captain)
        order_service.add_items(dine_in.id, [NewItem(item_id=seed_menu["water"].id, quantity=1)], captain)

        order_service.send_kot(dine_in.id, captain)

        assert order_service.get_order(dine_in.id, captain).status == OrderStatus.PREPARING

    def test_cancelling_every_item_of_ticket_cancels_it(self, dine_in, order_service, captain):
        kitchen, bar = order_service.send_kot(dine_in.id, captain)
        order_service.mark_ticket_ready(bar.id, captain)
        order_service.mark_ticket_served(bar.id, captain)

        order_service.cancel_item(dine_in.id, dine_in.items[0].id, captain, reason="out of stock")

        order = order_service.get_order(dine_in.id, captain)
        assert order.tickets[0].status == KotStatus.CANCELLED
        assert order.status == OrderStatus.SERVED

    def test_station_listing(self, dine_in, order_service, captain, chef):
        order_service.send_kot(dine_in.id, captain)

        assert [t.station for t in order_service.list_station_tickets(chef, "bar")] == ["bar"]
        assert len(order_service.list_station_tickets(chef)) == 2


class TestTransferTable:

    def test_moves_order_and_session(self, dine_in, order_service, seed_tables, captain, publisher):
        t1, t3 = seed_tables["T1"], seed_tables["T3"]
        publisher.clear()

        order = order_service.transfer_table(dine_in.id, t3.id, captain)

        sessions = order_service.sessions
        assert order.table_id == t3.id
        assert sessions.get_active_session(t3.id).id == dine_in.table_session_id
        assert sessions.get_active_session(t1.id) is None
        assert sessions.get_table(t3.id).status == TableStatus.OCCUPIED
        assert sessions.get_table(t1.id).status == TableStatus.AVAILABLE

        (log,) = order_service.list_transfers(dine_in.id, captain)
        assert (log.from_table_id, log.to_table_id, log.transferred_by) == (t1.id, t3.id, captain.actor_id)

        tables = publisher.events("table:update")
        assert sorted(e.table_id for e in tables) == sorted([t1.id, t3.id])
        assert {e.entity["event"] for e in tables} == {"order_transferred"}
        assert publisher.events("order:update")[0].entity["event"] == "transferred"

    def test_target_takes_running_status_and_floor(self, dine_in, order_service, seed_tables, captain):
        order_service.send_kot(dine_in.id, captain)
        t4 = seed_tables["T4"]

        order = order_service.transfer_table(dine_in.id, t4.id, captain)

        assert order.floor_id == t4.floor_id
        assert order_service.sessions.get_table(t4.id).status == TableStatus.RUNNING

    def test_history_on_both_tables(self, dine_in, order_service, seed_tables, captain):
        t1, t3 = seed_tables["T1"], seed_tables["T3"]

        order_service.transfer_table(dine_in.id, t3.id, captain)

        latest_t1 = order_service.sessions.get_history(t1.id, captain)[0]
        latest_t3 = order_service.sessions.get_history(t3.id, captain)[0]
        assert (latest_t1.event_type, latest_t1.to_status) == ("transferred_out", TableStatus.AVAILABLE)
        assert latest_t1.event_data == {"order_id": dine_in.id, "to_table_id": t3.id}
        assert (latest_t3.event_type, latest_t3.from_status) == ("transferred_in", TableStatus.AVAILABLE)

    def test_cancel_after_transfer_releases_new_table(self, dine_in, order_service, seed_tables, captain):
        t3 = seed_tables["T3"]
        order_service.transfer_table(dine_in.id, t3.id, captain)

        order_service.cancel_order(dine_in.id, "guest left", captain)

        assert order_service.sessions.get_table(t3.id).status == TableStatus.AVAILABLE
        assert order_service.sessions.get_active_session(t3.id) is None

    def test_busy_target(self, dine_in, order_service, session_service, seed_tables, captain, other_captain):
        session_service.start_session(seed_tables["T2"].id, other_captain)

        with pytest.raises(TableUnavailableError):
            order_service.transfer_table(dine_in.id, seed_tables["T2"].id, captain)

        assert order_service.get_order(dine_in.id, captain).table_id == seed_tables["T1"].id

    def test_blocked_target(self, db_session, dine_in, order_service, seed_tables, captain):
        seed_tables["T3"].status = TableStatus.BLOCKED
        db_session.commit()

        with pytest.raises(TableUnavailableError):
            order_service.transfer_table(dine_in.id, seed_tables["T3"].id, captain)

    def test_merged_source(self, dine_in, order_service, session_service, seed_tables, captain):
        session_service.merge_tables(seed_tables["T1"].id, [seed_tables["T2"].id], captain)

        with pytest.raises(TableUnavailableError):
            order_service.transfer_table(dine_in.id, seed_tables["T3"].id, captain)

    def test_same_table_and_takeaway(self, dine_in, order_service, seed_tables, seed_menu, captain):
        takeaway = order_service.create_order(
            captain,
            order_type=OrderType.TAKEAWAY,
            items=[NewItem(item_id=seed_menu["chai"].id, quantity=1)],
        )

        with pytest.raises(ValidationError):
            order_service.transfer_table(dine_in.id, seed_tables["T1"].id, captain)
        with pytest.raises(ValidationError):
            order_service.transfer_table(takeaway.id, seed_tables["T3"].id, captain)

    def test_unknown_target(self, dine_in, order_service, captain):
        with pytest.raises(TableNotFoundError):
            order_service.transfer_table(dine_in.id, 404, captain)

    def test_session_lock(self, dine_in, order_service, seed_tables, other_captain):
        with pytest.raises(SessionLockViolationError):
            order_service.transfer_table(dine_in.id, seed_tables["T3"].id, other_captain)


class TestCancelOrder:

    def test_cancel_releases_table(self, dine_in, order_service, seed_tables, captain, publisher):
        order_service.send_kot(dine_in.id, captain)
        publisher.clear()

        order = order_service.cancel_order(dine_in.id, "guest left", captain)

        assert order.status == OrderStatus.CANCELLED
        assert order.cancel_reason == "guest left"
        assert all(i.status == OrderItemStatus.CANCELLED for i in order.items)
        assert all(t.status == KotStatus.CANCELLED for t in order.tickets)
        table_id = seed_tables["T1"].id
        assert order_service.sessions.get_active_session(table_id) is None
        assert order_service.sessions.get_table(table_id).status == TableStatus.AVAILABLE
        types = [e.type for e in publisher.events()]
        assert types.count("order:update") == 1
        assert types.count("kot:update") == 2
        assert types.count("table:update") == 1

    def test_cancel_ends_the_session(self, db_session, dine_in, order_service, captain):
        order_service.cancel_order(dine_in.id, "guest left", captain)

        session = db_session.get(TableSession, dine_in.table_session_id)
        assert session.status == SessionStatus.COMPLETED

    def test_cancel_twice(self, dine_in, order_service, captain):
        order_service.cancel_order(dine_in.id, "guest left", captain)

        with pytest.raises(InvalidTransitionError):
            order_service.cancel_order(dine_in.id, "again", captain)

    def test_cancelled_order_is_frozen(self, dine_in, order_service, seed_menu, captain):
        order_service.cancel_order(dine_in.id, "guest left", captain)

        with pytest.raises(InvalidStateError):
            order_service.add_items(dine_in.id, [NewItem(item_id=seed_menu["chai"].id, quantity=1)], captain)

    def test_only_session_holder_cancels(self, dine_in, order_service, other_captain, cashier):
        with pytest.raises(SessionLockViolationError):
            order_service.cancel_order(dine_in.id, "nope", other_captain)

        assert order_service.cancel_order(dine_in.id, "ok", cashier).status == OrderStatus.CANCELLED

    def test_unknown_order(self, order_service, captain):
        with pytest.raises(OrderNotFoundError):
            order_service.cancel_order(404, "x", captain)


class TestQueries:

    def test_list_active_orders(self, dine_in, order_service, seed_menu, captain):
        takeaway = order_service.create_order(
            captain,
            order_type=OrderType.TAKEAWAY,
            items=[NewItem(item_id=seed_menu["chai"].id, quantity=1)],
        )
        order_service.cancel_order(takeaway.id, "no show", captain)

        active = order_service.list_active_orders(captain)

        assert [o.id for o in active] == [dine_in.id]
        assert order_service.list_active_orders(captain, OrderType.TAKEAWAY) == []
