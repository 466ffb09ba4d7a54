"""
Order Domain Service.

Owns the order and kitchen-ticket state machines and drives table status
as a side effect.

Order:  confirmed → preparing → served → billing → completed
        cancel from any non-terminal state
KOT:    pending → accepted → preparing → ready → served

Rows are locked order first, then invoice, ticket and table, so that
concurrent operations on one table cannot deadlock.
"""

from collections import OrderedDict
from dataclasses import dataclass

from sqlalchemy.orm import Session

from pos_shared.config.constants import (
    KOT_TRANSITIONS,
    ORDER_TRANSITIONS,
    KotStatus,
    OrderItemStatus,
    OrderStatus,
    OrderType,
    TableStatus,
)
from pos_shared.config.logging import order_logger as logger, kitchen_logger
from pos_shared.infrastructure.db import atomic
from pos_shared.infrastructure.events import RealtimeNotifier
from pos_shared.security.auth import Actor, require_outlet
from pos_shared.utils.exceptions import (
    CannotModifyPaidInvoiceError,
    InvalidStateError,
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    TableNotFoundError,
    TableUnavailableError,
    TicketNotFoundError,
    ValidationError,
)
from pos_api.models import Invoice, KotTicket, Order, OrderItem, OrderTransferLog, Table
from pos_api.models.base import utcnow
from pos_api.repositories import InvoiceRepository, OrderRepository, TableRepository
from .catalog import Catalog, SqlCatalog
from .notifications import notify_invoice, notify_order, notify_tables, notify_tickets
from .session_service import TableSessionService

EDITABLE_STATUSES = [OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.SERVED]


@dataclass(frozen=True)
class NewItem:
    item_id: int
    quantity: int
    variant_id: int | None = None
    notes: str | None = None


def assert_order_transition(order: Order, to_status: str) -> None:
    if to_status not in ORDER_TRANSITIONS.get(order.status, frozenset()):
        raise InvalidTransitionError(f"Order {order.id}", order.status, to_status)


class OrderService:
    """
    Domain service for orders, order items and kitchen tickets.
    """

    def __init__(
        self,
        db: Session,
        notifier: RealtimeNotifier,
        catalog: Catalog | None = None,
        sessions: TableSessionService | None = None,
    ):
        self._db = db
        self._notifier = notifier
        self._catalog = catalog or SqlCatalog(db)
        self._sessions = sessions or TableSessionService(db, notifier)
        self._orders = OrderRepository(db)
        self._tables = TableRepository(db)
        self._invoices = InvoiceRepository(db)

    @property
    def sessions(self) -> TableSessionService:
        return self._sessions

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: int, actor: Actor) -> Order:
        order = self._orders.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        require_outlet(actor, order.outlet_id)
        return order

    def list_active_orders(self, actor: Actor, order_type: str | None = None) -> list[Order]:
        return list(self._orders.list_active(actor.outlet_id, order_type))

    def list_station_tickets(self, actor: Actor, station: str | None = None) -> list[KotTicket]:
        """Open tickets of the outlet, optionally for one station."""
        return list(self._orders.list_station_tickets(actor.outlet_id, station))

    # =========================================================================
    # Guards
    # =========================================================================

    def lock_order(self, order_id: int, actor: Actor) -> Order:
        """Read the order with a write lock. Caller owns the transaction."""
        order = self._orders.get_for_update(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        require_outlet(actor, order.outlet_id)
        return order

    def lock_editable_order(self, order_id: int, actor: Actor) -> Order:
        """
        Lock an order whose items and discounts may still change.

        Raises:
            InvalidStateError: order is billed, completed or cancelled.
            SessionLockViolationError: actor does not hold the table session.
        """
        order = self.lock_order(order_id, actor)
        if order.status not in EDITABLE_STATUSES:
            raise InvalidStateError(f"Order {order.id}", order.status, EDITABLE_STATUSES)
        self._sessions.assert_order_mutable(order, actor)
        return order

    def _lock_table_of(self, order: Order) -> Table | None:
        if order.table_id is None:
            return None
        return self._tables.get_for_update(order.table_id)

    # =========================================================================
    # Create / items
    # =========================================================================

    def _build_items(self, order: Order, items: list[NewItem], actor: Actor) -> list[OrderItem]:
        created = []
        for new in items:
            if new.quantity <= 0:
                raise ValidationError("Quantity must be positive", field="quantity", value=new.quantity)
            entry = self._catalog.lookup(order.outlet_id, new.item_id, new.variant_id)
            item = OrderItem(
                order_id=order.id,
                item_id=entry.item_id,
                variant_id=new.variant_id,
                item_name=entry.name,
                station=entry.station,
                quantity=new.quantity,
                unit_price_cents=entry.unit_price_cents,
                total_price_cents=entry.unit_price_cents * new.quantity,
                tax_group_code=entry.tax_group_code,
                tax_details=[
                    {"code": t.code, "name": t.name, "rate_bps": t.rate_bps} for t in entry.taxes
                ],
                notes=new.notes,
                status=OrderItemStatus.PENDING,
                cancelled_quantity=0,
            )
            item.set_created_by(actor.actor_id)
            order.items.append(item)
            created.append(item)
        self._db.flush()
        return created

    def create_order(
        self,
        actor: Actor,
        order_type: str = OrderType.DINE_IN,
        table_id: int | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        is_interstate: bool = False,
        guest_count: int = 1,
        guest_name: str | None = None,
        notes: str | None = None,
        items: list[NewItem] | None = None,
    ) -> Order:
        """
        Create an order. Dine-in orders bind to the table's session,
        starting one when the table is free.

        Raises:
            ValidationError: dine-in without a table.
            TableUnavailableError: table busy or already has an open order.
            SessionLockViolationError: table session held by someone else.
        """
        if order_type not in OrderType.ALL:
            raise ValidationError(f"Unknown order type '{order_type}'", field="order_type")
        if order_type == OrderType.DINE_IN and table_id is None:
            raise ValidationError("Dine-in orders require a table", field="table_id")

        table = None
        with atomic(self._db):
            session = None
            if order_type == OrderType.DINE_IN:
                table = self._sessions.lock_table(table_id, actor)
                session = self._tables.active_session(table.id, for_update=True)
                if session is not None:
                    live = self._orders.live_order_for_session(session.id)
                    if live is not None:
                        raise TableUnavailableError(table.id, table.status, order_id=live.id)
                    self._sessions.assert_can_mutate(session, actor)
                else:
                    session = self._sessions.open_session_locked(
                        table,
                        actor,
                        guest_count=guest_count,
                        guest_name=guest_name or customer_name,
                        guest_phone=customer_phone,
                    )

            order = Order(
                outlet_id=actor.outlet_id,
                table_id=table.id if table else None,
                table_session_id=session.id if session else None,
                floor_id=table.floor_id if table else None,
                order_type=order_type,
                status=OrderStatus.CONFIRMED,
                created_by=actor.actor_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                is_interstate=is_interstate,
                notes=notes,
            )
            order.set_created_by(actor.actor_id)
            self._orders.save(order)
            order.order_number = f"ORD-{order.id:06d}"
            if session is not None:
                session.order_id = order.id

            if items:
                self._build_items(order, items, actor)

        logger.info(
            "Order created",
            order_id=order.id,
            order_type=order_type,
            table_id=order.table_id,
            session_id=order.table_session_id,
            created_by=actor.actor_id,
        )
        notify_order(self._notifier, order, actor, "created")
        if table is not None:
            notify_tables(self._notifier, [table], actor, "order_created")
        return order

    def add_items(self, order_id: int, items: list[NewItem], actor: Actor) -> list[OrderItem]:
        """
        Append items to an order. They stay pending until the next KOT.

        Raises:
            InvalidStateError: order billed or terminal.
            SessionLockViolationError: actor does not hold the table session.
        """
        if not items:
            raise ValidationError("At least one item is required", field="items")
        with atomic(self._db):
            order = self.lock_editable_order(order_id, actor)
            created = self._build_items(order, items, actor)
            order.set_updated_by(actor.actor_id)

        logger.info("Order items added", order_id=order_id, item_ids=[i.id for i in created])
        notify_order(self._notifier, order, actor, "items_added")
        return created

    def cancel_item(
        self,
        order_id: int,
        item_id: int,
        actor: Actor,
        reason: str,
        quantity: int | None = None,
    ) -> OrderItem:
        """
        Cancel an order line, fully or by quantity.

        Cancelled lines stay on the order for audit and are excluded from
        every total. A ticket whose lines are all cancelled is cancelled.
        Cancelling the last line does not cancel the order.
        """
        with atomic(self._db):
            order = self.lock_editable_order(order_id, actor)
            item = self._orders.get_item(order.id, item_id)
            if item is None:
                raise OrderItemNotFoundError(item_id, order_id=order_id)
            if item.status == OrderItemStatus.CANCELLED:
                raise InvalidTransitionError(f"Order item {item_id}", item.status, OrderItemStatus.CANCELLED)
            if quantity is not None and quantity > item.quantity:
                raise ValidationError(
                    f"Cannot cancel {quantity} of {item.quantity}",
                    field="quantity",
                    value=quantity,
                )

            now = utcnow()
            if quantity is None or quantity == item.quantity:
                item.cancelled_quantity += item.quantity
                item.status = OrderItemStatus.CANCELLED
                item.cancelled_at = now
            else:
                item.quantity -= quantity
                item.cancelled_quantity += quantity
                item.total_price_cents = item.unit_price_cents * item.quantity
            item.cancel_reason = reason
            item.cancelled_by = actor.actor_id
            item.set_updated_by(actor.actor_id)

            changed_tickets = []
            ticket = item.ticket
            if ticket is not None and ticket.status in KotStatus.OPEN:
                if all(i.status == OrderItemStatus.CANCELLED for i in ticket.items):
                    ticket.status = KotStatus.CANCELLED
                    ticket.cancelled_at = now
                changed_tickets.append(ticket)
            self._refresh_progress(order)
            order.set_updated_by(actor.actor_id)

        logger.info(
            "Order item cancelled",
            order_id=order_id,
            item_id=item_id,
            quantity=quantity,
            status=item.status,
        )
        notify_order(self._notifier, order, actor, "item_cancelled")
        notify_tickets(self._notifier, changed_tickets, actor, "item_cancelled", table_id=order.table_id)
        return item

    def update_item_quantity(self, order_id: int, item_id: int, quantity: int, actor: Actor) -> OrderItem:
        """
        Change the quantity of a line that has not gone to the kitchen yet.

        Raises:
            ValidationError: non-positive quantity.
            InvalidStateError: the line was already sent; cancel it instead.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity", value=quantity)
        with atomic(self._db):
            order = self.lock_editable_order(order_id, actor)
            item = self._orders.get_item(order.id, item_id)
            if item is None:
                raise OrderItemNotFoundError(item_id, order_id=order_id)
            if item.status != OrderItemStatus.PENDING:
                raise InvalidStateError(f"Order item {item_id}", item.status, [OrderItemStatus.PENDING])

            previous = item.quantity
            item.quantity = quantity
            item.total_price_cents = item.unit_price_cents * quantity
            item.set_updated_by(actor.actor_id)
            order.set_updated_by(actor.actor_id)

        logger.info(
            "Order item quantity changed",
            order_id=order_id,
            item_id=item_id,
            from_quantity=previous,
            to_quantity=quantity,
        )
        notify_order(self._notifier, order, actor, "item_modified")
        return item

    # =========================================================================
    # Kitchen tickets
    # =========================================================================

    def send_kot(self, order_id: int, actor: Actor) -> list[KotTicket]:
        """
        Route every pending item to its station, one ticket per station.

        The first KOT moves the order to preparing and the table to running.
        A served order that gets more items goes back to preparing.

        Raises:
            ValidationError: nothing pending.
        """
        with atomic(self._db):
            order = self.lock_editable_order(order_id, actor)
            pending = [i for i in order.items if i.status == OrderItemStatus.PENDING]
            if not pending:
                raise ValidationError(f"Order {order_id} has no pending items", order_id=order_id)

            by_station: OrderedDict[str, list[OrderItem]] = OrderedDict()
            for item in pending:
                by_station.setdefault(item.station, []).append(item)

            tickets = []
            for station, station_items in by_station.items():
                ticket = KotTicket(
                    outlet_id=order.outlet_id,
                    order_id=order.id,
                    station=station,
                    status=KotStatus.PENDING,
                )
                ticket.set_created_by(actor.actor_id)
                order.tickets.append(ticket)
                self._db.flush()
                ticket.kot_number = f"KOT-{ticket.id:06d}"
                for item in station_items:
                    item.status = OrderItemStatus.SENT
                    item.kot_id = ticket.id
                    ticket.items.append(item)
                tickets.append(ticket)

            if order.status != OrderStatus.PREPARING:
                assert_order_transition(order, OrderStatus.PREPARING)
                order.status = OrderStatus.PREPARING
            order.set_updated_by(actor.actor_id)

            table = self._lock_table_of(order)
            table_changed = table is not None and table.status == TableStatus.OCCUPIED
            if table_changed:
                self._sessions.change_status_locked(table, TableStatus.RUNNING, actor, "kot_sent", order_id=order.id)

        kitchen_logger.info(
            "KOT sent",
            order_id=order_id,
            kot_ids=[t.id for t in tickets],
            stations=list(by_station),
        )
        notify_tickets(self._notifier, tickets, actor, "created", table_id=order.table_id)
        notify_order(self._notifier, order, actor, "kot_sent")
        if table_changed:
            notify_tables(self._notifier, [table], actor, "running")
        return tickets

    def _refresh_progress(self, order: Order) -> bool:
        """
        Move a preparing order to served once every non-cancelled ticket is served.
        Returns True when the order changed.
        """
        if order.status != OrderStatus.PREPARING:
            return False
        live = [t for t in order.tickets if t.status != KotStatus.CANCELLED]
        if live and all(t.status == KotStatus.SERVED for t in live):
            order.status = OrderStatus.SERVED
            return True
        return False

    def _transition_ticket(self, kot_id: int, to_status: str, actor: Actor) -> KotTicket:
        ticket = self._db.get(KotTicket, kot_id)
        if ticket is None:
            raise TicketNotFoundError(kot_id)
        require_outlet(actor, ticket.outlet_id)

        order_changed = False
        with atomic(self._db):
            order = self.lock_order(ticket.order_id, actor)
            ticket = self._orders.get_ticket_for_update(kot_id)
            if to_status not in KOT_TRANSITIONS.get(ticket.status, frozenset()):
                raise InvalidTransitionError(f"KOT {kot_id}", ticket.status, to_status)

            from_status = ticket.status
            now = utcnow()
            ticket.status = to_status
            if to_status == KotStatus.ACCEPTED:
                ticket.accepted_at = now
            elif to_status == KotStatus.PREPARING:
                ticket.preparing_at = now
            elif to_status == KotStatus.READY:
                ticket.ready_at = now
                for item in ticket.items:
                    if item.status == OrderItemStatus.SENT:
                        item.status = OrderItemStatus.READY
            elif to_status == KotStatus.SERVED:
                ticket.served_at = now
                for item in ticket.items:
                    if item.status in (OrderItemStatus.SENT, OrderItemStatus.READY):
                        item.status = OrderItemStatus.SERVED
                order_changed = self._refresh_progress(order)
            ticket.set_updated_by(actor.actor_id)

        kitchen_logger.info(
            "KOT status changed",
            kot_id=kot_id,
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
        )
        notify_tickets(self._notifier, [ticket], actor, to_status, table_id=order.table_id)
        if order_changed:
            logger.info("Order served", order_id=order.id)
            notify_order(self._notifier, order, actor, "served")
        return ticket

    def accept_ticket(self, kot_id: int, actor: Actor) -> KotTicket:
        return self._transition_ticket(kot_id, KotStatus.ACCEPTED, actor)

    def start_preparing(self, kot_id: int, actor: Actor) -> KotTicket:
        return self._transition_ticket(kot_id, KotStatus.PREPARING, actor)

    def mark_ticket_ready(self, kot_id: int, actor: Actor) -> KotTicket:
        return self._transition_ticket(kot_id, KotStatus.READY, actor)

    def mark_ticket_served(self, kot_id: int, actor: Actor) -> KotTicket:
        """Serve a ticket; the order becomes served with its last open ticket."""
        return self._transition_ticket(kot_id, KotStatus.SERVED, actor)

    # =========================================================================
    # Table transfer
    # =========================================================================

    def transfer_table(self, order_id: int, to_table_id: int, actor: Actor) -> Order:
        """
        Move a dine-in order and its table session to a free table.

        The target table takes over the source table's status and the source
        becomes available. The move is written to the transfer log.

        Raises:
            ValidationError: order has no table, or is already on the target.
            TableNotFoundError: unknown target table.
            TableUnavailableError: target not free, or source has merged tables.
            InvalidStateError: order billed or terminal.
            SessionLockViolationError: actor does not hold the table session.
        """
        with atomic(self._db):
            order = self.lock_editable_order(order_id, actor)
            if order.table_id is None or order.table_session_id is None:
                raise ValidationError(f"Order {order.id} is not seated at a table", order_id=order.id)
            if order.table_id == to_table_id:
                raise ValidationError(
                    f"Order {order.id} is already on table {to_table_id}",
                    order_id=order.id,
                    table_id=to_table_id,
                )

            locked = {t.id: t for t in self._tables.find_by_ids_for_update([order.table_id, to_table_id])}
            source = locked[order.table_id]
            target = locked.get(to_table_id)
            if target is None or not target.is_active:
                raise TableNotFoundError(to_table_id)
            require_outlet(actor, target.outlet_id)
            if target.status not in TableStatus.FREE:
                raise TableUnavailableError(target.id, target.status)
            if self._tables.active_session(target.id, for_update=True) is not None:
                raise TableUnavailableError(target.id, target.status, reason="active session exists")
            if self._tables.open_merges(source.id):
                raise TableUnavailableError(source.id, source.status, reason="unmerge tables before a transfer")

            session = self._tables.get_session(order.table_session_id)
            session.table_id = target.id
            order.table_id = target.id
            order.floor_id = target.floor_id
            order.set_updated_by(actor.actor_id)

            self._sessions.change_status_locked(
                target, source.status, actor, "transferred_in", order_id=order.id, from_table_id=source.id
            )
            self._sessions.change_status_locked(
                source, TableStatus.AVAILABLE, actor, "transferred_out", order_id=order.id, to_table_id=target.id
            )
            self._db.add(
                OrderTransferLog(
                    outlet_id=order.outlet_id,
                    order_id=order.id,
                    table_session_id=session.id,
                    from_table_id=source.id,
                    to_table_id=target.id,
                    transferred_by=actor.actor_id,
                )
            )

        logger.info(
            "Order transferred",
            order_id=order.id,
            session_id=session.id,
            from_table_id=source.id,
            to_table_id=target.id,
            transferred_by=actor.actor_id,
        )
        notify_order(self._notifier, order, actor, "transferred")
        notify_tables(self._notifier, [source, target], actor, "order_transferred")
        return order

    def list_transfers(self, order_id: int, actor: Actor) -> list[OrderTransferLog]:
        self.get_order(order_id, actor)
        return list(self._orders.transfers(order_id))

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_order(self, order_id: int, reason: str, actor: Actor) -> Order:
        """
        Cancel an order and everything hanging off it.

        Cascade: live items and open tickets are cancelled, unpaid invoices
        are cancelled, the table session ends and the table is released.
        An invoice that has taken any payment blocks the cancellation.

        Raises:
            CannotModifyPaidInvoiceError: the order was paid, fully or in part.
            InvalidTransitionError: order already cancelled.
            SessionLockViolationError: actor does not hold the table session.
        """
        with atomic(self._db):
            order = self.lock_order(order_id, actor)
            if order.status == OrderStatus.COMPLETED:
                paid = self._invoices.active_for_order(order.id)
                if paid is not None and paid.is_paid:
                    raise CannotModifyPaidInvoiceError(paid.id, order_id=order.id)
            assert_order_transition(order, OrderStatus.CANCELLED)
            self._sessions.assert_order_mutable(order, actor)

            cancelled_invoices: list[Invoice] = list(self._invoices.unpaid_for_order(order.id))
            for invoice in cancelled_invoices:
                if invoice.paid_cents > 0:
                    raise CannotModifyPaidInvoiceError(invoice.id, order_id=order.id, paid_cents=invoice.paid_cents)

            now = utcnow()
            for invoice in cancelled_invoices:
                invoice.is_cancelled = True
                invoice.cancel_reason = reason
                invoice.cancelled_at = now
                invoice.cancelled_by = actor.actor_id
                invoice.set_updated_by(actor.actor_id)

            for item in order.live_items:
                item.status = OrderItemStatus.CANCELLED
                item.cancel_reason = reason
                item.cancelled_by = actor.actor_id
                item.cancelled_at = now

            cancelled_tickets = []
            for ticket in order.tickets:
                if ticket.status in KotStatus.OPEN:
                    ticket.status = KotStatus.CANCELLED
                    ticket.cancelled_at = now
                    cancelled_tickets.append(ticket)

            order.status = OrderStatus.CANCELLED
            order.cancel_reason = reason
            order.cancelled_by = actor.actor_id
            order.cancelled_at = now
            order.set_updated_by(actor.actor_id)

            released: list[Table] = []
            table = self._lock_table_of(order)
            if table is not None:
                session = self._tables.active_session(table.id)
                if session is not None and session.id == order.table_session_id:
                    released = self._sessions.release_table_locked(table, actor, "order_cancelled")

        logger.info(
            "Order cancelled",
            order_id=order_id,
            reason=reason,
            cancelled_invoice_ids=[i.id for i in cancelled_invoices],
            cancelled_by=actor.actor_id,
        )
        notify_order(self._notifier, order, actor, "cancelled")
        for invoice in cancelled_invoices:
            notify_invoice(self._notifier, invoice, actor, "cancelled", table_id=order.table_id)
        notify_tickets(self._notifier, cancelled_tickets, actor, "cancelled", table_id=order.table_id)
        notify_tables(self._notifier, released, actor, "order_cancelled")
        return order
