"""
Event payloads for committed state changes.

Services call these after their transaction commits. Each helper turns
an ORM row into its output schema and hands it to the notifier, which
never raises.
"""

from typing import Iterable

from pos_shared.infrastructure.events import RealtimeNotifier
from pos_shared.security.auth import Actor
from pos_shared.utils.schemas import (
    TableOutput,
    OrderOutput,
    KotOutput,
    InvoiceOutput,
    PaymentOutput,
)
from pos_api.models import Table, Order, KotTicket, Invoice, Payment


def notify_tables(notifier: RealtimeNotifier, tables: Iterable[Table], actor: Actor | None, event: str) -> None:
    for table in tables:
        entity = TableOutput.model_validate(table).to_event()
        entity["event"] = event
        notifier.publish_table(table.outlet_id, table.id, entity, floor_id=table.floor_id, actor=actor)


def notify_order(notifier: RealtimeNotifier, order: Order, actor: Actor | None, event: str) -> None:
    entity = OrderOutput.model_validate(order).to_event()
    entity["event"] = event
    notifier.publish_order(order.outlet_id, entity, table_id=order.table_id, actor=actor)


def notify_tickets(
    notifier: RealtimeNotifier,
    tickets: Iterable[KotTicket],
    actor: Actor | None,
    event: str,
    table_id: int | None = None,
) -> None:
    for ticket in tickets:
        entity = KotOutput.model_validate(ticket).to_event()
        entity["event"] = event
        notifier.publish_kot(ticket.outlet_id, ticket.station, entity, table_id=table_id, actor=actor)


def notify_invoice(
    notifier: RealtimeNotifier,
    invoice: Invoice,
    actor: Actor | None,
    event: str,
    table_id: int | None = None,
) -> None:
    entity = InvoiceOutput.model_validate(invoice).to_event()
    entity["event"] = event
    notifier.publish_bill(invoice.outlet_id, entity, table_id=table_id, actor=actor)


def notify_payments(
    notifier: RealtimeNotifier,
    payments: Iterable[Payment],
    invoice: Invoice,
    actor: Actor | None,
    table_id: int | None = None,
) -> None:
    for payment in payments:
        entity = PaymentOutput.model_validate(payment).to_event()
        entity["payment_status"] = invoice.payment_status
        entity["balance_cents"] = invoice.balance_cents
        notifier.publish_payment(payment.outlet_id, entity, table_id=table_id, actor=actor)
