"""
Billing Domain Service.

Turns a served order into an Invoice, toggles its charges, takes payments
and cancels unpaid invoices.

Invariants:
- An invoice is frozen once paid: every mutation re-reads it under a row
  lock and re-checks payment_status and is_cancelled in the same transaction.
- Charge toggles always recompute from the order's live items and the
  invoice's original request flags, so toggling is idempotent and reversible.
- Payment and cancellation race on the same locked rows; the loser sees
  CannotModifyPaidInvoiceError or InvoiceAlreadyCancelledError.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from pos_shared.config.constants import (
    KotStatus,
    OrderStatus,
    PaymentMode,
    PaymentStatus,
    TableStatus,
)
from pos_shared.config.logging import billing_logger as logger
from pos_shared.config.settings import settings
from pos_shared.infrastructure.db import atomic
from pos_shared.infrastructure.events import RealtimeNotifier
from pos_shared.security.auth import Actor, require_outlet
from pos_shared.utils.exceptions import (
    CannotModifyPaidInvoiceError,
    InvoiceAlreadyCancelledError,
    InvoiceNotFoundError,
    OrderNotServedError,
    PaymentAmountError,
    ValidationError,
)
from pos_shared.utils.money import percent_to_bps
from pos_api.models import Invoice, InvoiceItem, InvoiceTax, Order, Payment, Table
from pos_api.models.base import utcnow
from pos_api.repositories import InvoiceRepository, OrderRepository, TableRepository
from .discount_resolver import DiscountResolution, total_discount
from .notifications import notify_invoice, notify_order, notify_payments, notify_tables
from .order_service import OrderService, assert_order_transition
from .tax_engine import BillBreakdown, BillLine, TaxRate, calculate_bill


@dataclass(frozen=True)
class PaymentInput:
    mode: str
    amount_cents: int
    tip_cents: int = 0
    reference: str | None = None


class BillingService:
    """
    Domain service for invoices and payments.
    """

    def __init__(
        self,
        db: Session,
        notifier: RealtimeNotifier,
        orders: OrderService | None = None,
        service_charge_bps: int | None = None,
    ):
        self._db = db
        self._notifier = notifier
        self._order_service = orders or OrderService(db, notifier)
        self._sessions = self._order_service.sessions
        self._orders = OrderRepository(db)
        self._invoices = InvoiceRepository(db)
        self._tables = TableRepository(db)
        if service_charge_bps is None:
            service_charge_bps = percent_to_bps(settings.service_charge_percent)
        self._service_charge_bps = service_charge_bps

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: int, actor: Actor) -> Invoice:
        invoice = self._invoices.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        require_outlet(actor, invoice.outlet_id)
        return invoice

    def list_pending_invoices(self, actor: Actor) -> list[Invoice]:
        """Unpaid, non-cancelled invoices of the actor's outlet."""
        return list(self._invoices.list_pending(actor.outlet_id))

    # =========================================================================
    # Computation
    # =========================================================================

    @staticmethod
    def _bill_lines(order: Order) -> list[BillLine]:
        return [
            BillLine(
                line_id=item.id,
                total_cents=item.total_price_cents,
                taxes=tuple(TaxRate(t["code"], t["name"], int(t["rate_bps"])) for t in item.tax_details or ()),
            )
            for item in order.live_items
        ]

    def _compute(
        self,
        order: Order,
        invoice: Invoice,
    ) -> tuple[BillBreakdown, DiscountResolution]:
        lines = self._bill_lines(order)
        subtotal = sum(line.total_cents for line in lines)
        resolution = total_discount(self._orders.active_discounts(order.id), subtotal)
        breakdown = calculate_bill(
            lines,
            resolution.amount_cents,
            order_type=order.order_type,
            apply_service_charge=invoice.apply_service_charge,
            service_charge_bps=invoice.service_charge_bps,
            remove_service_charge=invoice.service_charge_removed,
            remove_gst=invoice.gst_removed,
            customer_gstin=invoice.customer_gstin,
            is_interstate=invoice.is_interstate,
        )
        return breakdown, resolution

    def _apply(
        self,
        order: Order,
        invoice: Invoice,
        breakdown: BillBreakdown,
        resolution: DiscountResolution,
    ) -> None:
        invoice.subtotal_cents = breakdown.subtotal_cents
        invoice.discount_cents = breakdown.discount_cents
        invoice.taxable_cents = breakdown.taxable_cents
        invoice.total_tax_cents = breakdown.total_tax_cents
        invoice.service_charge_cents = breakdown.service_charge_cents
        invoice.round_off_cents = breakdown.round_off_cents
        invoice.grand_total_cents = breakdown.grand_total_cents

        invoice.taxes.clear()
        for component in breakdown.components:
            invoice.taxes.append(
                InvoiceTax(
                    code=component.code,
                    name=component.name,
                    rate_bps=component.rate_bps,
                    taxable_cents=component.taxable_cents,
                    amount_cents=component.amount_cents,
                )
            )

        items_by_id = {item.id: item for item in order.live_items}
        invoice.items.clear()
        for line in breakdown.lines:
            item = items_by_id[line.line_id]
            invoice.items.append(
                InvoiceItem(
                    order_item_id=item.id,
                    item_name=item.item_name,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    total_price_cents=line.gross_cents,
                    discount_share_cents=line.discount_share_cents,
                    tax_cents=line.tax_cents,
                )
            )

        for resolved in resolution.items:
            resolved.discount.discount_cents = resolved.amount_cents
            resolved.discount.is_superseded = resolved.superseded
            resolved.discount.is_billed = True

        order.subtotal_cents = breakdown.subtotal_cents
        order.discount_cents = breakdown.discount_cents
        order.tax_cents = breakdown.total_tax_cents
        order.service_charge_cents = breakdown.service_charge_cents
        order.round_off_cents = breakdown.round_off_cents
        order.total_cents = breakdown.grand_total_cents

    def _lock_invoice(self, invoice_id: int, actor: Actor) -> tuple[Order, Invoice]:
        """Lock the invoice's order, then the invoice, and reject frozen invoices."""
        invoice = self.get_invoice(invoice_id, actor)
        order = self._order_service.lock_order(invoice.order_id, actor)
        invoice = self._invoices.get_for_update(invoice_id)
        if invoice.is_cancelled:
            raise InvoiceAlreadyCancelledError(invoice.id)
        if invoice.is_paid:
            raise CannotModifyPaidInvoiceError(invoice.id)
        return order, invoice

    def _set_table_status(
        self,
        order: Order,
        status: str,
        actor: Actor,
        from_statuses: frozenset[str],
        event_type: str,
    ) -> Table | None:
        if order.table_id is None:
            return None
        table = self._tables.get_for_update(order.table_id)
        if table is None or table.status not in from_statuses:
            return None
        self._sessions.change_status_locked(table, status, actor, event_type, order_id=order.id)
        return table

    def _settle_locked(self, order: Order, invoice: Invoice, actor: Actor) -> list[Table]:
        """
        Mark the invoice paid, complete the order and release its table.

        Returns the tables whose status changed. The table is only released
        while the order's own session is still active on it.
        """
        invoice.payment_status = PaymentStatus.PAID
        invoice.paid_at = utcnow()
        assert_order_transition(order, OrderStatus.COMPLETED)
        order.status = OrderStatus.COMPLETED
        order.set_updated_by(actor.actor_id)
        if order.table_id is None:
            return []
        table = self._tables.get_for_update(order.table_id)
        session = self._tables.active_session(table.id)
        if session is None or session.id != order.table_session_id:
            return []
        return self._sessions.release_table_locked(table, actor, "payment_completed")

    def _notify_settled_without_payment(self, order: Order, invoice: Invoice, released: list[Table], actor: Actor) -> None:
        logger.info("Zero-total invoice settled", invoice_id=invoice.id, order_id=order.id)
        notify_invoice(self._notifier, invoice, actor, PaymentStatus.PAID, table_id=order.table_id)
        notify_order(self._notifier, order, actor, "completed")
        notify_tables(self._notifier, released, actor, "payment_completed")

    # =========================================================================
    # Bill
    # =========================================================================

    def generate_bill(
        self,
        order_id: int,
        actor: Actor,
        apply_service_charge: bool = True,
        customer_name: str | None = None,
        customer_gstin: str | None = None,
    ) -> Invoice:
        """
        Issue the invoice of a served order and move it to billing.

        Billing an order whose active invoice has no payments yet recomputes
        that invoice in place with the new options.
        An invoice whose grand total comes to zero is settled at once: there
        is nothing to pay, so the order completes and the table is released.

        Raises:
            OrderNotServedError: order is not served (or billed without payments).
            ValidationError: order has no billable items.
        """
        with atomic(self._db):
            order = self._order_service.lock_order(order_id, actor)
            invoice = self._invoices.active_for_order(order.id, for_update=True)

            if order.status == OrderStatus.SERVED:
                reissue = invoice is not None
            elif order.status == OrderStatus.BILLING and invoice is not None and invoice.paid_cents == 0:
                reissue = True
            else:
                raise OrderNotServedError(order.id, order.status)
            self._sessions.assert_order_mutable(order, actor)
            if not order.live_items:
                raise ValidationError(f"Order {order.id} has no billable items", order_id=order.id)

            if invoice is None:
                invoice = Invoice(
                    outlet_id=order.outlet_id,
                    order_id=order.id,
                    generated_by=actor.actor_id,
                    payment_status=PaymentStatus.PENDING,
                    paid_cents=0,
                    is_cancelled=False,
                )
                invoice.set_created_by(actor.actor_id)
            invoice.apply_service_charge = apply_service_charge
            invoice.service_charge_bps = self._service_charge_bps
            invoice.service_charge_removed = False
            invoice.gst_removed = False
            invoice.is_interstate = order.is_interstate
            invoice.customer_name = customer_name or invoice.customer_name or order.customer_name
            invoice.customer_gstin = customer_gstin or invoice.customer_gstin

            breakdown, resolution = self._compute(order, invoice)
            self._apply(order, invoice, breakdown, resolution)
            if invoice.id is None:
                self._invoices.save(invoice)
                invoice.invoice_number = f"INV-{invoice.id:06d}"
            invoice.set_updated_by(actor.actor_id)

            if order.status != OrderStatus.BILLING:
                assert_order_transition(order, OrderStatus.BILLING)
                order.status = OrderStatus.BILLING
            order.set_updated_by(actor.actor_id)
            table = self._set_table_status(
                order,
                TableStatus.BILLING,
                actor,
                frozenset({TableStatus.OCCUPIED, TableStatus.RUNNING}),
                "billing",
            )
            released = self._settle_locked(order, invoice, actor) if invoice.grand_total_cents <= 0 else None

        logger.info(
            "Invoice generated",
            invoice_id=invoice.id,
            order_id=order.id,
            reissued=reissue,
            subtotal_cents=invoice.subtotal_cents,
            discount_cents=invoice.discount_cents,
            tax_cents=invoice.total_tax_cents,
            grand_total_cents=invoice.grand_total_cents,
        )
        notify_invoice(self._notifier, invoice, actor, "generated", table_id=order.table_id)
        if released is not None:
            self._notify_settled_without_payment(order, invoice, released, actor)
            return invoice
        notify_order(self._notifier, order, actor, "billing")
        if table is not None:
            notify_tables(self._notifier, [table], actor, "billing")
        return invoice

    def update_charges(
        self,
        invoice_id: int,
        actor: Actor,
        remove_service_charge: bool = False,
        remove_gst: bool = False,
        customer_gstin: str | None = None,
    ) -> Invoice:
        """
        Remove or restore the service charge and GST on an unpaid invoice.

        Any payment freezes the amounts, so a partially paid invoice is
        rejected like a paid one.
        Charges that bring the grand total to zero settle the invoice.

        Raises:
            CannotModifyPaidInvoiceError, InvoiceAlreadyCancelledError,
            MissingGstinForTaxRemovalError
        """
        with atomic(self._db):
            order, invoice = self._lock_invoice(invoice_id, actor)
            if invoice.paid_cents > 0:
                raise CannotModifyPaidInvoiceError(invoice.id, paid_cents=invoice.paid_cents)

            invoice.service_charge_removed = remove_service_charge
            invoice.gst_removed = remove_gst
            if customer_gstin:
                invoice.customer_gstin = customer_gstin.strip()
            breakdown, resolution = self._compute(order, invoice)
            self._apply(order, invoice, breakdown, resolution)
            invoice.set_updated_by(actor.actor_id)
            released = self._settle_locked(order, invoice, actor) if invoice.grand_total_cents <= 0 else None

        logger.info(
            "Invoice charges updated",
            invoice_id=invoice.id,
            service_charge_removed=remove_service_charge,
            gst_removed=remove_gst,
            grand_total_cents=invoice.grand_total_cents,
        )
        notify_invoice(self._notifier, invoice, actor, "charges_updated", table_id=order.table_id)
        if released is not None:
            self._notify_settled_without_payment(order, invoice, released, actor)
        return invoice

    # =========================================================================
    # Payment
    # =========================================================================

    def record_payment(
        self,
        invoice_id: int,
        actor: Actor,
        amount_cents: int,
        mode: str,
        tip_cents: int = 0,
        reference: str | None = None,
        order_id: int | None = None,
    ) -> Payment:
        """
        Record one payment. When the invoice is settled the order completes
        and the table is released.

        Raises:
            PaymentAmountError: non-positive amount or more than the balance.
        """
        part = PaymentInput(mode=mode, amount_cents=amount_cents, tip_cents=tip_cents, reference=reference)
        return self.record_split_payment(invoice_id, [part], actor, order_id=order_id)[0]

    def record_split_payment(
        self,
        invoice_id: int,
        parts: list[PaymentInput],
        actor: Actor,
        order_id: int | None = None,
    ) -> list[Payment]:
        """Record several tenders against one invoice in a single transaction."""
        if not parts:
            raise ValidationError("At least one payment is required", invoice_id=invoice_id)
        for part in parts:
            if part.mode not in PaymentMode.ALL:
                raise ValidationError(f"Unknown payment mode '{part.mode}'", field="mode")
            if part.amount_cents <= 0:
                raise PaymentAmountError(part.amount_cents, "must be positive")
            if part.tip_cents < 0:
                raise PaymentAmountError(part.tip_cents, "tip cannot be negative")

        released: list[Table] = []
        with atomic(self._db):
            order, invoice = self._lock_invoice(invoice_id, actor)
            if order_id is not None and order_id != order.id:
                raise ValidationError(
                    f"Invoice {invoice_id} does not belong to order {order_id}",
                    invoice_id=invoice_id,
                    order_id=order_id,
                )

            total = sum(part.amount_cents for part in parts)
            balance = invoice.balance_cents
            if total > balance:
                raise PaymentAmountError(total, f"exceeds balance of {balance}", invoice_id=invoice.id)

            payments = []
            for part in parts:
                payment = Payment(
                    outlet_id=invoice.outlet_id,
                    invoice_id=invoice.id,
                    order_id=order.id,
                    mode=part.mode,
                    amount_cents=part.amount_cents,
                    tip_cents=part.tip_cents,
                    status="completed",
                    reference=part.reference,
                    received_by=actor.actor_id,
                )
                payment.set_created_by(actor.actor_id)
                invoice.payments.append(payment)
                payments.append(payment)

            invoice.paid_cents += total
            settled = invoice.paid_cents >= invoice.grand_total_cents
            if settled:
                released = self._settle_locked(order, invoice, actor)
            else:
                invoice.payment_status = PaymentStatus.PARTIAL
            invoice.set_updated_by(actor.actor_id)
            self._db.flush()

        logger.info(
            "Payment recorded",
            invoice_id=invoice.id,
            order_id=order.id,
            payment_ids=[p.id for p in payments],
            amount_cents=total,
            paid_cents=invoice.paid_cents,
            payment_status=invoice.payment_status,
        )
        notify_payments(self._notifier, payments, invoice, actor, table_id=order.table_id)
        notify_invoice(self._notifier, invoice, actor, invoice.payment_status, table_id=order.table_id)
        if settled:
            notify_order(self._notifier, order, actor, "completed")
            notify_tables(self._notifier, released, actor, "payment_completed")
        return payments

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_invoice(self, invoice_id: int, reason: str, actor: Actor) -> Invoice:
        """
        Cancel an unpaid invoice and send the order back to served.

        The invoice disappears from pending bills and a new bill may be
        generated after further changes to the order.

        Raises:
            CannotModifyPaidInvoiceError, InvoiceAlreadyCancelledError
        """
        with atomic(self._db):
            order, invoice = self._lock_invoice(invoice_id, actor)
            self._sessions.assert_order_mutable(order, actor)

            invoice.is_cancelled = True
            invoice.cancel_reason = reason
            invoice.cancelled_at = utcnow()
            invoice.cancelled_by = actor.actor_id
            invoice.set_updated_by(actor.actor_id)

            for discount in self._orders.active_discounts(order.id):
                discount.is_billed = False

            table = None
            if order.status == OrderStatus.BILLING:
                assert_order_transition(order, OrderStatus.SERVED)
                order.status = OrderStatus.SERVED
                order.set_updated_by(actor.actor_id)
                sent = any(t.status != KotStatus.CANCELLED for t in order.tickets)
                table = self._set_table_status(
                    order,
                    TableStatus.RUNNING if sent else TableStatus.OCCUPIED,
                    actor,
                    frozenset({TableStatus.BILLING}),
                    "invoice_cancelled",
                )

        logger.info("Invoice cancelled", invoice_id=invoice.id, order_id=order.id, reason=reason)
        notify_invoice(self._notifier, invoice, actor, "cancelled", table_id=order.table_id)
        notify_order(self._notifier, order, actor, "bill_cancelled")
        if table is not None:
            notify_tables(self._notifier, [table], actor, "invoice_cancelled")
        return invoice
