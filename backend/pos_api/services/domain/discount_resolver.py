"""
Discount Resolver.

Turns the discounts attached to an order into a single amount.

Value conventions:
    flat         value in cents
    percentage   value in basis points of the subtotal
    code         the definition's own type and value, copied at apply time

Amounts are never stored as final: total_discount() recomputes every
active discount against the subtotal at billing time, so adding or
cancelling items before the bill always yields the right figure.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session

from pos_shared.config.constants import DiscountType, Limits
from pos_shared.config.logging import billing_logger as logger
from pos_shared.infrastructure.db import atomic
from pos_shared.infrastructure.events import RealtimeNotifier
from pos_shared.security.auth import Actor
from pos_shared.utils.exceptions import (
    DuplicateDiscountCodeError,
    InvalidDiscountCodeError,
    MinOrderNotMetError,
    NotFoundError,
    ValidationError,
)
from pos_shared.utils.money import apply_bps
from pos_api.models import DiscountCode, Order, OrderDiscount
from pos_api.models.base import utcnow
from pos_api.repositories import OrderRepository
from .notifications import notify_order
from .order_service import OrderService


@dataclass(frozen=True)
class ResolvedDiscount:
    discount: OrderDiscount
    amount_cents: int
    superseded: bool = False


@dataclass(frozen=True)
class DiscountResolution:
    amount_cents: int
    items: tuple[ResolvedDiscount, ...]


def order_subtotal(order: Order) -> int:
    return sum(item.total_price_cents for item in order.live_items)


def manual_amount(discount_type: str, value: int, subtotal_cents: int) -> int:
    """
    Amount of a manual discount.

    Raises:
        ValidationError: unknown type, negative value, or a percentage over 100%.
    """
    if value < 0:
        raise ValidationError("Discount value cannot be negative", field="value", value=value)
    if discount_type == DiscountType.FLAT:
        return min(value, subtotal_cents)
    if discount_type == DiscountType.PERCENTAGE:
        if value > Limits.MAX_PERCENT_BPS:
            raise ValidationError("Percentage discount cannot exceed 100%", field="value", value=value)
        return apply_bps(subtotal_cents, value)
    raise ValidationError(f"Unknown manual discount type '{discount_type}'", field="discount_type")


def code_amount(
    code_type: str,
    value: int,
    subtotal_cents: int,
    max_discount_cents: int | None = None,
) -> int:
    if code_type == DiscountType.FLAT:
        amount = min(value, subtotal_cents)
    else:
        amount = apply_bps(subtotal_cents, value)
    if max_discount_cents is not None:
        amount = min(amount, max_discount_cents)
    return amount


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; stored values are UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_code(definition: DiscountCode | None, code: str, now: datetime) -> DiscountCode:
    """
    Validate a code definition at a point in time.

    Raises:
        InvalidDiscountCodeError: unknown, inactive, outside its window or used up.
    """
    if definition is None or not definition.is_active:
        raise InvalidDiscountCodeError(code, "unknown or inactive")
    valid_from = _aware(definition.valid_from)
    valid_until = _aware(definition.valid_until)
    if valid_from is not None and now < valid_from:
        raise InvalidDiscountCodeError(code, "not yet valid")
    if valid_until is not None and now > valid_until:
        raise InvalidDiscountCodeError(code, "expired")
    if definition.usage_limit is not None and definition.usage_count >= definition.usage_limit:
        raise InvalidDiscountCodeError(code, "usage limit reached")
    return definition


def resolve_code(
    db: Session,
    outlet_id: int,
    code: str,
    subtotal_cents: int,
    existing: Iterable[OrderDiscount],
    order_id: int | None = None,
    now: datetime | None = None,
) -> tuple[DiscountCode, int]:
    """
    Look up and validate a discount code for an order.

    Only one code may be attached to an order. The definition row is read
    with a write lock so its usage count can be incremented safely.

    Returns:
        The definition and the amount it grants on subtotal_cents.

    Raises:
        DuplicateDiscountCodeError: the order already carries a code.
        InvalidDiscountCodeError: see check_code.
        MinOrderNotMetError: subtotal below the code's minimum.
    """
    normalized = code.strip().upper()
    for discount in existing:
        if discount.discount_type == DiscountType.CODE:
            raise DuplicateDiscountCodeError(
                order_id or discount.order_id,
                normalized,
                attached=discount.discount_code,
            )

    definition = OrderRepository(db).find_discount_code(outlet_id, normalized, for_update=True)
    definition = check_code(definition, normalized, now or utcnow())
    if subtotal_cents < definition.min_order_cents:
        raise MinOrderNotMetError(normalized, definition.min_order_cents, subtotal_cents)

    amount = code_amount(
        definition.discount_type,
        definition.value,
        subtotal_cents,
        definition.max_discount_cents,
    )
    return definition, amount


def total_discount(discounts: Iterable[OrderDiscount], subtotal_cents: int) -> DiscountResolution:
    """
    Recompute every active discount against the current subtotal.

    A code whose minimum order is no longer met contributes nothing and is
    reported as superseded. The sum is capped at the subtotal.
    """
    resolved = []
    total = 0
    for discount in discounts:
        if not discount.is_active:
            continue
        if discount.discount_type == DiscountType.CODE:
            if subtotal_cents < discount.min_order_cents:
                resolved.append(ResolvedDiscount(discount, 0, superseded=True))
                continue
            amount = code_amount(
                discount.code_type or DiscountType.PERCENTAGE,
                discount.value,
                subtotal_cents,
                discount.max_discount_cents,
            )
        else:
            amount = manual_amount(discount.discount_type, discount.value, subtotal_cents)
        resolved.append(ResolvedDiscount(discount, amount))
        total += amount
    return DiscountResolution(amount_cents=min(total, subtotal_cents), items=tuple(resolved))


class DiscountResolver:
    """
    Attach and remove order discounts.

    Discounts only change while the order is editable: once an invoice is
    active the order is in billing and must be re-opened by cancelling the
    invoice first.
    """

    def __init__(self, db: Session, notifier: RealtimeNotifier, orders: OrderService | None = None):
        self._db = db
        self._notifier = notifier
        self._order_service = orders or OrderService(db, notifier)
        self._orders = OrderRepository(db)

    def list_discounts(self, order_id: int, actor: Actor) -> list[OrderDiscount]:
        order = self._order_service.get_order(order_id, actor)
        return list(self._orders.active_discounts(order.id))

    def apply_manual_discount(
        self,
        order_id: int,
        discount_type: str,
        value: int,
        actor: Actor,
        reason: str | None = None,
    ) -> OrderDiscount:
        """
        Attach a flat (cents) or percentage (bps) discount.

        Raises:
            ValidationError: bad type or value.
            InvalidStateError: order billed or terminal.
        """
        if discount_type not in DiscountType.MANUAL:
            raise ValidationError(f"Unknown manual discount type '{discount_type}'", field="discount_type")

        with atomic(self._db):
            order = self._order_service.lock_editable_order(order_id, actor)
            amount = manual_amount(discount_type, value, order_subtotal(order))
            discount = OrderDiscount(
                order_id=order.id,
                discount_type=discount_type,
                value=value,
                min_order_cents=0,
                discount_cents=amount,
                applied_on="subtotal",
                reason=reason,
                created_by=actor.actor_id,
            )
            discount.set_created_by(actor.actor_id)
            order.discounts.append(discount)
            self._db.flush()

        logger.info(
            "Manual discount applied",
            order_id=order_id,
            discount_id=discount.id,
            discount_type=discount_type,
            value=value,
            amount_cents=amount,
        )
        notify_order(self._notifier, order, actor, "discount_applied")
        return discount

    def apply_discount_code(self, order_id: int, code: str, actor: Actor) -> OrderDiscount:
        """
        Attach a promotional code. Exactly one code per order.

        Raises:
            DuplicateDiscountCodeError, InvalidDiscountCodeError, MinOrderNotMetError
        """
        with atomic(self._db):
            order = self._order_service.lock_editable_order(order_id, actor)
            existing = self._orders.active_discounts(order.id)
            definition, amount = resolve_code(
                self._db,
                order.outlet_id,
                code,
                order_subtotal(order),
                existing,
                order_id=order.id,
            )
            discount = OrderDiscount(
                order_id=order.id,
                discount_type=DiscountType.CODE,
                value=definition.value,
                code_type=definition.discount_type,
                discount_code=definition.code,
                discount_code_id=definition.id,
                min_order_cents=definition.min_order_cents,
                max_discount_cents=definition.max_discount_cents,
                discount_cents=amount,
                applied_on="subtotal",
                created_by=actor.actor_id,
            )
            discount.set_created_by(actor.actor_id)
            order.discounts.append(discount)
            definition.usage_count += 1
            self._db.flush()

        logger.info(
            "Discount code applied",
            order_id=order_id,
            discount_id=discount.id,
            code=definition.code,
            amount_cents=amount,
        )
        notify_order(self._notifier, order, actor, "discount_applied")
        return discount

    def remove_discount(self, order_id: int, discount_id: int, actor: Actor) -> OrderDiscount:
        """Detach a discount. A removed code frees one use of its definition."""
        with atomic(self._db):
            order = self._order_service.lock_editable_order(order_id, actor)
            discount = self._orders.get_discount(order.id, discount_id)
            if discount is None:
                raise NotFoundError("Discount", discount_id, order_id=order_id)
            if discount.is_billed:
                raise ValidationError(f"Discount {discount_id} is already billed", order_id=order_id)

            discount.is_active = False
            discount.set_updated_by(actor.actor_id)
            if discount.discount_code_id is not None:
                definition = self._db.get(DiscountCode, discount.discount_code_id, with_for_update=True)
                if definition is not None and definition.usage_count > 0:
                    definition.usage_count -= 1

        logger.info("Discount removed", order_id=order_id, discount_id=discount_id)
        notify_order(self._notifier, order, actor, "discount_removed")
        return discount
