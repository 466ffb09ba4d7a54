"""
Order Repository - orders, items and kitchen tickets.
"""

from typing import Sequence

from sqlalchemy import Select, select
from sqlalchemy.orm import selectinload

from pos_shared.config.constants import OrderStatus, KotStatus
from pos_api.models import Order, OrderItem, OrderTransferLog, KotTicket, OrderDiscount, DiscountCode
from .base import BaseRepository


class OrderRepository(BaseRepository[Order]):
    """
    Repository for Order entities.

    Orders are always loaded with items, tickets and discounts, which
    every lifecycle decision needs.
    """

    @property
    def model(self) -> type[Order]:
        return Order

    def _base_query(self) -> Select:
        return select(Order).options(
            selectinload(Order.items),
            selectinload(Order.tickets),
            selectinload(Order.discounts),
        )

    def live_order_for_session(self, session_id: int) -> Order | None:
        """The non-terminal order attached to a table session, if any."""
        query = (
            self._base_query()
            .where(
                Order.table_session_id == session_id,
                Order.status.in_(OrderStatus.ACTIVE),
            )
            .order_by(Order.id.desc())
        )
        return self._db.scalar(query)

    def list_active(self, outlet_id: int, order_type: str | None = None) -> Sequence[Order]:
        query = (
            self._base_query()
            .where(Order.outlet_id == outlet_id, Order.status.in_(OrderStatus.ACTIVE))
            .order_by(Order.id)
        )
        if order_type:
            query = query.where(Order.order_type == order_type)
        return self._db.execute(query).scalars().all()

    def get_item(self, order_id: int, item_id: int) -> OrderItem | None:
        query = select(OrderItem).where(OrderItem.id == item_id, OrderItem.order_id == order_id)
        return self._db.scalar(query)

    def get_ticket_for_update(self, kot_id: int) -> KotTicket | None:
        query = (
            select(KotTicket)
            .options(selectinload(KotTicket.items))
            .where(KotTicket.id == kot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._db.scalar(query)

    def list_station_tickets(
        self,
        outlet_id: int,
        station: str | None = None,
        statuses: frozenset[str] | None = None,
    ) -> Sequence[KotTicket]:
        query = (
            select(KotTicket)
            .options(selectinload(KotTicket.items))
            .where(
                KotTicket.outlet_id == outlet_id,
                KotTicket.status.in_(statuses or KotStatus.OPEN),
            )
            .order_by(KotTicket.id)
        )
        if station:
            query = query.where(KotTicket.station == station)
        return self._db.execute(query).scalars().all()

    def active_discounts(self, order_id: int) -> Sequence[OrderDiscount]:
        query = (
            select(OrderDiscount)
            .where(OrderDiscount.order_id == order_id, OrderDiscount.is_active.is_(True))
            .order_by(OrderDiscount.id)
        )
        return self._db.execute(query).scalars().all()

    def get_discount(self, order_id: int, discount_id: int) -> OrderDiscount | None:
        query = select(OrderDiscount).where(
            OrderDiscount.id == discount_id,
            OrderDiscount.order_id == order_id,
            OrderDiscount.is_active.is_(True),
        )
        return self._db.scalar(query)

    def find_discount_code(self, outlet_id: int, code: str, for_update: bool = False) -> DiscountCode | None:
        query = select(DiscountCode).where(
            DiscountCode.outlet_id == outlet_id,
            DiscountCode.code == code.strip().upper(),
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._db.scalar(query)

    def transfers(self, order_id: int) -> Sequence[OrderTransferLog]:
        query = (
            select(OrderTransferLog)
            .where(OrderTransferLog.order_id == order_id)
            .order_by(OrderTransferLog.id)
        )
        return self._db.execute(query).scalars().all()
