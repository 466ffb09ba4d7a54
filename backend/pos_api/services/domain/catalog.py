"""
Catalog collaborator.

Supplies price, preparation station and tax components for a menu item at
the moment it is added to an order. OrderService depends on the Catalog
protocol; SqlCatalog reads the menu tables of this database.
"""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from pos_shared.config.constants import DEFAULT_STATION
from pos_shared.utils.exceptions import MenuItemNotFoundError
from pos_api.models import MenuItem, TaxGroup
from .tax_engine import TaxRate


@dataclass(frozen=True)
class CatalogEntry:
    item_id: int
    name: str
    unit_price_cents: int
    station: str
    tax_group_code: str | None
    taxes: tuple[TaxRate, ...]


class Catalog(Protocol):
    def lookup(self, outlet_id: int, item_id: int, variant_id: int | None = None) -> CatalogEntry:
        ...


class SqlCatalog:
    """Catalog backed by the MenuItem / TaxGroup tables."""

    def __init__(self, db: Session):
        self._db = db

    def lookup(self, outlet_id: int, item_id: int, variant_id: int | None = None) -> CatalogEntry:
        item = self._db.scalar(
            select(MenuItem)
            .options(selectinload(MenuItem.tax_group).selectinload(TaxGroup.components))
            .where(
                MenuItem.id == item_id,
                MenuItem.outlet_id == outlet_id,
                MenuItem.is_active.is_(True),
            )
        )
        if item is None:
            raise MenuItemNotFoundError(item_id, outlet_id=outlet_id)

        group = item.tax_group
        taxes: tuple[TaxRate, ...] = ()
        if group is not None:
            taxes = tuple(
                TaxRate(code=c.code, name=c.name, rate_bps=c.rate_bps)
                for c in group.components
                if c.is_active
            )

        return CatalogEntry(
            item_id=item.id,
            name=item.name,
            unit_price_cents=item.price_cents,
            station=item.station or DEFAULT_STATION,
            tax_group_code=group.code if group is not None else None,
            taxes=taxes,
        )
