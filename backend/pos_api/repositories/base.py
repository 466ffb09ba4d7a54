"""
Base Repository implementation.
Provides common data access patterns with outlet isolation and row locking.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Sequence

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

ModelT = TypeVar("ModelT")


class BaseRepository(ABC, Generic[ModelT]):
    """
    Abstract base repository.

    Subclasses provide the model class. Reads that precede a state change
    go through get_for_update so the decision is made on a locked row.
    """

    def __init__(self, db: Session):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        ...

    def _base_query(self) -> Select:
        return select(self.model)

    def find_by_id(self, entity_id: int, outlet_id: int | None = None) -> ModelT | None:
        query = self._base_query().where(self.model.id == entity_id)
        if outlet_id is not None:
            query = query.where(self.model.outlet_id == outlet_id)
        return self._db.scalar(query)

    def get_for_update(self, entity_id: int) -> ModelT | None:
        """Read a row with a write lock held until the transaction ends."""
        query = (
            self._base_query()
            .where(self.model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._db.scalar(query)

    def find_by_ids_for_update(self, entity_ids: list[int]) -> Sequence[ModelT]:
        """Lock several rows in primary-key order so concurrent callers cannot deadlock."""
        if not entity_ids:
            return []
        query = (
            self._base_query()
            .where(self.model.id.in_(entity_ids))
            .order_by(self.model.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._db.execute(query).scalars().all()

    def save(self, entity: ModelT) -> ModelT:
        """Add entity and flush so generated ids are available."""
        self._db.add(entity)
        self._db.flush()
        return entity
