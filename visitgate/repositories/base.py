"""Generic async repository with tombstones, pagination, and building isolation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key

from visitgate.db.base import Base
from visitgate.domain.mixins import utcnow

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic CRUD repository. All queries are filtered by building_id.

    Tombstones: rows with `deleted_at IS NOT NULL` are excluded from every
    read and write issued here; this is the only place that filter lives.
    Hard-delete is intentionally never exposed.
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession, building_id: str):
        self._session = session
        self._building_id = building_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _live(self, stmt):
        """Restrict a SELECT/UPDATE to this building's non-tombstoned rows."""
        stmt = stmt.where(self.model.building_id == self._building_id)
        if hasattr(self.model, "deleted_at"):
            stmt = stmt.where(self.model.deleted_at.is_(None))
        return stmt

    def _base_query(self):
        return self._live(select(self.model))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_id(self, entity_id: str, *, fresh: bool = False) -> ModelT | None:
        """Load one row; ``fresh`` bypasses the identity map to see the committed state."""
        q = self._base_query().where(self.model.id == entity_id)
        if fresh:
            q = q.execution_options(populate_existing=True)
        result = await self._session.execute(q)
        return result.scalars().first()

    async def find_one(self, *conditions: Any) -> ModelT | None:
        result = await self._session.execute(self._base_query().where(*conditions))
        return result.scalars().first()

    async def list(
        self,
        *,
        offset: int = 0,
        limit: int = 20,
        order: str = "desc",
        filters: dict[str, Any] | None = None,
        conditions: tuple = (),
    ) -> tuple[list[ModelT], int]:
        """Return (items, total_count) with pagination, equality filters and raw conditions."""
        q = self._base_query()

        # Apply simple equality filters
        if filters:
            for col_name, value in filters.items():
                if value is not None and hasattr(self.model, col_name):
                    q = q.where(getattr(self.model, col_name) == value)
        if conditions:
            q = q.where(*conditions)

        # Count
        count_q = select(func.count()).select_from(q.subquery())
        total = (await self._session.execute(count_q)).scalar_one()

        # Order + paginate
        col = self.model.created_at
        q = q.order_by(col.desc() if order == "desc" else col.asc())
        q = q.offset(offset).limit(limit)

        items = (await self._session.execute(q)).scalars().all()
        return list(items), total

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create(self, **kwargs: Any) -> ModelT:
        instance = self.model(building_id=self._building_id, **kwargs)
        self._session.add(instance)
        await self._session.flush()  # populate id
        await self._session.refresh(instance)
        return instance

    async def update(self, entity_id: str, **kwargs: Any) -> ModelT | None:
        await self.guarded_update(entity_id, {}, **kwargs)
        return await self.get_by_id(entity_id, fresh=True)

    async def guarded_update(
        self, entity_id: str, expected: dict[str, Any], **values: Any
    ) -> bool:
        """Conditional write: apply ``values`` only if every ``expected`` column still matches.

        Returns False when the row is gone or another writer changed it first.
        A matched instance already in the session is updated in place.
        Callers re-read and report the current state; nothing is retried here.
        """
        values.pop("id", None)
        values.pop("building_id", None)
        if "updated_at" not in values and hasattr(self.model, "updated_at"):
            values["updated_at"] = utcnow()

        stmt = self._live(update(self.model)).where(self.model.id == entity_id)
        for col_name, value in expected.items():
            column = getattr(self.model, col_name)
            stmt = stmt.where(column.is_(None) if value is None else column == value)

        result = await self._session.execute(
            stmt.values(**values)
            .returning(self.model.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            return False

        # Keep an already-loaded instance in step with the row it now matches.
        instance = self._session.identity_map.get(identity_key(self.model, entity_id))
        if instance is not None:
            for col_name, value in values.items():
                set_committed_value(instance, col_name, value)
        return True

    async def soft_delete(
        self, entity_id: str, *, deleted_by: str | None = None, at: datetime | None = None
    ) -> bool:
        """Tombstone a live row. A second call finds nothing live and returns False."""
        return await self.guarded_update(
            entity_id, {}, deleted_at=at or utcnow(), deleted_by=deleted_by
        )
