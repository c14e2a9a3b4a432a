"""Visitor repository."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from visitgate.domain.visitor import Visitor
from visitgate.repositories.base import BaseRepository

_UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class VisitorRepository(BaseRepository[Visitor]):
    model = Visitor

    async def get_by_phone(self, phone_number: str) -> Visitor | None:
        return await self.find_one(Visitor.phone_number == phone_number)

    async def insert_if_absent(self, phone_number: str, **values: Any) -> None:
        """Insert a visitor unless (phone, building) already exists.

        Two first-time submissions for the same phone can race; ON CONFLICT
        DO NOTHING lets the loser fall through to a plain read instead of
        failing the whole transaction.
        """
        insert = _UPSERT_INSERTS.get(self._session.get_bind().dialect.name)
        if insert is None:
            if await self.get_by_phone(phone_number) is None:
                await self.create(phone_number=phone_number, **values)
            return

        stmt = (
            insert(Visitor)
            .values(building_id=self._building_id, phone_number=phone_number, **values)
            .on_conflict_do_nothing(index_elements=["phone_number", "building_id"])
        )
        await self._session.execute(stmt)
