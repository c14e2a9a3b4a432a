"""Read-only lookups against the building directory.

Buildings and their members are owned by the wider platform; this service
only asks "does the building exist" and "what is this user's role there".
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.domain.building import Building, BuildingMember


class DirectoryRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_building(self, building_id: str) -> Building | None:
        return await self._session.get(Building, building_id)

    async def get_member(self, building_id: str, user_id: str) -> BuildingMember | None:
        result = await self._session.execute(
            select(BuildingMember).where(
                BuildingMember.building_id == building_id,
                BuildingMember.user_id == user_id,
            )
        )
        return result.scalars().first()
