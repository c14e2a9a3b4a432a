"""Visit repository."""


from visitgate.domain.visit import Visit
from visitgate.repositories.base import BaseRepository


class VisitRepository(BaseRepository[Visit]):
    model = Visit

    async def get_by_pre_approval(self, pre_approval_id: str) -> Visit | None:
        return await self.find_one(Visit.pre_approval_id == pre_approval_id)
