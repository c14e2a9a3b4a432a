"""Visit token repository."""


from visitgate.domain.token import VisitToken
from visitgate.repositories.base import BaseRepository


class VisitTokenRepository(BaseRepository[VisitToken]):
    model = VisitToken

    async def get_by_visit(self, visit_id: str, *, fresh: bool = False) -> VisitToken | None:
        q = self._base_query().where(VisitToken.visit_id == visit_id)
        if fresh:
            q = q.execution_options(populate_existing=True)
        return (await self._session.execute(q)).scalars().first()
