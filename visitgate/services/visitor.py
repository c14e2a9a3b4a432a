"""Visitor deduplication: one visitor record per (phone, building)."""

from __future__ import annotations

import logging
import re

from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.domain.visitor import Visitor
from visitgate.repositories.visitor import VisitorRepository

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r"[\s\-()]")


def normalize_phone(phone: str) -> str:
    """Strip formatting so "+91 00000-00001" and "+910000000001" match."""
    return _PHONE_NOISE.sub("", phone.strip())


class VisitorDeduplicator:
    def __init__(self, session: AsyncSession, building_id: str):
        self._repo = VisitorRepository(session, building_id)

    async def resolve(
        self,
        *,
        name: str,
        phone: str,
        email: str | None = None,
        purpose: str | None = None,
    ) -> Visitor:
        """Return the building's visitor for ``phone``, creating it on first sight.

        Contact details of an existing visitor are refreshed from the latest
        submission; identity (phone, building) never changes.
        """
        phone = normalize_phone(phone)
        visitor = await self._repo.get_by_phone(phone)
        if visitor is None:
            await self._repo.insert_if_absent(phone, name=name, email=email, purpose=purpose)
            visitor = await self._repo.get_by_phone(phone)
            logger.info("Visitor %s registered for phone ending %s", visitor.id, phone[-4:])
            return visitor

        changes = {
            key: value
            for key, value in {"name": name, "email": email, "purpose": purpose}.items()
            if value is not None and value != getattr(visitor, key)
        }
        if changes:
            visitor = await self._repo.update(visitor.id, **changes)
        return visitor
