"""Building and role checks shared by every service operation.

Checks run before any business logic: unknown building first (NotFound),
then role and membership (Forbidden).
"""

from __future__ import annotations

from collections.abc import Collection

from visitgate.core.actor import Actor
from visitgate.core.exceptions import ForbiddenError, NotFoundError
from visitgate.domain.building import BuildingMember
from visitgate.domain.states import Role
from visitgate.repositories.directory import DirectoryRepository


async def authorize(
    directory: DirectoryRepository,
    actor: Actor,
    building_id: str,
    *,
    roles: Collection[Role] | None = None,
) -> BuildingMember | None:
    """Return the caller's membership row (None for super admins, who span buildings)."""
    building = await directory.get_building(building_id)
    if building is None:
        raise NotFoundError("Building", building_id)

    if roles is not None and actor.role not in roles:
        allowed = ", ".join(sorted(r.value for r in roles))
        raise ForbiddenError(f"Role {actor.role.value} is not allowed here (requires {allowed})")

    if actor.is_super_admin:
        return None

    member = await directory.get_member(building_id, actor.user_id)
    if member is None or member.role is not actor.role:
        raise ForbiddenError("You do not belong to this building")
    return member
