"""Caller identity forwarded by the authenticating gateway.

The gateway verifies the session and forwards ``X-User-Id`` and
``X-User-Role``. Building membership is checked per operation against the
directory, not here.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header

from visitgate.core.exceptions import UnauthorizedError, ValidationError
from visitgate.domain.states import STAFF_ROLES, Role


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN


def get_actor(
    x_user_id: str | None = Header(default=None, description="Authenticated user id"),
    x_user_role: str | None = Header(default=None, description="Authenticated user role"),
) -> Actor:
    if not x_user_id or not x_user_role:
        raise UnauthorizedError("Missing caller identity")
    try:
        role = Role(x_user_role.strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown role '{x_user_role}'") from None
    return Actor(user_id=x_user_id.strip(), role=role)
