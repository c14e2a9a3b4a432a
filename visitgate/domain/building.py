"""SQLAlchemy ORM models for the building directory.

The directory (buildings and who belongs to them) is maintained by the wider
platform; this service only reads it to check existence and membership.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import Enum as SqlEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from visitgate.db.base import Base
from visitgate.domain.mixins import TimestampMixin
from visitgate.domain.states import Role


class Building(Base, TimestampMixin):
    __tablename__ = "buildings"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class BuildingMember(Base, TimestampMixin):
    """A user's role inside one building (residents, security, admins)."""

    __tablename__ = "building_members"
    __table_args__ = (UniqueConstraint("building_id", "user_id", name="uq_member_building_user"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role: Mapped[Role] = mapped_column(SqlEnum(Role, native_enum=False), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    flat_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
