"""SQLAlchemy ORM model for Visitors.

A visitor is identified by (phone_number, building_id); the unique
constraint is what keeps concurrent first submissions from duplicating it.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from visitgate.db.base import Base
from visitgate.domain.mixins import BuildingScopedMixin, TimestampMixin


class Visitor(Base, BuildingScopedMixin, TimestampMixin):
    __tablename__ = "visitors"
    __table_args__ = (
        UniqueConstraint("phone_number", "building_id", name="uq_visitor_phone_building"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
