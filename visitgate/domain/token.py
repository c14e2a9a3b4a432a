"""SQLAlchemy ORM model for visit verification tokens.

One row per visit. Re-minting rewrites the row with a fresh nonce, so only
the most recently issued display string can ever verify.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from visitgate.db.base import Base
from visitgate.domain.mixins import BuildingScopedMixin, TimestampMixin, UTCDateTime


class VisitToken(Base, BuildingScopedMixin, TimestampMixin):
    __tablename__ = "visit_tokens"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    visit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    visitor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    nonce: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display: Mapped[str] = mapped_column(Text, nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
