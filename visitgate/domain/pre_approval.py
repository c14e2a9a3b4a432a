"""SQLAlchemy ORM model for resident-submitted visitor pre-approvals."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, Enum as SqlEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from visitgate.db.base import Base
from visitgate.domain.mixins import (
    BuildingScopedMixin,
    TimestampMixin,
    TombstoneMixin,
    UTCDateTime,
    utcnow,
)
from visitgate.domain.states import PreApprovalStatus


class PreApproval(Base, BuildingScopedMixin, TimestampMixin, TombstoneMixin):
    __tablename__ = "pre_approvals"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Weak reference: visitors are shared across pre-approvals
    visitor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    resident_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Snapshot of what the resident submitted
    visitor_name: Mapped[str] = mapped_column(String(100), nullable=False)
    visitor_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    visitor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    flat_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    resident_mobile_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    expected_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    expected_time: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[PreApprovalStatus] = mapped_column(
        SqlEnum(PreApprovalStatus, native_enum=False, length=20),
        default=PreApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_usage: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Pending requests lapse after the token validity window
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    approved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    def effective_status(self, now: datetime | None = None) -> PreApprovalStatus:
        """Stored status, with PENDING reported as EXPIRED once its window has passed."""
        if self.status is PreApprovalStatus.PENDING and (now or utcnow()) > self.expires_at:
            return PreApprovalStatus.EXPIRED
        return self.status

    @property
    def full_identification(self) -> str:
        return f"{self.visitor_name} - {self.visitor_phone}"
