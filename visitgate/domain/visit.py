"""SQLAlchemy ORM model for Visits."""

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
)
from visitgate.domain.states import ApprovalStatus, VisitStatus, VisitType


class Visit(Base, BuildingScopedMixin, TimestampMixin, TombstoneMixin):
    __tablename__ = "visits"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    visitor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    host_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # Back-reference only; a pre-approval yields exactly one visit
    pre_approval_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, unique=True, index=True
    )
    host_flat_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    purpose: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    visit_type: Mapped[VisitType] = mapped_column(
        SqlEnum(VisitType, native_enum=False, length=20),
        default=VisitType.PRE_APPROVED,
        nullable=False,
    )
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    scheduled_time: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[VisitStatus] = mapped_column(
        SqlEnum(VisitStatus, native_enum=False, length=20),
        default=VisitStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SqlEnum(ApprovalStatus, native_enum=False, length=20),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Check-in / check-out
    check_in_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    actual_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    checked_in_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    checked_out_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    security_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
