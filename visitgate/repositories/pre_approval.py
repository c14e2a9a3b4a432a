"""Pre-approval repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, or_

from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import PreApprovalStatus
from visitgate.repositories.base import BaseRepository


class PreApprovalRepository(BaseRepository[PreApproval]):
    model = PreApproval

    @staticmethod
    def status_condition(status: PreApprovalStatus, now: datetime):
        """SQL condition matching the *effective* status (lapsed PENDING reads as EXPIRED)."""
        lapsed = and_(
            PreApproval.status == PreApprovalStatus.PENDING,
            PreApproval.expires_at < now,
        )
        if status is PreApprovalStatus.EXPIRED:
            return or_(PreApproval.status == PreApprovalStatus.EXPIRED, lapsed)
        if status is PreApprovalStatus.PENDING:
            return and_(
                PreApproval.status == PreApprovalStatus.PENDING,
                PreApproval.expires_at >= now,
            )
        return PreApproval.status == status
