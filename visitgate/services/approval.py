"""Approval gate - staff approve or reject pending pre-approvals.

Both operations are a status-guarded write on the pre-approval followed by
the cascade onto its visit, inside the request transaction. A lost race is
reported as a Conflict carrying the current status and is never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.actor import Actor
from visitgate.core.exceptions import ConflictError, NotFoundError
from visitgate.domain.mixins import utcnow
from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import (
    STAFF_ROLES,
    ApprovalStatus,
    PreApprovalStatus,
    VisitStatus,
    ensure_transition,
)
from visitgate.repositories.directory import DirectoryRepository
from visitgate.repositories.pre_approval import PreApprovalRepository
from visitgate.repositories.visit import VisitRepository
from visitgate.services.access import authorize
from visitgate.services.notifications import NotificationEvent
from visitgate.services.token import TokenIssuer

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"


class ApprovalGate:
    def __init__(
        self,
        session: AsyncSession,
        building_id: str,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._building_id = building_id
        self._clock = clock
        self._repo = PreApprovalRepository(session, building_id)
        self._visits = VisitRepository(session, building_id)
        self._directory = DirectoryRepository(session)
        self._tokens = TokenIssuer(session, building_id, clock=clock)
        self.outbox: list[NotificationEvent] = []

    async def _pending(self, actor: Actor, pre_approval_id: str, now: datetime) -> PreApproval:
        await authorize(self._directory, actor, self._building_id, roles=STAFF_ROLES)
        pre_approval = await self._repo.get_by_id(pre_approval_id)
        if not pre_approval:
            raise NotFoundError("Pre-approval", pre_approval_id)
        current = pre_approval.effective_status(now)
        if current is not PreApprovalStatus.PENDING:
            raise ConflictError(f"Pre-approval is already {current.value.lower()}")
        return pre_approval

    async def _lost_race(self, pre_approval_id: str, now: datetime) -> ConflictError:
        fresh = await self._repo.get_by_id(pre_approval_id, fresh=True)
        if fresh is None:
            return ConflictError("Pre-approval was deleted")
        return ConflictError(f"Pre-approval is already {fresh.effective_status(now).value.lower()}")

    async def approve(
        self, actor: Actor, pre_approval_id: str, notes: str | None = None
    ) -> PreApproval:
        now = self._clock()
        pre_approval = await self._pending(actor, pre_approval_id, now)
        ensure_transition(pre_approval.status, PreApprovalStatus.APPROVED)

        values = {
            "status": PreApprovalStatus.APPROVED,
            "approved_by": actor.user_id,
            "approved_at": now,
        }
        if notes:
            values["notes"] = notes
        if not await self._repo.guarded_update(
            pre_approval.id, {"status": PreApprovalStatus.PENDING}, **values
        ):
            raise await self._lost_race(pre_approval.id, now)

        visit = await self._visits.get_by_pre_approval(pre_approval.id)
        if visit is not None:
            ensure_transition(visit.approval_status, ApprovalStatus.APPROVED)
            # Check-in stays a separate event: status remains SCHEDULED.
            if not await self._visits.guarded_update(
                visit.id,
                {"approval_status": ApprovalStatus.PENDING, "status": VisitStatus.SCHEDULED},
                approval_status=ApprovalStatus.APPROVED,
                approved_by=actor.user_id,
                approved_at=now,
            ):
                raise ConflictError("Visit is no longer awaiting approval")

        self.outbox.append(
            NotificationEvent(
                kind="pre_approval.approved",
                building_id=self._building_id,
                recipient_id=pre_approval.resident_id,
                entity_id=pre_approval.id,
                message=f"Your pre-approval for {pre_approval.visitor_name} was approved",
                data={"visitId": visit.id if visit else None, "approvedBy": actor.user_id},
            )
        )
        logger.info("Pre-approval %s approved by %s (%s)", pre_approval.id, actor.user_id, actor.role.value)
        return await self._repo.get_by_id(pre_approval.id, fresh=True)

    async def reject(
        self,
        actor: Actor,
        pre_approval_id: str,
        reason: str | None = None,
        notes: str | None = None,
    ) -> PreApproval:
        now = self._clock()
        pre_approval = await self._pending(actor, pre_approval_id, now)
        ensure_transition(pre_approval.status, PreApprovalStatus.REJECTED)

        reason = reason or DEFAULT_REJECTION_REASON
        values = {
            "status": PreApprovalStatus.REJECTED,
            "rejected_by": actor.user_id,
            "rejected_at": now,
            "rejection_reason": reason,
        }
        if notes:
            values["notes"] = notes
        if not await self._repo.guarded_update(
            pre_approval.id, {"status": PreApprovalStatus.PENDING}, **values
        ):
            raise await self._lost_race(pre_approval.id, now)

        visit = await self._visits.get_by_pre_approval(pre_approval.id)
        if visit is not None:
            ensure_transition(visit.status, VisitStatus.CANCELLED)
            ensure_transition(visit.approval_status, ApprovalStatus.REJECTED)
            if not await self._visits.guarded_update(
                visit.id,
                {"approval_status": ApprovalStatus.PENDING, "status": VisitStatus.SCHEDULED},
                status=VisitStatus.CANCELLED,
                approval_status=ApprovalStatus.REJECTED,
                rejection_reason=reason,
            ):
                raise ConflictError("Visit is no longer awaiting approval")
            await self._tokens.revoke(visit.id, at=now)

        self.outbox.append(
            NotificationEvent(
                kind="pre_approval.rejected",
                building_id=self._building_id,
                recipient_id=pre_approval.resident_id,
                entity_id=pre_approval.id,
                message=f"Your pre-approval for {pre_approval.visitor_name} was rejected: {reason}",
                data={"visitId": visit.id if visit else None, "rejectedBy": actor.user_id},
            )
        )
        logger.info("Pre-approval %s rejected by %s: %s", pre_approval.id, actor.user_id, reason)
        return await self._repo.get_by_id(pre_approval.id, fresh=True)
