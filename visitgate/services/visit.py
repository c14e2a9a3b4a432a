"""Visit lifecycle - check-in, check-out, token scans and reads.

    SCHEDULED --check_in--> CHECKED_IN --check_out--> COMPLETED
    SCHEDULED --(rejected / pre-approval deleted)--> CANCELLED

Check-in is token-gated and consumes the token before it moves the visit;
check-out is state-gated. Both are status-guarded writes, so two security
desks scanning the same token at once cannot both check the visitor in, and
the one that loses sees the same 401 as a repeated scan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.actor import Actor
from visitgate.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from visitgate.core.pagination import PaginationParams
from visitgate.domain.mixins import utcnow
from visitgate.domain.states import (
    STAFF_ROLES,
    ApprovalStatus,
    PreApprovalStatus,
    Role,
    VisitStatus,
    ensure_transition,
)
from visitgate.domain.token import VisitToken
from visitgate.domain.visit import Visit
from visitgate.domain.visitor import Visitor
from visitgate.repositories.directory import DirectoryRepository
from visitgate.repositories.pre_approval import PreApprovalRepository
from visitgate.repositories.visit import VisitRepository
from visitgate.repositories.visitor import VisitorRepository
from visitgate.services.access import authorize
from visitgate.services.notifications import NotificationEvent
from visitgate.services.token import IssuedToken, TokenIssuer

logger = logging.getLogger(__name__)


@dataclass
class ScanOutcome:
    visit: Visit
    visitor: Visitor | None
    token: VisitToken


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end`` (floored)."""
    return int((end - start).total_seconds() // 60)


class VisitService:
    def __init__(
        self,
        session: AsyncSession,
        building_id: str,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._building_id = building_id
        self._clock = clock
        self._repo = VisitRepository(session, building_id)
        self._pre_approvals = PreApprovalRepository(session, building_id)
        self._visitors = VisitorRepository(session, building_id)
        self._directory = DirectoryRepository(session)
        self._tokens = TokenIssuer(session, building_id, clock=clock)
        self.outbox: list[NotificationEvent] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_visit(self, visit_id: str) -> Visit:
        visit = await self._repo.get_by_id(visit_id)
        if not visit:
            raise NotFoundError("Visit", visit_id)
        return visit

    async def _visible_visit(self, actor: Actor, visit_id: str) -> Visit:
        await authorize(self._directory, actor, self._building_id)
        visit = await self._get_visit(visit_id)
        if actor.role is Role.RESIDENT and visit.host_id != actor.user_id:
            raise ForbiddenError("Residents can only access visits they host")
        return visit

    async def _lost_race(self, visit_id: str) -> ConflictError:
        fresh = await self._repo.get_by_id(visit_id, fresh=True)
        status = fresh.status.value.lower() if fresh else "deleted"
        return ConflictError(f"Visit is already {status}")

    async def _record_usage(self, pre_approval_id: str | None) -> None:
        """Count a check-in against the pre-approval; mark it USED when exhausted."""
        if not pre_approval_id:
            return
        pre_approval = await self._pre_approvals.get_by_id(pre_approval_id, fresh=True)
        if pre_approval is None:
            return
        usage = pre_approval.usage_count + 1
        values: dict = {"usage_count": usage}
        if usage >= pre_approval.max_usage:
            ensure_transition(pre_approval.status, PreApprovalStatus.USED)
            values["status"] = PreApprovalStatus.USED
        if not await self._pre_approvals.guarded_update(
            pre_approval.id,
            {"status": pre_approval.status, "usage_count": pre_approval.usage_count},
            **values,
        ):
            raise ConflictError("Pre-approval usage changed concurrently; retry the check-in")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(
        self,
        actor: Actor,
        pagination: PaginationParams,
        status: VisitStatus | None = None,
        approval_status: ApprovalStatus | None = None,
    ) -> tuple[list[Visit], int]:
        await authorize(self._directory, actor, self._building_id)
        filters = {"status": status, "approval_status": approval_status}
        if not actor.is_staff:
            filters["host_id"] = actor.user_id
        return await self._repo.list(
            offset=pagination.offset,
            limit=pagination.limit,
            order=pagination.order,
            filters=filters,
        )

    async def get(self, actor: Actor, visit_id: str) -> Visit:
        return await self._visible_visit(actor, visit_id)

    async def get_token(self, actor: Actor, visit_id: str) -> IssuedToken:
        """The visit's live token, for the host or staff to display again."""
        visit = await self._visible_visit(actor, visit_id)
        token = await self._tokens.current(visit.id) if visit.status is VisitStatus.SCHEDULED else None
        if token is None:
            raise ConflictError(f"Visit is {visit.status.value.lower()}; no live token")
        return token

    async def scan(self, actor: Actor, display: str) -> ScanOutcome:
        """Preview the visit behind a scanned token without consuming it."""
        await authorize(self._directory, actor, self._building_id, roles=STAFF_ROLES)
        claims = self._tokens.decode(display)
        visit = await self._get_visit(claims["vid"])
        token = await self._tokens.verify(display, visit.id)
        visitor = await self._visitors.get_by_id(visit.visitor_id)
        return ScanOutcome(visit=visit, visitor=visitor, token=token)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def reissue_token(self, actor: Actor, visit_id: str) -> IssuedToken:
        """Mint a fresh token for a scheduled visit; the previous one stops verifying."""
        visit = await self._visible_visit(actor, visit_id)
        if visit.status is not VisitStatus.SCHEDULED:
            raise ConflictError(
                f"Tokens can only be issued for scheduled visits (visit is {visit.status.value.lower()})"
            )
        token = await self._tokens.mint(visit.id, visit.visitor_id)
        logger.info("Token for visit %s reissued by %s", visit.id, actor.user_id)
        return token

    async def check_in(
        self,
        actor: Actor,
        visit_id: str,
        display: str,
        security_notes: str | None = None,
    ) -> Visit:
        await authorize(self._directory, actor, self._building_id, roles=STAFF_ROLES)
        visit = await self._get_visit(visit_id)
        token = await self._tokens.verify(display, visit.id)

        if visit.approval_status is not ApprovalStatus.APPROVED:
            raise ConflictError("Visit must be approved before check-in")
        ensure_transition(visit.status, VisitStatus.CHECKED_IN)

        now = self._clock()
        values = {
            "status": VisitStatus.CHECKED_IN,
            "check_in_time": now,
            "checked_in_by": actor.user_id,
        }
        if security_notes:
            values["security_notes"] = security_notes
        # Token before visit: a desk that loses the race gets 401 here.
        await self._tokens.consume(token, at=now)
        if not await self._repo.guarded_update(
            visit.id, {"status": VisitStatus.SCHEDULED}, **values
        ):
            raise await self._lost_race(visit.id)
        await self._record_usage(visit.pre_approval_id)

        self.outbox.append(
            NotificationEvent(
                kind="visit.checked_in",
                building_id=self._building_id,
                recipient_id=visit.host_id,
                entity_id=visit.id,
                message="Your visitor has checked in",
                data={"checkInTime": now.isoformat(), "checkedInBy": actor.user_id},
            )
        )
        logger.info("Visit %s checked in by %s", visit.id, actor.user_id)
        return await self._repo.get_by_id(visit.id, fresh=True)

    async def check_out(
        self, actor: Actor, visit_id: str, security_notes: str | None = None
    ) -> Visit:
        await authorize(self._directory, actor, self._building_id, roles=STAFF_ROLES)
        visit = await self._get_visit(visit_id)
        ensure_transition(visit.status, VisitStatus.COMPLETED)

        # check_in_time is already persisted, so this sample is never earlier.
        now = self._clock()
        values = {
            "status": VisitStatus.COMPLETED,
            "check_out_time": now,
            "actual_duration": minutes_between(visit.check_in_time, now),
            "checked_out_by": actor.user_id,
        }
        if security_notes:
            values["security_notes"] = security_notes
        if not await self._repo.guarded_update(
            visit.id, {"status": VisitStatus.CHECKED_IN}, **values
        ):
            raise await self._lost_race(visit.id)

        self.outbox.append(
            NotificationEvent(
                kind="visit.checked_out",
                building_id=self._building_id,
                recipient_id=visit.host_id,
                entity_id=visit.id,
                message="Your visitor has checked out",
                data={"checkOutTime": now.isoformat(), "actualDuration": values["actual_duration"]},
            )
        )
        logger.info("Visit %s checked out after %d min", visit.id, values["actual_duration"])
        return await self._repo.get_by_id(visit.id, fresh=True)
