"""Pre-approval service - resident submissions and their mutation rules.

Submission runs the whole create chain in the caller's transaction:
visitor (deduplicated) -> pre-approval -> visit -> token. Any failure rolls
all of it back. The expected date may not fall after the day the
pre-approval (and so its token) lapses.

Rule: No SQLAlchemy queries / no FastAPI here. Repositories do the SQL.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.actor import Actor
from visitgate.core.config import settings
from visitgate.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from visitgate.core.pagination import PaginationParams
from visitgate.domain.mixins import utcnow
from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import PreApprovalStatus, Role, VisitStatus, ensure_transition
from visitgate.domain.visit import Visit
from visitgate.domain.visitor import Visitor
from visitgate.repositories.directory import DirectoryRepository
from visitgate.repositories.pre_approval import PreApprovalRepository
from visitgate.repositories.visit import VisitRepository
from visitgate.schemas.pre_approval import PreApprovalCreate, PreApprovalUpdate
from visitgate.services.access import authorize
from visitgate.services.token import IssuedToken, TokenIssuer
from visitgate.services.visit_generator import VisitGenerator
from visitgate.services.visitor import VisitorDeduplicator

logger = logging.getLogger(__name__)

# Pre-approval columns mirrored onto the generated visit when they change
_VISIT_MIRROR = {
    "purpose": "purpose",
    "expected_date": "scheduled_date",
    "expected_time": "scheduled_time",
    "flat_number": "host_flat_number",
    "visitor_id": "visitor_id",
}


@dataclass
class SubmittedPreApproval:
    pre_approval: PreApproval
    visitor: Visitor
    visit: Visit
    token: IssuedToken


class PreApprovalService:
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
        self._visitors = VisitorDeduplicator(session, building_id)
        self._tokens = TokenIssuer(session, building_id, clock=clock)
        self._generator = VisitGenerator(session, building_id, clock=clock, tokens=self._tokens)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, actor: Actor, pre_approval_id: str) -> PreApproval:
        """Fetch a live record the caller may act on (residents: only their own)."""
        await authorize(self._directory, actor, self._building_id)
        pre_approval = await self._repo.get_by_id(pre_approval_id)
        if not pre_approval:
            raise NotFoundError("Pre-approval", pre_approval_id)
        if actor.role is Role.RESIDENT and pre_approval.resident_id != actor.user_id:
            raise ForbiddenError("Residents can only access their own pre-approvals")
        return pre_approval

    @staticmethod
    def _check_window(expected_date: date | None, valid_until: datetime) -> None:
        """The visit must fall on a day the pre-approval and its token still cover."""
        if expected_date is None:
            return
        last_day = valid_until.date()
        if expected_date > last_day:
            raise ValidationError(
                f"Expected date must be on or before {last_day.isoformat()}; "
                "submit the pre-approval closer to the visit"
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, actor: Actor, data: PreApprovalCreate) -> SubmittedPreApproval:
        member = await authorize(
            self._directory, actor, self._building_id, roles={Role.RESIDENT}
        )
        now = self._clock()
        expires_at = now + timedelta(hours=settings.token_validity_hours)
        self._check_window(data.expected_date, expires_at)

        visitor = await self._visitors.resolve(
            name=data.visitor_name,
            phone=data.visitor_phone,
            email=data.visitor_email,
            purpose=data.purpose,
        )

        fields = data.model_dump(exclude={"flat_number"})
        pre_approval = await self._repo.create(
            visitor_id=visitor.id,
            resident_id=actor.user_id,
            flat_number=data.flat_number or (member.flat_number if member else None),
            status=PreApprovalStatus.PENDING,
            usage_count=0,
            max_usage=settings.pre_approval_max_usage,
            expires_at=expires_at,
            **fields,
        )
        visit, token = await self._generator.generate(pre_approval)

        logger.info(
            "Pre-approval %s submitted by %s for visitor %s (visit %s)",
            pre_approval.id, actor.user_id, visitor.id, visit.id,
        )
        return SubmittedPreApproval(pre_approval, visitor, visit, token)

    async def list(
        self,
        actor: Actor,
        pagination: PaginationParams,
        status: PreApprovalStatus | None = None,
    ) -> tuple[list[PreApproval], int]:
        await authorize(self._directory, actor, self._building_id)
        filters = None if actor.is_staff else {"resident_id": actor.user_id}
        conditions = (
            (self._repo.status_condition(status, self._clock()),) if status else ()
        )
        return await self._repo.list(
            offset=pagination.offset,
            limit=pagination.limit,
            order=pagination.order,
            filters=filters,
            conditions=conditions,
        )

    async def get(self, actor: Actor, pre_approval_id: str) -> PreApproval:
        return await self._load(actor, pre_approval_id)

    async def update(
        self, actor: Actor, pre_approval_id: str, data: PreApprovalUpdate
    ) -> PreApproval:
        pre_approval = await self._load(actor, pre_approval_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("No fields to update")

        current = pre_approval.effective_status(self._clock())
        if current is not PreApprovalStatus.PENDING:
            raise ConflictError(f"Cannot update pre-approval that is already {current.value.lower()}")
        if "expected_date" in changes:
            self._check_window(changes["expected_date"], pre_approval.expires_at)

        visitor_keys = {"visitor_name", "visitor_phone", "visitor_email"}
        if visitor_keys & changes.keys():
            visitor = await self._visitors.resolve(
                name=changes.get("visitor_name", pre_approval.visitor_name),
                phone=changes.get("visitor_phone", pre_approval.visitor_phone),
                email=changes.get("visitor_email", pre_approval.visitor_email),
            )
            if visitor.id != pre_approval.visitor_id:
                changes["visitor_id"] = visitor.id

        updated = await self._repo.guarded_update(
            pre_approval.id, {"status": PreApprovalStatus.PENDING}, **changes
        )
        if not updated:
            fresh = await self._repo.get_by_id(pre_approval.id, fresh=True)
            status = fresh.effective_status(self._clock()).value.lower() if fresh else "deleted"
            raise ConflictError(f"Cannot update pre-approval that is already {status}")

        visit = await self._visits.get_by_pre_approval(pre_approval.id)
        mirrored = {_VISIT_MIRROR[k]: v for k, v in changes.items() if k in _VISIT_MIRROR}
        if visit and mirrored:
            if not await self._visits.guarded_update(
                visit.id, {"status": VisitStatus.SCHEDULED}, **mirrored
            ):
                raise ConflictError("Visit is no longer scheduled")
            if "visitor_id" in mirrored:
                # The old token names the old visitor; replace it.
                await self._tokens.mint(visit.id, mirrored["visitor_id"])

        logger.info("Pre-approval %s updated by %s: %s", pre_approval.id, actor.user_id, sorted(changes))
        return await self._repo.get_by_id(pre_approval.id, fresh=True)

    async def delete(self, actor: Actor, pre_approval_id: str) -> None:
        """Tombstone the pre-approval without leaving its visit dangling.

        A scheduled visit is cancelled (token revoked) and tombstoned with it;
        finished visits are tombstoned; a visitor still on the premises blocks
        the delete.
        """
        pre_approval = await self._load(actor, pre_approval_id)
        now = self._clock()

        visit = await self._visits.get_by_pre_approval(pre_approval.id)
        if visit is not None:
            if visit.status is VisitStatus.CHECKED_IN:
                raise ConflictError("Cannot delete a pre-approval while its visitor is checked in")
            if visit.status is VisitStatus.SCHEDULED:
                ensure_transition(visit.status, VisitStatus.CANCELLED)
                cancelled = await self._visits.guarded_update(
                    visit.id,
                    {"status": VisitStatus.SCHEDULED},
                    status=VisitStatus.CANCELLED,
                    deleted_at=now,
                    deleted_by=actor.user_id,
                )
                if not cancelled:
                    raise ConflictError("Visit changed while deleting; fetch it again and retry")
                await self._tokens.revoke(visit.id, at=now)
            else:
                await self._visits.soft_delete(visit.id, deleted_by=actor.user_id, at=now)

        deleted = await self._repo.soft_delete(pre_approval.id, deleted_by=actor.user_id, at=now)
        if not deleted:
            raise NotFoundError("Pre-approval", pre_approval_id)
        logger.info("Pre-approval %s deleted by %s", pre_approval.id, actor.user_id)
