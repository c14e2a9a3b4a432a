"""Derive the visit and its token from a freshly submitted pre-approval."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.config import settings
from visitgate.core.exceptions import AppException
from visitgate.domain.mixins import utcnow
from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import ApprovalStatus, PreApprovalStatus, VisitStatus, VisitType
from visitgate.domain.visit import Visit
from visitgate.repositories.visit import VisitRepository
from visitgate.services.token import IssuedToken, TokenIssuer

logger = logging.getLogger(__name__)


class TokenMintError(AppException):
    def __init__(self, visit_id: str):
        super().__init__(
            f"Could not issue a verification token for visit '{visit_id}'",
            status_code=503,
            code="TOKEN_MINT_FAILED",
        )


class VisitGenerator:
    """Creates exactly one SCHEDULED visit per pre-approval, together with its token.

    Minting is retried against the same visit id inside a savepoint. If every
    attempt fails the error propagates and the request transaction rolls back,
    taking the visit (and the pre-approval and visitor created with it) along.
    """

    def __init__(
        self,
        session: AsyncSession,
        building_id: str,
        *,
        clock: Callable[[], datetime] = utcnow,
        tokens: TokenIssuer | None = None,
    ):
        self._session = session
        self._visits = VisitRepository(session, building_id)
        self._tokens = tokens or TokenIssuer(session, building_id, clock=clock)
        self._attempts = settings.token_mint_attempts

    async def generate(self, pre_approval: PreApproval) -> tuple[Visit, IssuedToken]:
        if pre_approval.status is not PreApprovalStatus.PENDING:
            raise ValueError("Visits are generated only for pending pre-approvals")

        visit = await self._visits.create(
            visitor_id=pre_approval.visitor_id,
            host_id=pre_approval.resident_id,
            pre_approval_id=pre_approval.id,
            host_flat_number=pre_approval.flat_number,
            purpose=pre_approval.purpose,
            visit_type=VisitType.PRE_APPROVED,
            scheduled_date=pre_approval.expected_date,
            scheduled_time=pre_approval.expected_time,
            status=VisitStatus.SCHEDULED,
            approval_status=ApprovalStatus.PENDING,
        )
        token = await self._mint_with_retry(visit)
        return visit, token

    async def _mint_with_retry(self, visit: Visit) -> IssuedToken:
        last_error: Exception | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                async with self._session.begin_nested():
                    return await self._tokens.mint(visit.id, visit.visitor_id)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Token mint for visit %s failed (attempt %d/%d): %s",
                    visit.id, attempt, self._attempts, exc,
                )
        logger.error("Giving up on visit %s; discarding the submission", visit.id)
        raise TokenMintError(visit.id) from last_error
