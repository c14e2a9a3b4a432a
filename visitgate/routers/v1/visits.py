"""Visit router - security desk operations and visit reads."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.actor import Actor, get_actor
from visitgate.core.pagination import PaginationParams
from visitgate.core.response import DataResponse, ListResponse, paginated
from visitgate.db.base import SessionDep
from visitgate.domain.states import ApprovalStatus, VisitStatus
from visitgate.schemas.visit import (
    CheckInRequest,
    CheckOutRequest,
    ScanRequest,
    ScanResult,
    TokenOut,
    VisitOut,
    VisitorOut,
)
from visitgate.services.notifications import dispatch_later
from visitgate.services.visit import VisitService

router = APIRouter(prefix="/buildings/{building_id}/visits", tags=["Visits"])


def _svc(session: AsyncSession, building_id: str) -> VisitService:
    return VisitService(session, building_id)


@router.get("", response_model=ListResponse[VisitOut])
async def list_visits(
    building_id: str,
    filter_status: Optional[VisitStatus] = Query(default=None, alias="status"),
    approval_status: Optional[ApprovalStatus] = Query(default=None, alias="approvalStatus"),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Residents see visits they host; staff see the whole building."""
    items, total = await _svc(session, building_id).list(
        actor, pagination, status=filter_status, approval_status=approval_status
    )
    return paginated([VisitOut.model_validate(v) for v in items], total, pagination)


# Declared before /{visit_id} routes so "scan" is never taken for an id.
@router.post("/scan", response_model=DataResponse[ScanResult])
async def scan_token(
    building_id: str,
    body: ScanRequest,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Look up the visit behind a token without consuming it."""
    outcome = await _svc(session, building_id).scan(actor, body.token)
    return {
        "data": ScanResult(
            visit=VisitOut.model_validate(outcome.visit),
            visitor=VisitorOut.model_validate(outcome.visitor) if outcome.visitor else None,
            token_expires_at=outcome.token.expires_at,
        )
    }


@router.get("/{visit_id}", response_model=DataResponse[VisitOut])
async def get_visit(
    building_id: str,
    visit_id: str,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    visit = await _svc(session, building_id).get(actor, visit_id)
    return {"data": VisitOut.model_validate(visit)}


@router.post("/{visit_id}/check-in", response_model=DataResponse[VisitOut])
async def check_in(
    building_id: str,
    visit_id: str,
    body: CheckInRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    svc = _svc(session, building_id)
    visit = await svc.check_in(actor, visit_id, body.token, security_notes=body.security_notes)
    await session.commit()
    dispatch_later(background_tasks, svc.outbox)
    return {"data": VisitOut.model_validate(visit)}


@router.post("/{visit_id}/check-out", response_model=DataResponse[VisitOut])
async def check_out(
    building_id: str,
    visit_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CheckOutRequest] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    svc = _svc(session, building_id)
    visit = await svc.check_out(
        actor, visit_id, security_notes=body.security_notes if body else None
    )
    await session.commit()
    dispatch_later(background_tasks, svc.outbox)
    return {"data": VisitOut.model_validate(visit)}


@router.get("/{visit_id}/token", response_model=DataResponse[TokenOut])
async def get_visit_token(
    building_id: str,
    visit_id: str,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Show the live token again (same credential, freshly rendered QR)."""
    token = await _svc(session, building_id).get_token(actor, visit_id)
    return {"data": TokenOut.model_validate(token)}


@router.post("/{visit_id}/token", response_model=DataResponse[TokenOut])
async def reissue_visit_token(
    building_id: str,
    visit_id: str,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Replace the visit's token; the previous one stops verifying."""
    token = await _svc(session, building_id).reissue_token(actor, visit_id)
    return {"data": TokenOut.model_validate(token)}
