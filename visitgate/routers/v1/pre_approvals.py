"""Pre-approval router - resident submissions and the staff approval gate.

Pattern (same for every v1 router):
  1. Declare a router with prefix and tags
  2. Inject DB session + caller identity via Depends
  3. Instantiate the service with (session, building_id)
  4. Call service methods and wrap result in response envelope
  5. Commit, then hand the service outbox to background tasks
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.actor import Actor, get_actor
from visitgate.core.pagination import PaginationParams
from visitgate.core.response import DataResponse, ListResponse, paginated
from visitgate.db.base import SessionDep
from visitgate.domain.states import PreApprovalStatus
from visitgate.schemas.pre_approval import (
    ApproveRequest,
    PreApprovalCreate,
    PreApprovalCreated,
    PreApprovalOut,
    PreApprovalUpdate,
    RejectRequest,
)
from visitgate.schemas.visit import TokenOut, VisitOut, VisitorOut
from visitgate.services.approval import ApprovalGate
from visitgate.services.notifications import dispatch_later
from visitgate.services.pre_approval import PreApprovalService

router = APIRouter(prefix="/buildings/{building_id}/pre-approvals", tags=["Pre-approvals"])


def _svc(session: AsyncSession, building_id: str) -> PreApprovalService:
    return PreApprovalService(session, building_id)


# ------------------------------------------------------------------
# Resident submissions
# ------------------------------------------------------------------

@router.post("", response_model=DataResponse[PreApprovalCreated], status_code=status.HTTP_201_CREATED)
async def create_pre_approval(
    building_id: str,
    body: PreApprovalCreate,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Submit a pre-approval. Creates the visitor, visit and token in one go."""
    result = await _svc(session, building_id).create(actor, body)
    return {
        "data": PreApprovalCreated(
            pre_approval=PreApprovalOut.from_record(result.pre_approval),
            visitor=VisitorOut.model_validate(result.visitor),
            visit=VisitOut.model_validate(result.visit),
            token=TokenOut.model_validate(result.token),
        )
    }


@router.get("", response_model=ListResponse[PreApprovalOut])
async def list_pre_approvals(
    building_id: str,
    filter_status: Optional[PreApprovalStatus] = Query(default=None, alias="status", description="Filter by status"),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    """Residents see their own pre-approvals; staff see the whole building."""
    items, total = await _svc(session, building_id).list(actor, pagination, status=filter_status)
    return paginated([PreApprovalOut.from_record(p) for p in items], total, pagination)


@router.get("/{pre_approval_id}", response_model=DataResponse[PreApprovalOut])
async def get_pre_approval(
    building_id: str,
    pre_approval_id: str,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    record = await _svc(session, building_id).get(actor, pre_approval_id)
    return {"data": PreApprovalOut.from_record(record)}


@router.put("/{pre_approval_id}", response_model=DataResponse[PreApprovalOut])
async def update_pre_approval(
    building_id: str,
    pre_approval_id: str,
    body: PreApprovalUpdate,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    record = await _svc(session, building_id).update(actor, pre_approval_id, body)
    return {"data": PreApprovalOut.from_record(record)}


@router.delete("/{pre_approval_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pre_approval(
    building_id: str,
    pre_approval_id: str,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    await _svc(session, building_id).delete(actor, pre_approval_id)


# ------------------------------------------------------------------
# Approval gate (security / admins)
# ------------------------------------------------------------------

@router.post("/{pre_approval_id}/approve", response_model=DataResponse[PreApprovalOut])
async def approve_pre_approval(
    building_id: str,
    pre_approval_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[ApproveRequest] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    gate = ApprovalGate(session, building_id)
    record = await gate.approve(actor, pre_approval_id, notes=body.notes if body else None)
    await session.commit()
    dispatch_later(background_tasks, gate.outbox)
    return {"data": PreApprovalOut.from_record(record)}


@router.post("/{pre_approval_id}/reject", response_model=DataResponse[PreApprovalOut])
async def reject_pre_approval(
    building_id: str,
    pre_approval_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[RejectRequest] = None,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = SessionDep,
):
    gate = ApprovalGate(session, building_id)
    record = await gate.reject(
        actor,
        pre_approval_id,
        reason=body.reason if body else None,
        notes=body.notes if body else None,
    )
    await session.commit()
    dispatch_later(background_tasks, gate.outbox)
    return {"data": PreApprovalOut.from_record(record)}
