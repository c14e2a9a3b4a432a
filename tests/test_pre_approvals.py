from datetime import timedelta

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select

from conftest import (
    ADMIN,
    BUILDING_ID,
    NEIGHBOUR,
    OUTSIDE_SECURITY,
    RESIDENT,
    SECURITY,
    SUPER_ADMIN,
    pre_approval_form,
    utc_today,
)
from visitgate.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from visitgate.core.actor import Actor
from visitgate.core.pagination import PaginationParams
from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.states import ApprovalStatus, PreApprovalStatus, Role, VisitStatus
from visitgate.domain.visit import Visit
from visitgate.domain.visitor import Visitor
from visitgate.schemas.pre_approval import PreApprovalUpdate
from visitgate.services.approval import ApprovalGate
from visitgate.services.pre_approval import PreApprovalService
from visitgate.services.token import TokenIssuer
from visitgate.services.visit import VisitService
from visitgate.services.visit_generator import TokenMintError


def _page(limit: int = 10) -> PaginationParams:
    return PaginationParams(page=1, limit=limit, order="desc")


@pytest.fixture
def service(session, clock):
    return PreApprovalService(session, BUILDING_ID, clock=clock)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

async def test_create_runs_the_whole_chain(submit, clock):
    result = await submit()

    pa, visit = result.pre_approval, result.visit
    assert pa.status is PreApprovalStatus.PENDING
    assert pa.resident_id == RESIDENT.user_id
    assert pa.visitor_id == result.visitor.id
    assert pa.flat_number == "A-101"  # from the resident's directory entry
    assert pa.usage_count == 0 and pa.max_usage == 1
    assert pa.expires_at == clock.now + timedelta(hours=24)

    assert visit.pre_approval_id == pa.id
    assert visit.host_id == RESIDENT.user_id
    assert visit.visitor_id == result.visitor.id
    assert visit.status is VisitStatus.SCHEDULED
    assert visit.approval_status is ApprovalStatus.PENDING
    assert visit.scheduled_date == pa.expected_date

    assert result.token.visit_id == visit.id


async def test_two_pre_approvals_for_same_phone_share_a_visitor(submit):
    first = await submit()
    second = await submit(visitor_phone="+919876543210", purpose="Lunch")
    assert first.visitor.id == second.visitor.id
    assert first.visit.id != second.visit.id


async def test_only_residents_can_submit(service):
    with pytest.raises(ForbiddenError):
        await service.create(SECURITY, pre_approval_form())


async def test_resident_of_another_building_cannot_submit(session, clock):
    stranger = Actor("res-99", Role.RESIDENT)
    svc = PreApprovalService(session, BUILDING_ID, clock=clock)
    with pytest.raises(ForbiddenError):
        await svc.create(stranger, pre_approval_form())


async def test_unknown_building_is_not_found(session, clock):
    svc = PreApprovalService(session, "bldg-nowhere", clock=clock)
    with pytest.raises(NotFoundError):
        await svc.create(RESIDENT, pre_approval_form())


def test_expected_date_in_the_past_is_rejected():
    with pytest.raises(SchemaValidationError, match="past"):
        pre_approval_form(expected_date=utc_today() - timedelta(days=2))


def test_single_letter_visitor_name_is_accepted():
    assert pre_approval_form(visitor_name="A").visitor_name == "A"
    with pytest.raises(SchemaValidationError):
        pre_approval_form(visitor_name="   ")


async def test_expected_date_beyond_the_token_window_is_rejected(submit, session):
    with pytest.raises(ValidationError, match="on or before"):
        await submit(expected_date=utc_today() + timedelta(days=3))
    assert await session.scalar(select(func.count()).select_from(PreApproval)) == 0


def test_phone_must_look_like_a_phone_number():
    with pytest.raises(SchemaValidationError):
        pre_approval_form(visitor_phone="call me maybe")


async def test_mint_failure_is_retried(session, submit, monkeypatch):
    real_mint = TokenIssuer.mint
    calls = {"n": 0}

    async def flaky_mint(self, visit_id, visitor_id):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("signing backend unavailable")
        return await real_mint(self, visit_id, visitor_id)

    monkeypatch.setattr(TokenIssuer, "mint", flaky_mint)
    result = await submit()

    assert calls["n"] == 2
    assert result.token.visit_id == result.visit.id
    visits = await session.scalar(select(func.count()).select_from(Visit))
    assert visits == 1


async def test_persistent_mint_failure_rolls_back_the_submission(session_factory, clock, monkeypatch):
    async def broken_mint(self, visit_id, visitor_id):
        raise RuntimeError("signing backend unavailable")

    monkeypatch.setattr(TokenIssuer, "mint", broken_mint)
    async with session_factory() as session:
        svc = PreApprovalService(session, BUILDING_ID, clock=clock)
        with pytest.raises(TokenMintError):
            await svc.create(RESIDENT, pre_approval_form())
        await session.rollback()

    async with session_factory() as check:
        for model in (Visitor, PreApproval, Visit):
            assert await check.scalar(select(func.count()).select_from(model)) == 0


# ---------------------------------------------------------------------------
# list / get
# ---------------------------------------------------------------------------

async def test_resident_lists_only_their_own(service, submit):
    await submit()
    await submit(actor=NEIGHBOUR, visitor_phone="+919000000001")

    mine, total = await service.list(RESIDENT, _page())
    assert total == 1
    assert {p.resident_id for p in mine} == {RESIDENT.user_id}

    everything, total = await service.list(SECURITY, _page())
    assert total == 2


async def test_list_filters_by_effective_status(service, submit, clock):
    await submit()
    clock.advance(hours=25)

    pending, _ = await service.list(ADMIN, _page(), status=PreApprovalStatus.PENDING)
    expired, _ = await service.list(ADMIN, _page(), status=PreApprovalStatus.EXPIRED)
    assert pending == []
    assert len(expired) == 1
    assert expired[0].effective_status(clock.now) is PreApprovalStatus.EXPIRED


async def test_list_paginates(service, submit):
    for i in range(3):
        await submit(visitor_phone=f"+91900000000{i}")
    page, total = await service.list(RESIDENT, PaginationParams(page=2, limit=2, order="desc"))
    assert total == 3
    assert len(page) == 1


async def test_resident_cannot_read_a_neighbours_pre_approval(service, submit):
    theirs = await submit(actor=NEIGHBOUR)
    with pytest.raises(ForbiddenError):
        await service.get(RESIDENT, theirs.pre_approval.id)


async def test_staff_from_another_building_is_forbidden(service, submit):
    result = await submit()
    with pytest.raises(ForbiddenError):
        await service.get(OUTSIDE_SECURITY, result.pre_approval.id)


async def test_super_admin_reads_any_building(service, submit):
    result = await submit()
    record = await service.get(SUPER_ADMIN, result.pre_approval.id)
    assert record.id == result.pre_approval.id


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------

async def test_update_mirrors_schedule_onto_visit(service, submit, session):
    result = await submit()
    new_date = utc_today()
    updated = await service.update(
        RESIDENT, result.pre_approval.id,
        PreApprovalUpdate(expected_date=new_date, expected_time="10:00", purpose="Repairs"),
    )
    assert updated.expected_date == new_date

    visit = await VisitService(session, BUILDING_ID).get(RESIDENT, result.visit.id)
    assert visit.scheduled_date == new_date
    assert visit.scheduled_time == "10:00"
    assert visit.purpose == "Repairs"


async def test_changing_visitor_phone_reissues_the_token(service, submit, session, clock):
    result = await submit()
    await service.update(
        RESIDENT, result.pre_approval.id,
        PreApprovalUpdate(visitor_phone="+919111111111", visitor_name="Someone Else"),
    )
    issuer = TokenIssuer(session, BUILDING_ID, clock=clock)
    with pytest.raises(UnauthorizedError, match="superseded"):
        await issuer.verify(result.token.display, result.visit.id)

    current = await issuer.current(result.visit.id)
    visit = await VisitService(session, BUILDING_ID).get(RESIDENT, result.visit.id)
    assert visit.visitor_id != result.visitor.id
    assert current.display != result.token.display


async def test_update_cannot_move_the_visit_past_the_window(service, submit):
    result = await submit()
    with pytest.raises(ValidationError, match="on or before"):
        await service.update(
            RESIDENT, result.pre_approval.id,
            PreApprovalUpdate(expected_date=utc_today() + timedelta(days=5)),
        )


async def test_update_with_no_fields_is_invalid(service, submit):
    result = await submit()
    with pytest.raises(ValidationError):
        await service.update(RESIDENT, result.pre_approval.id, PreApprovalUpdate())


async def test_update_after_approval_conflicts(service, submit, session, clock):
    result = await submit()
    await ApprovalGate(session, BUILDING_ID, clock=clock).approve(SECURITY, result.pre_approval.id)
    with pytest.raises(ConflictError, match="already approved"):
        await service.update(RESIDENT, result.pre_approval.id, PreApprovalUpdate(notes="late"))


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

async def test_delete_cancels_the_scheduled_visit(service, submit, session, clock):
    result = await submit()
    await service.delete(RESIDENT, result.pre_approval.id)

    with pytest.raises(NotFoundError):
        await service.get(RESIDENT, result.pre_approval.id)
    visit = await session.get(Visit, result.visit.id, populate_existing=True)
    assert visit.status is VisitStatus.CANCELLED
    assert visit.deleted_at is not None

    issuer = TokenIssuer(session, BUILDING_ID, clock=clock)
    with pytest.raises(UnauthorizedError, match="revoked"):
        await issuer.verify(result.token.display, result.visit.id)


async def test_second_delete_is_not_found(service, submit):
    result = await submit()
    await service.delete(RESIDENT, result.pre_approval.id)
    with pytest.raises(NotFoundError):
        await service.delete(RESIDENT, result.pre_approval.id)


async def test_delete_blocked_while_visitor_is_inside(service, submit, session, clock):
    result = await submit()
    await ApprovalGate(session, BUILDING_ID, clock=clock).approve(SECURITY, result.pre_approval.id)
    await VisitService(session, BUILDING_ID, clock=clock).check_in(
        SECURITY, result.visit.id, result.token.display
    )
    with pytest.raises(ConflictError, match="checked in"):
        await service.delete(RESIDENT, result.pre_approval.id)


async def test_resident_cannot_delete_a_neighbours_pre_approval(service, submit):
    theirs = await submit(actor=NEIGHBOUR)
    with pytest.raises(ForbiddenError):
        await service.delete(RESIDENT, theirs.pre_approval.id)
