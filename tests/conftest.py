"""Shared fixtures: a throwaway SQLite database, a seeded building directory,
a controllable clock and an HTTP client wired to the same database."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from visitgate.core.actor import Actor
from visitgate.db.base import create_schema, get_db
from visitgate.domain.building import Building, BuildingMember
from visitgate.domain.states import Role
from visitgate.main import create_app
from visitgate.schemas.pre_approval import PreApprovalCreate
from visitgate.services.pre_approval import PreApprovalService

BUILDING_ID = "bldg-north"
OTHER_BUILDING_ID = "bldg-south"

RESIDENT = Actor("res-1", Role.RESIDENT)
NEIGHBOUR = Actor("res-2", Role.RESIDENT)
SECURITY = Actor("sec-1", Role.SECURITY)
ADMIN = Actor("adm-1", Role.BUILDING_ADMIN)
SUPER_ADMIN = Actor("root", Role.SUPER_ADMIN)
OUTSIDE_SECURITY = Actor("sec-2", Role.SECURITY)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def headers(actor: Actor) -> dict[str, str]:
    return {"X-User-Id": actor.user_id, "X-User-Role": actor.role.value}


class Clock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'visitgate_test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        session.add_all(
            [
                Building(id=BUILDING_ID, name="North Tower"),
                Building(id=OTHER_BUILDING_ID, name="South Tower"),
                BuildingMember(building_id=BUILDING_ID, user_id="res-1", role=Role.RESIDENT, flat_number="A-101"),
                BuildingMember(building_id=BUILDING_ID, user_id="res-2", role=Role.RESIDENT, flat_number="B-202"),
                BuildingMember(building_id=BUILDING_ID, user_id="sec-1", role=Role.SECURITY),
                BuildingMember(building_id=BUILDING_ID, user_id="adm-1", role=Role.BUILDING_ADMIN),
                BuildingMember(building_id=OTHER_BUILDING_ID, user_id="sec-2", role=Role.SECURITY),
            ]
        )
        await session.commit()
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


def pre_approval_form(**overrides) -> PreApprovalCreate:
    fields = {
        "visitor_name": "Asha Rao",
        "visitor_phone": "+91 98765-43210",
        "visitor_email": "asha@example.com",
        "purpose": "Dinner",
        "expected_date": utc_today() + timedelta(days=1),
        "expected_time": "19:30",
    }
    fields.update(overrides)
    return PreApprovalCreate(**fields)


@pytest.fixture
def submit(session, clock):
    """Run the full create chain as a resident and return the SubmittedPreApproval."""

    async def _submit(actor: Actor = RESIDENT, **overrides):
        svc = PreApprovalService(session, BUILDING_ID, clock=clock)
        return await svc.create(actor, pre_approval_form(**overrides))

    return _submit


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory):
    app = create_app(session_factory=session_factory)

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
