from sqlalchemy import func, select

from conftest import BUILDING_ID, OTHER_BUILDING_ID
from visitgate.domain.visitor import Visitor
from visitgate.repositories.visitor import VisitorRepository
from visitgate.services.visitor import VisitorDeduplicator, normalize_phone


def test_normalize_phone_strips_formatting():
    assert normalize_phone(" +91 (987) 654-3210 ") == "+919876543210"


async def test_first_submission_creates_visitor(session):
    visitor = await VisitorDeduplicator(session, BUILDING_ID).resolve(
        name="Asha Rao", phone="+91 98765-43210", email="asha@example.com"
    )
    assert visitor.id
    assert visitor.phone_number == "+919876543210"
    assert visitor.building_id == BUILDING_ID
    assert visitor.email == "asha@example.com"


async def test_same_phone_resolves_to_same_visitor(session):
    dedup = VisitorDeduplicator(session, BUILDING_ID)
    first = await dedup.resolve(name="Asha Rao", phone="+919876543210")
    second = await dedup.resolve(name="Asha R.", phone="+91 98765 43210", purpose="Tea")

    assert second.id == first.id
    # contact details follow the latest submission
    assert second.name == "Asha R."
    assert second.purpose == "Tea"
    count = await session.scalar(select(func.count()).select_from(Visitor))
    assert count == 1


async def test_same_phone_in_another_building_is_a_different_visitor(session):
    north = await VisitorDeduplicator(session, BUILDING_ID).resolve(name="Asha", phone="+919876543210")
    south = await VisitorDeduplicator(session, OTHER_BUILDING_ID).resolve(name="Asha", phone="+919876543210")
    assert north.id != south.id


async def test_insert_if_absent_ignores_an_existing_phone(session):
    # The loser of a first-submission race reaches the insert after the
    # winner's row exists; ON CONFLICT DO NOTHING leaves the winner intact.
    repo = VisitorRepository(session, BUILDING_ID)
    await repo.insert_if_absent("+919876543210", name="Winner")
    await repo.insert_if_absent("+919876543210", name="Loser")

    visitor = await repo.get_by_phone("+919876543210")
    assert visitor.name == "Winner"
    count = await session.scalar(select(func.count()).select_from(Visitor))
    assert count == 1
