from datetime import timedelta

import pytest
from jose import jwt

from conftest import BUILDING_ID, OTHER_BUILDING_ID
from visitgate.core.config import settings
from visitgate.core.exceptions import UnauthorizedError
from visitgate.services.token import TokenIssuer, render_qr


@pytest.fixture
async def submission(submit):
    return await submit()


@pytest.fixture
def issuer(session, clock):
    return TokenIssuer(session, BUILDING_ID, clock=clock)


def test_render_qr_returns_png_data_uri():
    assert render_qr("hello").startswith("data:image/png;base64,")


async def test_minted_token_carries_visit_identity(submission):
    token = submission.token
    claims = jwt.decode(
        token.display,
        settings.token_secret_key,
        algorithms=[settings.token_algorithm],
        options={"verify_exp": False},
    )
    assert claims["vid"] == submission.visit.id
    assert claims["sub"] == submission.visitor.id
    assert claims["bid"] == BUILDING_ID
    assert claims["jti"]
    assert token.expires_at - token.issued_at == timedelta(hours=settings.token_validity_hours)
    assert token.image.startswith("data:image/png;base64,")


async def test_verify_returns_live_row(issuer, submission):
    row = await issuer.verify(submission.token.display, submission.visit.id)
    assert row.visit_id == submission.visit.id
    assert row.consumed_at is None


async def test_verify_rejects_garbage(issuer, submission):
    with pytest.raises(UnauthorizedError, match="Invalid token"):
        await issuer.verify("not-a-token", submission.visit.id)


async def test_verify_rejects_token_for_another_visit(issuer, submit, submission):
    other = await submit(visitor_phone="+919000000001", visitor_name="Ravi Kumar")
    with pytest.raises(UnauthorizedError, match="does not belong"):
        await issuer.verify(submission.token.display, other.visit.id)


async def test_verify_rejects_token_from_another_building(session, clock, submission):
    south = TokenIssuer(session, OTHER_BUILDING_ID, clock=clock)
    with pytest.raises(UnauthorizedError, match="another building"):
        await south.verify(submission.token.display, submission.visit.id)


async def test_remint_supersedes_previous_token(issuer, submission):
    fresh = await issuer.mint(submission.visit.id, submission.visitor.id)

    with pytest.raises(UnauthorizedError, match="superseded"):
        await issuer.verify(submission.token.display, submission.visit.id)
    row = await issuer.verify(fresh.display, submission.visit.id)
    assert row.display == fresh.display


async def test_token_expires_after_validity_window(issuer, clock, submission):
    clock.advance(hours=settings.token_validity_hours, seconds=1)
    with pytest.raises(UnauthorizedError, match="token expired"):
        await issuer.verify(submission.token.display, submission.visit.id)


async def test_token_is_still_valid_at_the_boundary(issuer, clock, submission):
    clock.now = submission.token.expires_at
    await issuer.verify(submission.token.display, submission.visit.id)


async def test_consumed_token_cannot_be_used_again(issuer, submission):
    row = await issuer.verify(submission.token.display, submission.visit.id)
    await issuer.consume(row)

    with pytest.raises(UnauthorizedError, match="already used"):
        await issuer.verify(submission.token.display, submission.visit.id)
    with pytest.raises(UnauthorizedError, match="already used"):
        await issuer.consume(row)


async def test_revoked_token_fails_verification(issuer, submission):
    await issuer.revoke(submission.visit.id)
    with pytest.raises(UnauthorizedError, match="revoked"):
        await issuer.verify(submission.token.display, submission.visit.id)
    assert await issuer.current(submission.visit.id) is None


async def test_current_rerenders_the_same_credential(issuer, submission):
    current = await issuer.current(submission.visit.id)
    assert current.display == submission.token.display
    assert current.expires_at == submission.token.expires_at
