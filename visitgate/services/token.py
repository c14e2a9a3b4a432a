"""Verification tokens: minting, verification and consumption.

Expiry policy: a token expires ``settings.token_validity_hours`` after it
was issued. The same window is used everywhere a token is minted.

The display string is a signed JWT carrying the visit id, visitor id,
building id, issue time and a random nonce. The database row keyed by visit
holds the *current* nonce, so minting again for a visit makes every earlier
display string fail verification.
"""

from __future__ import annotations

import base64
import io
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import qrcode
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from visitgate.core.config import settings
from visitgate.core.exceptions import UnauthorizedError
from visitgate.domain.mixins import utcnow
from visitgate.domain.token import VisitToken
from visitgate.repositories.token import VisitTokenRepository

logger = logging.getLogger(__name__)


@dataclass
class IssuedToken:
    visit_id: str
    payload: dict[str, Any]
    display: str
    image: str
    issued_at: datetime
    expires_at: datetime


def render_qr(data: str, box_size: int | None = None) -> str:
    """Render ``data`` as a PNG QR code and return it as a data URI."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size or settings.token_qr_box_size,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class TokenIssuer:
    def __init__(
        self,
        session: AsyncSession,
        building_id: str,
        *,
        clock: Callable[[], datetime] = utcnow,
        validity: timedelta | None = None,
    ):
        self._building_id = building_id
        self._repo = VisitTokenRepository(session, building_id)
        self._clock = clock
        self._validity = validity or timedelta(hours=settings.token_validity_hours)

    @property
    def validity(self) -> timedelta:
        return self._validity

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    async def mint(self, visit_id: str, visitor_id: str) -> IssuedToken:
        """Issue the visit's token, replacing (and thereby invalidating) any earlier one."""
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._validity
        nonce = secrets.token_urlsafe(24)
        payload = {
            "vid": visit_id,
            "sub": visitor_id,
            "bid": self._building_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": nonce,
        }
        display = jwt.encode(payload, settings.token_secret_key, algorithm=settings.token_algorithm)
        image = render_qr(display)

        values = {
            "visitor_id": visitor_id,
            "nonce": nonce,
            "display": display,
            "issued_at": issued_at,
            "expires_at": expires_at,
            "consumed_at": None,
            "revoked_at": None,
        }
        existing = await self._repo.get_by_visit(visit_id)
        if existing is None:
            await self._repo.create(visit_id=visit_id, **values)
        else:
            await self._repo.update(existing.id, **values)
            logger.info("Token for visit %s re-minted; previous token invalidated", visit_id)

        return IssuedToken(
            visit_id=visit_id,
            payload=payload,
            display=display,
            image=image,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    async def current(self, visit_id: str) -> IssuedToken | None:
        """The live token of a visit, re-rendered for display (no new nonce)."""
        row = await self._repo.get_by_visit(visit_id)
        if row is None or row.revoked_at is not None:
            return None
        return IssuedToken(
            visit_id=visit_id,
            payload=self._decode(row.display),
            display=row.display,
            image=render_qr(row.display),
            issued_at=row.issued_at,
            expires_at=row.expires_at,
        )

    # ------------------------------------------------------------------
    # Verify / consume
    # ------------------------------------------------------------------

    def _decode(self, display: str) -> dict[str, Any]:
        try:
            # Expiry is judged against the stored row and the service clock.
            return jwt.decode(
                display,
                settings.token_secret_key,
                algorithms=[settings.token_algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            raise UnauthorizedError("Invalid token") from None

    def decode(self, display: str) -> dict[str, Any]:
        """Signature-checked claims; raises Unauthorized for anything not minted here."""
        claims = self._decode(display)
        if claims.get("bid") != self._building_id:
            raise UnauthorizedError("Token was issued for another building")
        if not claims.get("vid") or not claims.get("jti"):
            raise UnauthorizedError("Invalid token")
        return claims

    async def verify(self, display: str, visit_id: str) -> VisitToken:
        """Return the live token row for ``visit_id`` or raise Unauthorized.

        A failed verification is final for that attempt and never extends
        the token's validity.
        """
        claims = self.decode(display)
        if claims["vid"] != visit_id:
            raise UnauthorizedError("Token does not belong to this visit")

        row = await self._repo.get_by_visit(visit_id, fresh=True)
        if row is None or row.nonce != claims["jti"]:
            raise UnauthorizedError("Token has been superseded")
        if row.revoked_at is not None:
            raise UnauthorizedError("Token has been revoked")
        if self._clock() > row.expires_at:
            raise UnauthorizedError("Verification token expired")
        if row.consumed_at is not None:
            raise UnauthorizedError("Token already used")
        return row

    async def consume(self, row: VisitToken, at: datetime | None = None) -> None:
        """Mark a verified token used. Exactly one caller can win this write."""
        consumed = await self._repo.guarded_update(
            row.id,
            {"nonce": row.nonce, "consumed_at": None, "revoked_at": None},
            consumed_at=at or self._clock(),
        )
        if not consumed:
            raise UnauthorizedError("Token already used")

    async def revoke(self, visit_id: str, at: datetime | None = None) -> None:
        row = await self._repo.get_by_visit(visit_id)
        if row is not None and row.revoked_at is None:
            await self._repo.update(row.id, revoked_at=at or self._clock())
            logger.info("Token for visit %s revoked", visit_id)
