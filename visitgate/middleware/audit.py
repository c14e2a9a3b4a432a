"""Audit logging middleware - records every state-changing request to audit_trail."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Optional

from fastapi import Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware

from visitgate.db.base import async_session_factory
from visitgate.domain.audit import AuditTrail

logger = logging.getLogger(__name__)

# Methods that mutate state
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def describe_path(path: str) -> tuple[Optional[str], str, Optional[str]]:
    """Split a request path into (building_id, entity_type, entity_id).

    /api/v1/buildings/b1/pre-approvals/<uuid>/approve -> ("b1", "pre-approval", "<uuid>")
    """
    parts = [p for p in path.strip("/").split("/") if p]
    building_id = None
    if "buildings" in parts:
        idx = parts.index("buildings")
        building_id = parts[idx + 1] if len(parts) > idx + 1 else None
        parts = parts[idx + 2:]
    if not parts:
        return building_id, "building", None

    entity_type = parts[0].rstrip("s")  # simple singularize
    entity_id = parts[1] if len(parts) >= 2 and len(parts[1]) == 36 else None
    return building_id, entity_type, entity_id


class AuditMiddleware(BaseHTTPMiddleware):
    """Logs all write operations.

    Each audit row is written asynchronously AFTER the response is sent so it
    never adds latency to the request. Failures in audit logging are caught and
    logged; they never reach the caller.
    """

    def __init__(self, app, session_factory: async_sessionmaker[AsyncSession] | None = None):
        super().__init__(app)
        self._session_factory = session_factory or async_session_factory
        self._tasks: set[asyncio.Task] = set()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000)

        if request.method in _WRITE_METHODS:
            # Fire-and-forget: don't await here so the response is not delayed
            task = asyncio.create_task(
                self._record(request, response.status_code, duration_ms)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return response

    async def _record(
        self, request: Request, status_code: int, duration_ms: int
    ) -> None:
        """Persist an audit row. Errors are logged, never raised."""
        try:
            building_id, entity_type, entity_id = describe_path(request.url.path)
            async with self._session_factory() as session:
                session.add(
                    AuditTrail(
                        user_id=request.headers.get("x-user-id"),
                        user_role=request.headers.get("x-user-role"),
                        ip_address=request.client.host if request.client else None,
                        user_agent=request.headers.get("user-agent"),
                        action=f"{request.method}:{status_code}",
                        building_id=building_id,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        description=f"{request.method} {request.url.path} -> {status_code} ({duration_ms}ms)",
                    )
                )
                await session.commit()
        except Exception:  # pragma: no cover
            logger.exception("Audit row for %s %s was not written", request.method, request.url.path)
