"""Fire-and-forget notifications for approval and check-in events.

Services only append :class:`NotificationEvent` objects to their outbox.
Routers hand the outbox to FastAPI background tasks, which run after the
request transaction has committed; a delivery failure is logged and can
never undo the state change that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterable

import httpx

from visitgate.core.config import settings
from visitgate.domain.mixins import utcnow

logger = logging.getLogger(__name__)


@dataclass
class NotificationEvent:
    kind: str  # pre_approval.approved | pre_approval.rejected | visit.checked_in | visit.checked_out
    building_id: str
    recipient_id: str
    entity_id: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict[str, Any]:
        body = asdict(self)
        body["created_at"] = self.created_at.isoformat()
        return body


class NotificationDispatcher:
    """Logs every event and, when a webhook is configured, POSTs it there."""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    async def dispatch(self, event: NotificationEvent) -> None:
        logger.info(
            "Notify %s about %s %s: %s",
            event.recipient_id, event.kind, event.entity_id, event.message,
        )
        if not self._webhook_url:
            return
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._webhook_url, json=event.as_dict())
                response.raise_for_status()
        except Exception as exc:
            logger.warning(
                "Notification %s for %s was not delivered: %s",
                event.kind, event.entity_id, exc,
            )


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        webhook_url=settings.notification_webhook_url if settings.notifications_enabled else None,
        timeout=settings.notification_timeout,
    )


def dispatch_later(background_tasks: Any, events: Iterable[NotificationEvent]) -> None:
    """Queue events on a BackgroundTasks-like object (anything with ``add_task``)."""
    dispatcher = get_dispatcher()
    for event in events:
        background_tasks.add_task(dispatcher.dispatch, event)
