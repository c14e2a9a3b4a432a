import json
import logging

import httpx
import pytest
from fastapi import BackgroundTasks

from visitgate.core.config import settings
from visitgate.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    dispatch_later,
    get_dispatcher,
)


def _event(**overrides) -> NotificationEvent:
    fields = {
        "kind": "visit.checked_in",
        "building_id": "bldg-north",
        "recipient_id": "res-1",
        "entity_id": "visit-1",
        "message": "Your visitor has checked in",
        "data": {"checkedInBy": "sec-1"},
    }
    fields.update(overrides)
    return NotificationEvent(**fields)


async def test_event_is_posted_to_webhook():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    dispatcher = NotificationDispatcher(
        webhook_url="http://hooks.test/notify", transport=httpx.MockTransport(handler)
    )
    await dispatcher.dispatch(_event())

    [body] = received
    assert body["kind"] == "visit.checked_in"
    assert body["recipient_id"] == "res-1"
    assert body["data"] == {"checkedInBy": "sec-1"}
    assert isinstance(body["created_at"], str)


async def test_delivery_failure_is_logged_not_raised(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    dispatcher = NotificationDispatcher(
        webhook_url="http://hooks.test/notify", transport=httpx.MockTransport(handler)
    )
    with caplog.at_level(logging.WARNING, logger="visitgate.services.notifications"):
        await dispatcher.dispatch(_event())

    assert "was not delivered" in caplog.text


async def test_without_webhook_events_are_only_logged(caplog):
    with caplog.at_level(logging.INFO, logger="visitgate.services.notifications"):
        await NotificationDispatcher().dispatch(_event(message="hello"))
    assert "hello" in caplog.text


def test_dispatch_later_queues_one_task_per_event():
    tasks = BackgroundTasks()
    dispatch_later(tasks, [_event(), _event(kind="visit.checked_out")])
    assert len(tasks.tasks) == 2


@pytest.mark.parametrize("events", [[], ()])
def test_dispatch_later_with_empty_outbox(events):
    tasks = BackgroundTasks()
    dispatch_later(tasks, events)
    assert tasks.tasks == []


@pytest.mark.parametrize(
    "url, expected",
    [(None, None), ("", None), ("http://hooks.test/visits", "http://hooks.test/visits")],
)
def test_dispatcher_posts_only_when_webhook_is_configured(monkeypatch, url, expected):
    monkeypatch.setattr(settings, "notification_webhook_url", url)
    get_dispatcher.cache_clear()
    try:
        assert settings.notifications_enabled is (expected is not None)
        assert get_dispatcher()._webhook_url == expected
    finally:
        get_dispatcher.cache_clear()
