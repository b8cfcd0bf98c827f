# tests/unit/services/test_notification_service.py
from datetime import datetime, timedelta, timezone

import pytest

from app.core.enums import NotificationType
from app.schemas.notification import Event, NotificationItem
from app.services.notification_service import InMemoryNotificationStore, NotificationService


def completed_event(event_id: str, outcomes, cancelled=False, emitted_at=None) -> Event:
    results = {
        key: {"product_id": "p1", "destination_id": key, "outcome": outcome, "error": None if outcome == "success" else "boom"}
        for key, outcome in outcomes.items()
    }
    return Event(
        id=event_id,
        name="sync.completed",
        payload={"run_id": "r1", "report": {"run_id": "r1", "keyed_by": "destination", "results": results, "cancelled": cancelled}},
        emitted_at=emitted_at or datetime.now(timezone.utc),
    )


@pytest.fixture
def service():
    return NotificationService(InMemoryNotificationStore(), retention_days=30)


@pytest.mark.parametrize(
    "outcomes, expected_type",
    [
        ({"d1": "success", "d2": "success"}, NotificationType.SUCCESS),
        ({"d1": "success", "d2": "failure"}, NotificationType.WARNING),
        ({"d1": "failure"}, NotificationType.ERROR),
    ],
)
def test_notification_type_follows_report(outcomes, expected_type):
    notification = NotificationService.notification_for_report(completed_event("e1", outcomes))

    assert notification.type == expected_type
    assert notification.id == "e1"
    assert notification.link == "/api/sync/products/p1/status"


def test_partial_message_lists_failures():
    notification = NotificationService.notification_for_report(
        completed_event("e1", {"d1": "success", "d2": "failure", "d3": "failure"}, cancelled=True)
    )

    assert notification.message == "1 of 3 destinations synced (run cancelled)"
    assert notification.details["failed"] == ["d2", "d3"]
    assert notification.details["errors"]["d2"] == "boom"


@pytest.mark.asyncio
async def test_completed_event_persisted_once(service):
    event = completed_event("e1", {"d1": "success"})

    await service.handle_event(event)
    await service.handle_event(event)

    items = await service.list_notifications()
    assert [i.id for i in items] == ["e1"]
    assert await service.unread_count() == 1


@pytest.mark.asyncio
async def test_other_events_ignored(service):
    await service.handle_event(Event(id="x", name="sync.progress", payload={}, emitted_at=datetime.now(timezone.utc)))

    assert await service.list_notifications() == []


@pytest.mark.asyncio
async def test_mark_read_delete_and_counts(service):
    await service.handle_event(completed_event("e1", {"d1": "success"}))
    await service.handle_event(completed_event("e2", {"d1": "failure"}))

    assert await service.mark_read("e1")
    assert not await service.mark_read("missing")
    assert [i.id for i in await service.list_notifications(unread_only=True)] == ["e2"]
    assert await service.mark_all_read() == 1
    assert await service.unread_count() == 0
    assert await service.delete("e1")
    assert not await service.delete("e1")


@pytest.mark.asyncio
async def test_expired_notifications_hidden_and_purged(service):
    old = datetime.now(timezone.utc) - timedelta(days=31)
    await service.handle_event(completed_event("old", {"d1": "success"}, emitted_at=old))
    await service.handle_event(completed_event("new", {"d1": "success"}))

    assert [i.id for i in await service.list_notifications()] == ["new"]
    assert await service.purge_expired() == 1
