"""User-facing notifications built from sync events."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.enums import NotificationType, SyncEventName
from app.models.notification import Notification
from app.schemas.notification import Event, NotificationItem

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class NotificationStore(Protocol):
    async def add(self, item: NotificationItem, expires_at: Optional[datetime]) -> bool: ...

    async def list(self, unread_only: bool, limit: int, now: datetime) -> List[NotificationItem]: ...

    async def unread_count(self, now: datetime) -> int: ...

    async def mark_read(self, notification_id: str) -> bool: ...

    async def mark_all_read(self) -> int: ...

    async def delete(self, notification_id: str) -> bool: ...

    async def purge_expired(self, now: datetime) -> int: ...


class InMemoryNotificationStore:
    def __init__(self):
        self._items: Dict[str, NotificationItem] = {}
        self._expires: Dict[str, Optional[datetime]] = {}

    def _live(self, now: datetime) -> List[NotificationItem]:
        items = [
            item for item_id, item in self._items.items()
            if self._expires[item_id] is None or self._expires[item_id] > now
        ]
        return sorted(items, key=lambda item: item.created_at, reverse=True)

    async def add(self, item: NotificationItem, expires_at: Optional[datetime]) -> bool:
        if item.id in self._items:
            return False
        self._items[item.id] = item
        self._expires[item.id] = expires_at
        return True

    async def list(self, unread_only: bool, limit: int, now: datetime) -> List[NotificationItem]:
        items = self._live(now)
        if unread_only:
            items = [item for item in items if not item.is_read]
        return items[:limit]

    async def unread_count(self, now: datetime) -> int:
        return sum(1 for item in self._live(now) if not item.is_read)

    async def mark_read(self, notification_id: str) -> bool:
        item = self._items.get(notification_id)
        if item is None:
            return False
        self._items[notification_id] = item.model_copy(update={"is_read": True})
        return True

    async def mark_all_read(self) -> int:
        unread = [item_id for item_id, item in self._items.items() if not item.is_read]
        for item_id in unread:
            await self.mark_read(item_id)
        return len(unread)

    async def delete(self, notification_id: str) -> bool:
        self._expires.pop(notification_id, None)
        return self._items.pop(notification_id, None) is not None

    async def purge_expired(self, now: datetime) -> int:
        expired = [item_id for item_id, expires in self._expires.items() if expires is not None and expires <= now]
        for item_id in expired:
            await self.delete(item_id)
        return len(expired)


def _item_from_row(row: Notification) -> NotificationItem:
    return NotificationItem(
        id=row.id,
        title=row.title,
        message=row.message,
        type=NotificationType(row.type),
        is_read=row.is_read,
        link=row.link,
        details=row.details,
        created_at=_aware(row.created_at),
    )


class SqlNotificationStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _not_expired(now: datetime):
        return (Notification.expires_at.is_(None)) | (Notification.expires_at > now)

    async def add(self, item: NotificationItem, expires_at: Optional[datetime]) -> bool:
        async with self._session_factory() as session:
            if await session.get(Notification, item.id) is not None:
                return False
            session.add(Notification(
                id=item.id,
                title=item.title,
                message=item.message,
                type=item.type.value,
                is_read=item.is_read,
                link=item.link,
                details=item.details,
                created_at=item.created_at,
                expires_at=expires_at,
            ))
            await session.commit()
            return True

    async def list(self, unread_only: bool, limit: int, now: datetime) -> List[NotificationItem]:
        query = select(Notification).where(self._not_expired(now))
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_item_from_row(row) for row in rows]

    async def unread_count(self, now: datetime) -> int:
        query = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.is_read.is_(False), self._not_expired(now))
        )
        async with self._session_factory() as session:
            return (await session.execute(query)).scalar_one()

    async def mark_read(self, notification_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification).where(Notification.id == notification_id).values(is_read=True)
            )
            await session.commit()
            return result.rowcount > 0

    async def mark_all_read(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification).where(Notification.is_read.is_(False)).values(is_read=True)
            )
            await session.commit()
            return result.rowcount

    async def delete(self, notification_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(Notification).where(Notification.id == notification_id))
            await session.commit()
            return result.rowcount > 0

    async def purge_expired(self, now: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Notification).where(Notification.expires_at.is_not(None), Notification.expires_at <= now)
            )
            await session.commit()
            return result.rowcount


class NotificationService:
    """
    Persists a notification for every completed sync run and serves the
    notification list. Subscribed to the relay at startup.
    """

    def __init__(self, store: NotificationStore, retention_days: int = 30):
        self._store = store
        self._retention = timedelta(days=retention_days)

    async def handle_event(self, event: Event) -> None:
        if event.name != SyncEventName.COMPLETED.value:
            return
        item = self.notification_for_report(event)
        if await self._store.add(item, item.created_at + self._retention):
            logger.info("Stored notification %s: %s", item.id, item.message)

    @staticmethod
    def notification_for_report(event: Event) -> NotificationItem:
        report = event.payload.get("report") or {}
        results = report.get("results") or {}
        keyed_by = report.get("keyed_by", "destination")
        failed = sorted(key for key, result in results.items() if result.get("outcome") != "success")
        succeeded = len(results) - len(failed)

        if not results or len(failed) == len(results):
            kind = NotificationType.ERROR
            title = "Sync failed"
        elif failed:
            kind = NotificationType.WARNING
            title = "Sync partially completed"
        else:
            kind = NotificationType.SUCCESS
            title = "Sync completed"

        noun = "destinations" if keyed_by == "destination" else "products"
        message = f"{succeeded} of {len(results)} {noun} synced"
        if report.get("cancelled"):
            message += " (run cancelled)"

        product_ids = {result.get("product_id") for result in results.values()}
        link = None
        if len(product_ids) == 1:
            link = f"/api/sync/products/{product_ids.pop()}/status"

        return NotificationItem(
            id=event.id,
            title=title,
            message=message,
            type=kind,
            link=link,
            details={
                "run_id": report.get("run_id"),
                "failed": failed,
                "errors": {key: results[key].get("error") for key in failed},
            },
            created_at=event.emitted_at,
        )

    async def list_notifications(self, unread_only: bool = False, limit: int = 50) -> List[NotificationItem]:
        return await self._store.list(unread_only, limit, _utcnow())

    async def unread_count(self) -> int:
        return await self._store.unread_count(_utcnow())

    async def mark_read(self, notification_id: str) -> bool:
        return await self._store.mark_read(notification_id)

    async def mark_all_read(self) -> int:
        return await self._store.mark_all_read()

    async def delete(self, notification_id: str) -> bool:
        return await self._store.delete(notification_id)

    async def purge_expired(self) -> int:
        count = await self._store.purge_expired(_utcnow())
        if count:
            logger.info("Purged %d expired notifications", count)
        return count
