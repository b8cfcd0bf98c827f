# app/services/notification_relay.py
"""
In-process event fan-out plus the client-side notification feed.

``NotificationRelay`` is built once at startup and handed to every component
that emits. Subscribers are plain callables or coroutine functions; a failing
subscriber is logged and never stops delivery to the others.

``NotificationFeed`` is the consumer side: an ordered list of notifications
with optimistic read/delete mutations that roll back exactly on failure.
"""

import inspect
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Set, Union

from app.schemas.notification import Event, NotificationItem

logger = logging.getLogger(__name__)

WILDCARD = "*"

Handler = Callable[[Event], Union[None, Awaitable[None]]]


def _event_name(name: Union[str, Enum]) -> str:
    return name.value if isinstance(name, Enum) else name


class NotificationRelay:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_name: Union[str, Enum], handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for one event name, or ``"*"`` for all. Returns an unsubscribe callable."""
        name = _event_name(event_name)
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event_name: Union[str, Enum], payload: Optional[Dict[str, Any]] = None) -> Event:
        event = Event(
            id=uuid.uuid4().hex,
            name=_event_name(event_name),
            payload=payload or {},
            emitted_at=datetime.now(timezone.utc),
        )
        handlers = list(self._handlers.get(event.name, ())) + list(self._handlers.get(WILDCARD, ()))
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber %r failed handling %s (%s)", handler, event.name, event.id)
        return event

    def listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(_event_name(event_name), ()))

    def close(self) -> None:
        """Drop every subscriber. Safe to call more than once."""
        self._handlers.clear()
        logger.info("Notification relay closed")


# --- Consumer side ---------------------------------------------------------------

class NotificationBackend(Protocol):
    async def mark_read(self, notification_id: str) -> None: ...

    async def mark_all_read(self) -> None: ...

    async def delete(self, notification_id: str) -> None: ...


class NotificationFeed:
    """
    Newest-first list of notifications as a client sees them.

    Delivery is at-least-once, so an id already seen is ignored, including
    ids the user has since deleted. Mutations are applied locally first and
    undone if the backend rejects them; the error is re-raised.
    """

    def __init__(self, backend: NotificationBackend, items: Iterable[NotificationItem] = ()):
        self._backend = backend
        self._items: List[NotificationItem] = list(items)
        self._seen: Set[str] = {item.id for item in self._items}
        self._pending_reads: Set[str] = set()
        self._pending_deletes: Set[str] = set()

    @property
    def items(self) -> List[NotificationItem]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self._items if not item.is_read)

    def add(self, item: NotificationItem) -> bool:
        if item.id in self._seen:
            logger.debug("Ignoring duplicate notification %s", item.id)
            return False
        self._seen.add(item.id)
        self._items.insert(0, item)
        return True

    def receive(self, event: Event) -> bool:
        """Add the notification carried by a relayed event, keyed by the event id."""
        body = dict(event.payload.get("notification") or {})
        body.setdefault("title", event.name)
        body.setdefault("message", "")
        body.setdefault("created_at", event.emitted_at)
        body["id"] = event.id
        return self.add(NotificationItem(**body))

    def _index_of(self, notification_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == notification_id:
                return index
        return None

    async def mark_read(self, notification_id: str) -> None:
        index = self._index_of(notification_id)
        if index is None:
            raise KeyError(notification_id)
        prior = self._items[index]
        self._items[index] = prior.model_copy(update={"is_read": True})
        self._pending_reads.add(notification_id)
        try:
            await self._backend.mark_read(notification_id)
        except Exception:
            logger.warning("mark_read failed for %s; restoring previous state", notification_id)
            current = self._index_of(notification_id)
            if current is not None:
                self._items[current] = prior
            raise
        finally:
            self._pending_reads.discard(notification_id)

    async def mark_all_read(self) -> None:
        prior = {item.id: item for item in self._items if not item.is_read}
        self._items = [item.model_copy(update={"is_read": True}) if item.id in prior else item for item in self._items]
        self._pending_reads.update(prior)
        try:
            await self._backend.mark_all_read()
        except Exception:
            logger.warning("mark_all_read failed; restoring %d notifications", len(prior))
            self._items = [prior.get(item.id, item) for item in self._items]
            raise
        finally:
            self._pending_reads.difference_update(prior)

    async def delete(self, notification_id: str) -> None:
        index = self._index_of(notification_id)
        if index is None:
            raise KeyError(notification_id)
        following = self._items[index + 1].id if index + 1 < len(self._items) else None
        preceding = self._items[index - 1].id if index > 0 else None
        prior = self._items.pop(index)
        self._pending_deletes.add(notification_id)
        try:
            await self._backend.delete(notification_id)
        except Exception:
            logger.warning("delete failed for %s; restoring it", notification_id)
            self._items.insert(self._restore_position(following, preceding, index), prior)
            raise
        finally:
            self._pending_deletes.discard(notification_id)

    def _restore_position(self, following: Optional[str], preceding: Optional[str], index: int) -> int:
        """Where a rolled-back item goes: before its old successor, else after its old predecessor."""
        if following is not None:
            position = self._index_of(following)
            if position is not None:
                return position
        if preceding is not None:
            position = self._index_of(preceding)
            if position is not None:
                return position + 1
        return min(index, len(self._items))

    def reconcile(self, items: Iterable[NotificationItem]) -> None:
        """Adopt the server's list, keeping mutations that are still in flight."""
        reconciled = []
        for item in items:
            self._seen.add(item.id)
            if item.id in self._pending_deletes:
                continue
            if item.id in self._pending_reads and not item.is_read:
                item = item.model_copy(update={"is_read": True})
            reconciled.append(item)
        self._items = reconciled
