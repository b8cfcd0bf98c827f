"""
Schemas for relay events and user-facing notifications.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from app.core.enums import NotificationType
from app.schemas.base import BaseSchema, FrozenSchema


class Event(FrozenSchema):
    """One relay delivery. ``id`` is unique per emit and survives redelivery."""
    id: str
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime


class NotificationItem(FrozenSchema):
    id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    is_read: bool = False
    link: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime
