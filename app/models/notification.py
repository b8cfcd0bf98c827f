# app/models/notification.py
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Text
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import NotificationType


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True)  # the originating event id, so redelivery is a no-op
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default=NotificationType.INFO.value)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    link = Column(String, nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return f"<Notification(id={self.id}, type={self.type}, read={self.is_read})>"
