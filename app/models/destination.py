# app/models/destination.py
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import PlatformName


class Destination(Base):
    """A connected storefront that products can be pushed to."""

    __tablename__ = "destinations"

    id = Column(String(64), primary_key=True)
    platform_name = Column(String(32), nullable=False, default=PlatformName.SHOPIFY.slug)
    shop_domain = Column(String, nullable=False, unique=True)
    shop_name = Column(String, nullable=True)
    access_token = Column(String, nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    locale = Column(String(16), nullable=False, default="en")
    default_location_id = Column(String, nullable=True)
    is_connected = Column(Boolean, nullable=False, default=True, index=True)

    connected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    disconnected_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Destination(id={self.id}, shop='{self.shop_domain}', connected={self.is_connected})>"
