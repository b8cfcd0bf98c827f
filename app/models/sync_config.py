# app/models/sync_config.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func

from app.database import Base


class DestinationSyncSetting(Base):
    """
    Last applied push configuration for one (product, destination) pair.

    Variant overrides live only here, keyed by variant id inside ``variant_overrides``.
    """

    __tablename__ = "destination_sync_settings"
    __table_args__ = (UniqueConstraint("product_id", "destination_id", name="uq_sync_setting_pair"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    destination_id = Column(String(64), ForeignKey("destinations.id"), nullable=False, index=True)

    # {variant_id: {"price": "9.99", "compare_at_price": null, "sku": "X"}}
    variant_overrides = Column(JSON, nullable=False, default=dict)
    config = Column(JSON, nullable=False, default=dict)  # collections, location, customizations

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class InventoryAllocation(Base):
    """Quantity of a variant's pool committed to one destination."""

    __tablename__ = "inventory_allocations"
    __table_args__ = (
        UniqueConstraint("variant_id", "destination_id", name="uq_allocation_pair"),
        CheckConstraint("quantity >= 0", name="ck_allocation_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    variant_id = Column(String(64), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False, index=True)
    destination_id = Column(String(64), ForeignKey("destinations.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<InventoryAllocation(variant={self.variant_id}, destination={self.destination_id}, qty={self.quantity})>"
