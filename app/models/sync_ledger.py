# app/models/sync_ledger.py
from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Text, JSON, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import SyncStatus


class SyncLedgerEntry(Base):
    """
    Durable sync state for one (product, destination) pair.

    Rows are never deleted; disconnecting a destination only stamps
    ``invalidated_at`` so the history stays visible.
    """
    __tablename__ = "sync_ledger"
    __table_args__ = (UniqueConstraint("product_id", "destination_id", name="uq_ledger_pair"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), nullable=False, index=True)
    destination_id = Column(String(64), nullable=False, index=True)

    remote_id = Column(String, nullable=True)
    remote_handle = Column(String, nullable=True)
    remote_variant_ids = Column(JSON, nullable=True)  # {variant_id: remote_variant_id}

    status = Column(String(16), nullable=False, default=SyncStatus.NEVER_SYNCED.value, index=True)
    last_operation = Column(String(16), nullable=True)
    last_error = Column(Text, nullable=True)
    last_error_kind = Column(String(16), nullable=True)
    payload_hash = Column(String(64), nullable=True)

    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    invalidated_at = Column(DateTime(timezone=True), nullable=True)

    attempt_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return (f"<SyncLedgerEntry(product={self.product_id}, destination={self.destination_id}, "
                f"status='{self.status}', remote_id={self.remote_id})>")


class SyncHistoryEntry(Base):
    """Append-only log of every finished sync attempt."""
    __tablename__ = "sync_history"

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), nullable=False, index=True)
    destination_id = Column(String(64), nullable=False, index=True)
    operation = Column(String(16), nullable=True)
    success = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)
    error_kind = Column(String(16), nullable=True)
    remote_id = Column(String, nullable=True)
    duration_ms = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
