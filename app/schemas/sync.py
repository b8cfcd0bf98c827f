"""
Schemas for sync configuration, ledger records and job results.

Ledger records are frozen; every state change produces a new record via
the pure functions in ``app.services.sync_ledger``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field, computed_field

from app.core.enums import (
    ErrorKind,
    PriceAdjustmentType,
    SyncOperation,
    SyncOutcome,
    SyncStatus,
)
from app.schemas.base import BaseSchema, FrozenSchema


# --- Configuration -------------------------------------------------------------

class VariantOverride(BaseSchema):
    """
    Per-destination replacement values for one variant.

    ``None`` means "use the variant's base value". A price of ``0`` is a real
    price (free item), not an absent one.
    """
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    sku: Optional[str] = None


class PriceAdjustment(BaseSchema):
    type: PriceAdjustmentType = PriceAdjustmentType.NONE
    value: Decimal = Decimal("0")
    round_to: Decimal = Decimal("0.01")
    apply_to_compare_at: bool = True


class DestinationSyncConfig(BaseSchema):
    """What to push to one destination. Inventory values are requested, not committed, quantities."""
    variant_overrides: Dict[str, VariantOverride] = Field(default_factory=dict)
    inventory: Dict[str, int] = Field(default_factory=dict)
    collection_ids: List[str] = Field(default_factory=list)
    location_id: Optional[str] = None
    title_prefix: Optional[str] = None
    title_suffix: Optional[str] = None
    extra_tags: List[str] = Field(default_factory=list)
    price_adjustment: Optional[PriceAdjustment] = None
    force_sync: bool = False


class BulkSyncConfig(BaseSchema):
    """A default configuration plus optional per-target (destination or product id) replacements."""
    default: DestinationSyncConfig = Field(default_factory=DestinationSyncConfig)
    targets: Dict[str, DestinationSyncConfig] = Field(default_factory=dict)

    def for_target(self, key: str) -> DestinationSyncConfig:
        return self.targets.get(key, self.default)


class InventoryAssignment(FrozenSchema):
    variant_id: str
    destination_id: str
    quantity: int = Field(ge=0)


class AssignmentDecision(FrozenSchema):
    variant_id: str
    destination_id: str
    requested: int
    committed: int

    @property
    def clamped(self) -> bool:
        return self.committed < self.requested


class AllocationSummary(BaseSchema):
    variant_id: str
    pool_total: int
    committed: Dict[str, int]
    available: int


class LiveVariantInventory(BaseSchema):
    variant_id: str
    remote_variant_id: str
    remote_quantity: int
    committed: int

    @computed_field
    @property
    def drift(self) -> int:
        """Units the destination shows beyond (or short of) what the pool committed to it."""
        return self.remote_quantity - self.committed


class LiveInventory(BaseSchema):
    """Stock as the destination reports it right now, next to the local commitments."""
    product_id: str
    destination_id: str
    remote_id: str
    location_id: Optional[str] = None
    variants: List[LiveVariantInventory] = Field(default_factory=list)


# --- Payloads ------------------------------------------------------------------

class EffectivePayload(FrozenSchema):
    """Variant fields as they will be sent to one destination."""
    variant_id: str
    title: str
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    sku: Optional[str] = None
    position: int = 0
    option_values: Dict[str, str] = Field(default_factory=dict)


class ProductPayload(FrozenSchema):
    product_id: str
    title: str
    description: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    status: str
    tags: List[str] = Field(default_factory=list)
    options: Dict[str, List[str]] = Field(default_factory=dict)
    variants: List[EffectivePayload] = Field(default_factory=list)
    collection_ids: List[str] = Field(default_factory=list)


class RemoteRef(FrozenSchema):
    """Identifiers of a product on a destination."""
    remote_id: str
    handle: Optional[str] = None
    variant_ids: Dict[str, str] = Field(default_factory=dict)


# --- Ledger --------------------------------------------------------------------

class SyncRecord(FrozenSchema):
    product_id: str
    destination_id: str
    remote_ref: Optional[RemoteRef] = None
    status: SyncStatus = SyncStatus.NEVER_SYNCED
    last_operation: Optional[SyncOperation] = None
    last_error: Optional[str] = None
    last_error_kind: Optional[ErrorKind] = None
    payload_hash: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    invalidated_at: Optional[datetime] = None
    attempt_count: int = 0
    success_count: int = 0
    failure_count: int = 0

    @property
    def usable_remote_ref(self) -> Optional[RemoteRef]:
        """The ref update decisions may rely on. Invalidated records have none."""
        if self.invalidated_at is not None:
            return None
        return self.remote_ref

    @computed_field
    @property
    def effective_status(self) -> SyncStatus:
        """Status as sync decisions see it; invalidated records read as never synced."""
        if self.invalidated_at is not None:
            return SyncStatus.NEVER_SYNCED
        return self.status

    @property
    def is_live(self) -> bool:
        return self.effective_status == SyncStatus.SYNCED and self.usable_remote_ref is not None


class SyncAttempt(FrozenSchema):
    product_id: str
    destination_id: str
    operation: Optional[SyncOperation] = None
    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    remote_id: Optional[str] = None
    duration_ms: Optional[float] = None
    created_at: datetime


class SyncStats(BaseSchema):
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    active_destinations: int = 0
    average_duration_ms: Optional[float] = None


class ProductSyncStatus(BaseSchema):
    product_id: str
    destinations: Dict[str, SyncRecord] = Field(default_factory=dict)
    connected: bool = False
    stats: SyncStats = Field(default_factory=SyncStats)


class DisconnectSummary(BaseSchema):
    destination_id: str
    invalidated_records: int
    released_units: int


# --- Results -------------------------------------------------------------------

class SyncResult(FrozenSchema):
    product_id: str
    destination_id: str
    outcome: SyncOutcome
    operation: Optional[SyncOperation] = None
    remote_ref: Optional[RemoteRef] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    duration_ms: float = 0.0
    inventory: Dict[str, int] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    payload_hash: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SyncOutcome.SUCCESS

    @classmethod
    def failure(
        cls,
        product_id: str,
        destination_id: str,
        error: str,
        error_kind: ErrorKind,
        **extra,
    ) -> "SyncResult":
        return cls(
            product_id=product_id,
            destination_id=destination_id,
            outcome=SyncOutcome.FAILURE,
            error=error,
            error_kind=error_kind,
            **extra,
        )


class BulkSyncReport(BaseSchema):
    run_id: str
    keyed_by: str  # "destination" or "product"
    results: Dict[str, SyncResult] = Field(default_factory=dict)
    cancelled: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> List[str]:
        return [key for key, result in self.results.items() if result.ok]

    @property
    def failed(self) -> List[str]:
        return [key for key, result in self.results.items() if not result.ok]

    def summary(self) -> Dict[str, int]:
        return {
            "total": len(self.results),
            "successful": len(self.succeeded),
            "failed": len(self.failed),
        }
