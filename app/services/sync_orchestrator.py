# app/services/sync_orchestrator.py
"""
Coordinates pushes of products to destinations.

Per (product, destination) pair the orchestrator:
    1. validates the configuration (no side effects, no remote call)
    2. waits for a slot on the shared concurrency semaphore
    3. gives up with a ``cancelled`` result if the run was cancelled meanwhile
    4. marks the ledger record pending and commits clamped inventory
    5. runs the SyncJob under the overall job timeout
    6. records the outcome, stores the merged configuration, emits progress

Bulk runs fan out with ``asyncio.gather(return_exceptions=True)``; each key
gets its own result and one destination failing never affects another.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.core.config import Settings
from app.core.enums import ErrorKind, SyncEventName, SyncOperation, SyncOutcome
from app.core.exceptions import (
    ConflictError,
    DestinationNotFoundError,
    ProductNotFoundError,
    RemoteError,
    ValidationError,
)
from app.integrations.base import DestinationClient
from app.integrations.events import SyncCompletedEvent, SyncProgressEvent, SyncStartedEvent
from app.integrations.registry import DestinationRegistry
from app.schemas.catalog import ProductData
from app.schemas.sync import (
    AllocationSummary,
    BulkSyncConfig,
    BulkSyncReport,
    DestinationSyncConfig,
    DisconnectSummary,
    LiveInventory,
    LiveVariantInventory,
    ProductSyncStatus,
    SyncResult,
)
from app.services.catalog_store import CatalogStore
from app.services.inventory_pool import InventoryPool
from app.services.notification_relay import NotificationRelay
from app.services.override_resolver import build_product_payload, merge_overrides, payload_hash
from app.services.sync_job import SyncJob, call_remote, check_retry_allowed
from app.services.sync_ledger import SyncStatusLedger, utcnow

logger = logging.getLogger(__name__)

KEYED_BY_DESTINATION = "destination"
KEYED_BY_PRODUCT = "product"

# Fields that describe one push rather than the lasting per-destination setup.
_TRANSIENT_CONFIG_FIELDS = {"inventory", "force_sync"}


@dataclass
class SyncRun:
    run_id: str
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)


@dataclass
class _PreparedJob:
    product: ProductData
    destination_id: str
    client: DestinationClient
    config: DestinationSyncConfig
    location_id: Optional[str]


def merge_config(stored: Optional[DestinationSyncConfig], incoming: DestinationSyncConfig) -> DestinationSyncConfig:
    """
    Layer a submitted configuration over the stored one.

    Variant overrides merge field by field; any other field the caller set
    replaces the stored value, fields left out keep it.
    """
    if stored is None:
        return incoming.model_copy()

    updates = {
        name: getattr(incoming, name)
        for name in incoming.model_fields_set
        if name != "variant_overrides"
    }
    for name in _TRANSIENT_CONFIG_FIELDS:
        updates.setdefault(name, getattr(incoming, name))
    updates["variant_overrides"] = merge_overrides(stored.variant_overrides, incoming.variant_overrides)
    return stored.model_copy(update=updates)


def validate_config(product: ProductData, destination_id: str, config: DestinationSyncConfig) -> None:
    known = set(product.variant_ids)
    for variant_id, quantity in config.inventory.items():
        if variant_id not in known:
            raise ValidationError(
                f"Variant {variant_id} does not belong to product {product.id} (destination {destination_id})"
            )
        if quantity < 0:
            raise ValidationError(f"Inventory request for variant {variant_id} must be >= 0, got {quantity}")
    for variant_id in config.variant_overrides:
        if variant_id not in known:
            raise ValidationError(f"Override targets unknown variant {variant_id} of product {product.id}")


class SyncOrchestrator:
    def __init__(
        self,
        catalog: CatalogStore,
        pool: InventoryPool,
        ledger: SyncStatusLedger,
        registry: DestinationRegistry,
        relay: NotificationRelay,
        *,
        max_concurrency: int = 4,
        job_timeout: float = 60.0,
        remote_call_timeout: float = 20.0,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.catalog = catalog
        self.pool = pool
        self.ledger = ledger
        self.registry = registry
        self.relay = relay
        self.job_timeout = job_timeout
        self.remote_call_timeout = remote_call_timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._runs: Dict[str, SyncRun] = {}
        self._in_flight: Set[Tuple[str, str]] = set()

    @classmethod
    def from_settings(cls, catalog, pool, ledger, registry, relay, settings: Settings) -> "SyncOrchestrator":
        return cls(
            catalog,
            pool,
            ledger,
            registry,
            relay,
            max_concurrency=settings.SYNC_MAX_CONCURRENCY,
            job_timeout=settings.SYNC_JOB_TIMEOUT_SECONDS,
            remote_call_timeout=settings.REMOTE_CALL_TIMEOUT_SECONDS,
        )

    # --- Entry points ----------------------------------------------------------

    async def sync_product(
        self,
        product_id: str,
        destination_id: str,
        config: Optional[DestinationSyncConfig] = None,
        run_id: Optional[str] = None,
    ) -> SyncResult:
        """
        Push one product to one destination.

        Configuration problems raise ``ValidationError`` before anything is
        written; remote problems come back as a failed ``SyncResult``. Either
        way the run is closed with a ``sync.completed`` event.
        """
        product = await self._require_product(product_id)
        config = config or DestinationSyncConfig()
        run = self._start_run(run_id)
        try:
            await self._emit_started(run, KEYED_BY_DESTINATION, [product_id], [destination_id])
            started_at = utcnow()
            try:
                result = await self._sync_one(run, product, destination_id, config, strict=True)
            except (ValidationError, DestinationNotFoundError, ConflictError) as e:
                rejected = SyncResult.failure(product_id, destination_id, str(e), e.kind)
                await self._emit_progress(run, rejected)
                await self._finish(run, KEYED_BY_DESTINATION, {destination_id: rejected}, started_at)
                raise
            await self._finish(run, KEYED_BY_DESTINATION, {destination_id: result}, started_at)
            return result
        finally:
            self._runs.pop(run.run_id, None)

    async def bulk_sync(
        self,
        product_id: str,
        destination_ids: Iterable[str],
        config: Optional[BulkSyncConfig] = None,
        run_id: Optional[str] = None,
    ) -> BulkSyncReport:
        """Push one product to many destinations; the report is keyed by destination id."""
        product = await self._require_product(product_id)
        config = config or BulkSyncConfig()
        destination_ids = list(dict.fromkeys(destination_ids))
        run = self._start_run(run_id)
        try:
            await self._emit_started(run, KEYED_BY_DESTINATION, [product_id], destination_ids)
            started_at = utcnow()
            outcomes = await asyncio.gather(
                *(self._sync_one(run, product, d_id, config.for_target(d_id)) for d_id in destination_ids),
                return_exceptions=True,
            )
            results = {
                d_id: self._as_result(outcome, product_id, d_id)
                for d_id, outcome in zip(destination_ids, outcomes)
            }
            return await self._finish(run, KEYED_BY_DESTINATION, results, started_at)
        finally:
            self._runs.pop(run.run_id, None)

    async def bulk_sync_products(
        self,
        destination_id: str,
        product_ids: Iterable[str],
        config: Optional[BulkSyncConfig] = None,
        run_id: Optional[str] = None,
    ) -> BulkSyncReport:
        """Push many products to one destination; the report is keyed by product id."""
        config = config or BulkSyncConfig()
        product_ids = list(dict.fromkeys(product_ids))
        run = self._start_run(run_id)
        try:
            await self._emit_started(run, KEYED_BY_PRODUCT, product_ids, [destination_id])
            started_at = utcnow()
            outcomes = await asyncio.gather(
                *(self._sync_product_id(run, p_id, destination_id, config.for_target(p_id)) for p_id in product_ids),
                return_exceptions=True,
            )
            results = {
                p_id: self._as_result(outcome, p_id, destination_id)
                for p_id, outcome in zip(product_ids, outcomes)
            }
            return await self._finish(run, KEYED_BY_PRODUCT, results, started_at)
        finally:
            self._runs.pop(run.run_id, None)

    async def get_sync_status(self, product_id: str) -> ProductSyncStatus:
        records = await self.ledger.status_for(product_id)
        return ProductSyncStatus(
            product_id=product_id,
            destinations=records,
            connected=any(record.is_live for record in records.values()),
            stats=await self.ledger.stats_for(product_id),
        )

    async def unsync_product(self, product_id: str, destination_id: str) -> SyncResult:
        """Delete the remote product and hand its committed inventory back to the pools."""
        pair = (product_id, destination_id)
        if pair in self._in_flight:
            raise ConflictError(f"Product {product_id} is already being synced to {destination_id}")

        record = await self.ledger.get(product_id, destination_id)
        ref = record.usable_remote_ref
        started = time.perf_counter()

        self._in_flight.add(pair)
        try:
            if ref is not None:
                client = self.registry.resolve(destination_id)
                try:
                    await call_remote(
                        client.delete_remote(ref),
                        self.remote_call_timeout,
                        f"delete of product {product_id} on {destination_id}",
                    )
                except RemoteError as e:
                    logger.error("Failed to delete product %s on %s: %s", product_id, destination_id, e)
                    result = SyncResult.failure(
                        product_id,
                        destination_id,
                        str(e),
                        e.kind,
                        operation=SyncOperation.DELETE,
                        remote_ref=ref,
                        duration_ms=(time.perf_counter() - started) * 1000,
                    )
                    await self.ledger.record_outcome(product_id, destination_id, result)
                    return result

            released: Dict[str, int] = {}
            for variant_id in await self._variant_ids_for(product_id, ref):
                units = await self.pool.release(variant_id, destination_id)
                if units:
                    released[variant_id] = units

            result = SyncResult(
                product_id=product_id,
                destination_id=destination_id,
                outcome=SyncOutcome.SUCCESS,
                operation=SyncOperation.DELETE,
                remote_ref=ref,
                duration_ms=(time.perf_counter() - started) * 1000,
                inventory=released,
            )
            await self.ledger.record_removed(result)
            logger.info(
                "Unsynced product %s from %s (released %d units)",
                product_id, destination_id, sum(released.values()),
            )
            return result
        finally:
            self._in_flight.discard(pair)

    async def disconnect_destination(self, destination_id: str) -> DisconnectSummary:
        """
        Take a destination out of rotation.

        Its ledger records lose their usable remote refs, so a later reconnect
        starts with creates, and its inventory returns to the pools.
        """
        await self.registry.mark_disconnected(destination_id)
        invalidated = await self.ledger.invalidate_destination(destination_id)
        released = await self.pool.release_destination(destination_id)
        summary = DisconnectSummary(
            destination_id=destination_id,
            invalidated_records=invalidated,
            released_units=released,
        )
        await self.relay.emit(SyncEventName.DESTINATION_DISCONNECTED, summary.model_dump(mode="json"))
        return summary

    def cancel(self, run_id: str) -> bool:
        """Stop dispatching further jobs of a run. Jobs already running finish."""
        run = self._runs.get(run_id)
        if run is None:
            return False
        run.cancelled.set()
        logger.info("Cancellation requested for sync run %s", run_id)
        return True

    def active_runs(self) -> List[str]:
        return list(self._runs)

    async def allocation_summary(self, variant_id: str) -> AllocationSummary:
        return await self.pool.allocation_summary(variant_id)

    async def live_inventory(self, product_id: str, destination_id: str) -> LiveInventory:
        """Read each mapped variant's stock from the destination. Nothing is written."""
        record = await self.ledger.get(product_id, destination_id)
        ref = record.usable_remote_ref
        if ref is None:
            raise ValidationError(f"Product {product_id} is not synced to {destination_id}")
        client = self.registry.resolve(destination_id)
        stored = await self.catalog.get_sync_config(product_id, destination_id)
        location_id = (stored.location_id if stored else None) or self.registry.get(destination_id).default_location_id

        variants = []
        for variant_id, remote_variant_id in ref.variant_ids.items():
            quantity = await call_remote(
                client.read_inventory(ref, variant_id, location_id),
                self.remote_call_timeout,
                f"Inventory read for variant {variant_id} on {destination_id}",
            )
            variants.append(LiveVariantInventory(
                variant_id=variant_id,
                remote_variant_id=remote_variant_id,
                remote_quantity=quantity,
                committed=await self.pool.current_assignment(variant_id, destination_id),
            ))
        return LiveInventory(
            product_id=product_id,
            destination_id=destination_id,
            remote_id=ref.remote_id,
            location_id=location_id,
            variants=variants,
        )

    # --- Per-pair pipeline -------------------------------------------------------

    async def _sync_product_id(
        self, run: SyncRun, product_id: str, destination_id: str, config: DestinationSyncConfig
    ) -> SyncResult:
        product = await self.catalog.get_product(product_id)
        if product is None:
            result = SyncResult.failure(
                product_id, destination_id, f"Product {product_id} not found", ErrorKind.VALIDATION
            )
            await self._emit_progress(run, result)
            return result
        return await self._sync_one(run, product, destination_id, config)

    async def _sync_one(
        self,
        run: SyncRun,
        product: ProductData,
        destination_id: str,
        config: DestinationSyncConfig,
        strict: bool = False,
    ) -> SyncResult:
        try:
            prepared = await self._prepare(product, destination_id, config)
        except (ValidationError, DestinationNotFoundError) as e:
            if strict:
                raise
            logger.warning("Rejected sync of product %s to %s: %s", product.id, destination_id, e)
            result = SyncResult.failure(product.id, destination_id, str(e), ErrorKind.VALIDATION)
            await self._emit_progress(run, result)
            return result

        pair = (product.id, destination_id)
        if pair in self._in_flight:
            error = ConflictError(f"Product {product.id} is already being synced to {destination_id}")
            if strict:
                raise error
            result = SyncResult.failure(product.id, destination_id, str(error), error.kind)
            await self._emit_progress(run, result)
            return result

        self._in_flight.add(pair)
        try:
            async with self._semaphore:
                if run.cancelled.is_set():
                    result = SyncResult.failure(
                        product.id, destination_id, f"Sync run {run.run_id} was cancelled", ErrorKind.CANCELLED
                    )
                else:
                    result = await self._dispatch(prepared)
        finally:
            self._in_flight.discard(pair)

        await self._emit_progress(run, result)
        return result

    async def _prepare(self, product: ProductData, destination_id: str, config: DestinationSyncConfig) -> _PreparedJob:
        client = self.registry.resolve(destination_id)
        validate_config(product, destination_id, config)

        record = await self.ledger.get(product.id, destination_id)
        check_retry_allowed(record, config.force_sync)

        stored = await self.catalog.get_sync_config(product.id, destination_id)
        merged = merge_config(stored, config)
        location_id = merged.location_id or self.registry.get(destination_id).default_location_id
        return _PreparedJob(
            product=product,
            destination_id=destination_id,
            client=client,
            config=merged,
            location_id=location_id,
        )

    async def _dispatch(self, prepared: _PreparedJob) -> SyncResult:
        product, destination_id, config = prepared.product, prepared.destination_id, prepared.config
        record = await self.ledger.record_attempt(product.id, destination_id)

        job: Optional[SyncJob] = None
        try:
            warnings: List[str] = []
            committed: Dict[str, int] = {}
            for variant_id, requested in config.inventory.items():
                decision = await self.pool.commit(variant_id, destination_id, requested)
                committed[variant_id] = decision.committed
                if decision.clamped:
                    warnings.append(
                        f"Inventory for variant {variant_id} clamped from {decision.requested} to {decision.committed}"
                    )

            payload = build_product_payload(product, config)
            job = SyncJob(
                product_id=product.id,
                destination_id=destination_id,
                payload=payload,
                record=record,
                inventory=committed,
                location_id=prepared.location_id,
                payload_hash=payload_hash(payload),
                warnings=warnings,
            )
            result = await asyncio.wait_for(
                job.run(prepared.client, self.remote_call_timeout),
                timeout=self.job_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Sync of product %s to %s exceeded %gs", product.id, destination_id, self.job_timeout)
            result = SyncResult.failure(
                product.id,
                destination_id,
                f"Sync job timed out after {self.job_timeout:g}s",
                ErrorKind.TIMEOUT,
                operation=job.operation if job else None,
                remote_ref=job.remote_ref if job else None,
                warnings=list(job.warnings) if job else [],
            )
        except Exception as e:
            logger.exception("Unexpected error syncing product %s to %s", product.id, destination_id)
            result = SyncResult.failure(
                product.id,
                destination_id,
                f"Internal error: {e}",
                ErrorKind.INTERNAL,
                operation=job.operation if job else None,
                remote_ref=job.remote_ref if job else None,
            )

        await self.ledger.record_outcome(product.id, destination_id, result)
        await self.catalog.save_sync_config(product.id, destination_id, config)
        return result

    # --- Helpers -------------------------------------------------------------------

    async def _require_product(self, product_id: str) -> ProductData:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    async def _variant_ids_for(self, product_id: str, ref) -> List[str]:
        product = await self.catalog.get_product(product_id)
        ids = list(product.variant_ids) if product else []
        if ref is not None:
            ids.extend(v_id for v_id in ref.variant_ids if v_id not in ids)
        return ids

    def _start_run(self, run_id: Optional[str]) -> SyncRun:
        run_id = run_id or uuid.uuid4().hex
        if run_id in self._runs:
            raise ConflictError(f"Sync run {run_id} is already active")
        run = self._runs[run_id] = SyncRun(run_id=run_id)
        return run

    @staticmethod
    def _as_result(outcome, product_id: str, destination_id: str) -> SyncResult:
        if isinstance(outcome, SyncResult):
            return outcome
        logger.error(
            "Sync of product %s to %s raised %s: %s",
            product_id, destination_id, outcome.__class__.__name__, outcome,
        )
        kind = getattr(outcome, "kind", ErrorKind.INTERNAL)
        if isinstance(outcome, asyncio.CancelledError):
            kind = ErrorKind.CANCELLED
        return SyncResult.failure(product_id, destination_id, str(outcome) or outcome.__class__.__name__, kind)

    async def _finish(
        self, run: SyncRun, keyed_by: str, results: Dict[str, SyncResult], started_at
    ) -> BulkSyncReport:
        report = BulkSyncReport(
            run_id=run.run_id,
            keyed_by=keyed_by,
            results=results,
            cancelled=run.cancelled.is_set(),
            started_at=started_at,
            finished_at=utcnow(),
        )
        summary = report.summary()
        logger.info(
            "Sync run %s finished: %d total, %d successful, %d failed",
            run.run_id, summary["total"], summary["successful"], summary["failed"],
        )
        await self._emit_completed(report)
        return report

    async def _emit_started(self, run: SyncRun, keyed_by: str, product_ids: List[str], destination_ids: List[str]) -> None:
        event = SyncStartedEvent(
            run_id=run.run_id,
            keyed_by=keyed_by,
            product_ids=product_ids,
            destination_ids=destination_ids,
        )
        await self.relay.emit(SyncEventName.STARTED, event.model_dump(mode="json"))

    async def _emit_progress(self, run: SyncRun, result: SyncResult) -> None:
        record = await self.ledger.get(result.product_id, result.destination_id)
        event = SyncProgressEvent(
            run_id=run.run_id,
            product_id=result.product_id,
            destination_id=result.destination_id,
            status=record.effective_status,
            error=result.error,
        )
        await self.relay.emit(SyncEventName.PROGRESS, event.model_dump(mode="json"))

    async def _emit_completed(self, report: BulkSyncReport) -> None:
        event = SyncCompletedEvent(run_id=report.run_id, report=report.model_dump(mode="json"))
        await self.relay.emit(SyncEventName.COMPLETED, event.model_dump(mode="json"))
