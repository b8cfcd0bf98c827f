# app/services/sync_job.py
"""
One attempt to push one product to one destination.

A job writes the product first and only then the committed inventory
quantities. If the product write fails nothing else is sent. Every outcome,
including timeouts, comes back as a ``SyncResult``; remote failures are
never raised out of ``SyncJob.run``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Optional, TypeVar

from app.core.enums import ErrorKind, SyncOperation, SyncOutcome, SyncStatus
from app.core.exceptions import RemoteError, RemoteTimeoutError, ValidationError
from app.integrations.base import DestinationClient
from app.schemas.sync import ProductPayload, RemoteRef, SyncRecord, SyncResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def decide_operation(record: SyncRecord) -> SyncOperation:
    """Update when the ledger holds a usable remote ref, create otherwise."""
    if record.usable_remote_ref is not None:
        return SyncOperation.UPDATE
    return SyncOperation.CREATE


def check_retry_allowed(record: SyncRecord, force_sync: bool) -> None:
    """
    Refuse to blindly re-create after a create whose result is unknown.

    A create that timed out may have produced a remote product we never heard
    about. Retrying it is only done when the caller explicitly forces it; a
    forced retry repeats the same operation, it never escalates.
    """
    if force_sync:
        return
    if (
        record.effective_status == SyncStatus.ERROR
        and record.last_operation == SyncOperation.CREATE
        and record.last_error_kind == ErrorKind.TIMEOUT
        and record.usable_remote_ref is None
    ):
        raise ValidationError(
            f"Previous create of product {record.product_id} on {record.destination_id} timed out "
            "and its remote state is unknown; retry with force_sync to create again"
        )


async def call_remote(awaitable: Awaitable[T], timeout: float, description: str) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise RemoteTimeoutError(f"{description} timed out after {timeout:g}s") from e


@dataclass
class SyncJob:
    product_id: str
    destination_id: str
    payload: ProductPayload
    record: SyncRecord
    inventory: Dict[str, int] = field(default_factory=dict)
    location_id: Optional[str] = None
    payload_hash: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    # Set as soon as the product write lands, so a caller that abandons the job
    # on timeout still learns about the remote object.
    remote_ref: Optional[RemoteRef] = field(default=None, init=False)

    @property
    def operation(self) -> SyncOperation:
        return decide_operation(self.record)

    def _failure(self, operation: SyncOperation, error: Exception, started: float, **extra) -> SyncResult:
        kind = getattr(error, "kind", ErrorKind.REMOTE)
        return SyncResult.failure(
            self.product_id,
            self.destination_id,
            str(error) or error.__class__.__name__,
            kind,
            operation=operation,
            duration_ms=(time.perf_counter() - started) * 1000,
            warnings=list(self.warnings),
            **extra,
        )

    async def run(self, client: DestinationClient, remote_call_timeout: float) -> SyncResult:
        started = time.perf_counter()
        operation = self.operation
        label = f"{operation.value} of product {self.product_id} on {self.destination_id}"

        try:
            if operation == SyncOperation.CREATE:
                ref = await call_remote(client.create_remote(self.payload), remote_call_timeout, label)
            else:
                ref = await call_remote(
                    client.update_remote(self.record.usable_remote_ref, self.payload),
                    remote_call_timeout,
                    label,
                )
        except RemoteError as e:
            logger.error("Product write failed (%s): %s", label, e)
            return self._failure(operation, e, started)
        except Exception as e:
            logger.exception("Destination client raised during %s", label)
            return self._failure(operation, RemoteError(f"{label} failed: {e}"), started)

        self.remote_ref = ref
        pushed: Dict[str, int] = {}

        for variant_id, quantity in self.inventory.items():
            inventory_label = f"inventory write for variant {variant_id} on {self.destination_id}"
            try:
                await call_remote(
                    client.write_inventory(ref, variant_id, quantity, self.location_id),
                    remote_call_timeout,
                    inventory_label,
                )
            except Exception as e:
                logger.error("Inventory write failed after product write (%s): %s", inventory_label, e)
                if not isinstance(e, RemoteError):
                    e = RemoteError(f"{inventory_label} failed: {e}")
                return self._failure(operation, e, started, remote_ref=ref, inventory=pushed)
            pushed[variant_id] = quantity

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info("Synced product %s to %s (%s) in %.0fms", self.product_id, self.destination_id, operation.value, duration_ms)
        return SyncResult(
            product_id=self.product_id,
            destination_id=self.destination_id,
            outcome=SyncOutcome.SUCCESS,
            operation=operation,
            remote_ref=ref,
            duration_ms=duration_ms,
            inventory=pushed,
            warnings=list(self.warnings),
            payload_hash=self.payload_hash,
        )
