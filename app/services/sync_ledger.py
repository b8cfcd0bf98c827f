# app/services/sync_ledger.py
"""
Durable per-(product, destination) sync state.

State changes are pure functions that take a ``SyncRecord`` and return a new
one; ``SyncStatusLedger`` loads, applies and saves through a ``LedgerStore``.

    never_synced -> pending -> synced | error
    error        -> pending (retry)
    synced       -> pending (re-push)

``pending`` is never trusted across a restart: a pending record older than the
stale window reads back as ``error``, and any pending record is overwritten by
the next attempt for that pair.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.enums import ErrorKind, SyncOperation, SyncStatus
from app.models.sync_ledger import SyncHistoryEntry, SyncLedgerEntry
from app.schemas.sync import RemoteRef, SyncAttempt, SyncRecord, SyncResult, SyncStats

logger = logging.getLogger(__name__)

STALE_PENDING_MESSAGE = "Sync was interrupted before an outcome was recorded"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Pure record transitions -------------------------------------------------

def new_record(product_id: str, destination_id: str) -> SyncRecord:
    return SyncRecord(product_id=product_id, destination_id=destination_id)


def begin_attempt(record: SyncRecord, now: datetime) -> SyncRecord:
    updates = {
        "status": SyncStatus.PENDING,
        "last_attempt_at": now,
        "attempt_count": record.attempt_count + 1,
    }
    if record.invalidated_at is not None:
        # The destination was disconnected since the last push; start over.
        updates.update(remote_ref=None, invalidated_at=None, payload_hash=None)
    return record.model_copy(update=updates)


def apply_outcome(record: SyncRecord, result: SyncResult, now: datetime) -> SyncRecord:
    if result.ok:
        return record.model_copy(update={
            "status": SyncStatus.SYNCED,
            "remote_ref": result.remote_ref or record.remote_ref,
            "last_operation": result.operation,
            "last_error": None,
            "last_error_kind": None,
            "payload_hash": result.payload_hash,
            "last_attempt_at": now,
            "last_success_at": now,
            "success_count": record.success_count + 1,
        })

    return record.model_copy(update={
        "status": SyncStatus.ERROR,
        # A create that succeeded before a later step failed still produced a remote object.
        "remote_ref": result.remote_ref or record.remote_ref,
        "last_operation": result.operation or record.last_operation,
        "last_error": result.error,
        "last_error_kind": result.error_kind,
        "last_attempt_at": now,
        "failure_count": record.failure_count + 1,
    })


def invalidate(record: SyncRecord, now: datetime) -> SyncRecord:
    if record.invalidated_at is not None:
        return record
    return record.model_copy(update={"invalidated_at": now})


def is_stale(record: SyncRecord, now: datetime, stale_after: timedelta) -> bool:
    if record.status != SyncStatus.PENDING:
        return False
    return record.last_attempt_at is None or now - record.last_attempt_at > stale_after


def resolve_stale(record: SyncRecord) -> SyncRecord:
    return record.model_copy(update={
        "status": SyncStatus.ERROR,
        "last_error": STALE_PENDING_MESSAGE,
        "last_error_kind": ErrorKind.STALE,
        "failure_count": record.failure_count + 1,
    })


def mark_removed(record: SyncRecord, now: datetime) -> SyncRecord:
    return record.model_copy(update={
        "status": SyncStatus.NEVER_SYNCED,
        "remote_ref": None,
        "payload_hash": None,
        "last_operation": SyncOperation.DELETE,
        "last_error": None,
        "last_error_kind": None,
        "last_attempt_at": now,
    })


def attempt_from_result(result: SyncResult, now: datetime) -> SyncAttempt:
    return SyncAttempt(
        product_id=result.product_id,
        destination_id=result.destination_id,
        operation=result.operation,
        success=result.ok,
        error=result.error,
        error_kind=result.error_kind,
        remote_id=result.remote_ref.remote_id if result.remote_ref else None,
        duration_ms=result.duration_ms,
        created_at=now,
    )


# --- Stores --------------------------------------------------------------------

class LedgerStore(Protocol):
    async def get(self, product_id: str, destination_id: str) -> Optional[SyncRecord]: ...

    async def save(self, record: SyncRecord) -> None: ...

    async def list_for_product(self, product_id: str) -> List[SyncRecord]: ...

    async def list_for_destination(self, destination_id: str) -> List[SyncRecord]: ...

    async def list_by_status(self, status: SyncStatus) -> List[SyncRecord]: ...

    async def append_history(self, attempt: SyncAttempt) -> None: ...

    async def history(self, product_id: str, destination_id: Optional[str], limit: int) -> List[SyncAttempt]: ...


class InMemoryLedgerStore:
    def __init__(self):
        self._records: Dict[Tuple[str, str], SyncRecord] = {}
        self._history: List[SyncAttempt] = []

    async def get(self, product_id: str, destination_id: str) -> Optional[SyncRecord]:
        return self._records.get((product_id, destination_id))

    async def save(self, record: SyncRecord) -> None:
        self._records[(record.product_id, record.destination_id)] = record

    async def list_for_product(self, product_id: str) -> List[SyncRecord]:
        return [r for (p_id, _), r in self._records.items() if p_id == product_id]

    async def list_for_destination(self, destination_id: str) -> List[SyncRecord]:
        return [r for (_, d_id), r in self._records.items() if d_id == destination_id]

    async def list_by_status(self, status: SyncStatus) -> List[SyncRecord]:
        return [r for r in self._records.values() if r.status == status]

    async def append_history(self, attempt: SyncAttempt) -> None:
        self._history.append(attempt)

    async def history(self, product_id: str, destination_id: Optional[str], limit: int) -> List[SyncAttempt]:
        matching = [
            a for a in self._history
            if a.product_id == product_id and (destination_id is None or a.destination_id == destination_id)
        ]
        return list(reversed(matching))[:limit]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _record_from_row(row: SyncLedgerEntry) -> SyncRecord:
    remote_ref = None
    if row.remote_id:
        remote_ref = RemoteRef(
            remote_id=row.remote_id,
            handle=row.remote_handle,
            variant_ids=row.remote_variant_ids or {},
        )
    return SyncRecord(
        product_id=row.product_id,
        destination_id=row.destination_id,
        remote_ref=remote_ref,
        status=SyncStatus(row.status),
        last_operation=SyncOperation(row.last_operation) if row.last_operation else None,
        last_error=row.last_error,
        last_error_kind=ErrorKind(row.last_error_kind) if row.last_error_kind else None,
        payload_hash=row.payload_hash,
        last_attempt_at=_aware(row.last_attempt_at),
        last_success_at=_aware(row.last_success_at),
        invalidated_at=_aware(row.invalidated_at),
        attempt_count=row.attempt_count or 0,
        success_count=row.success_count or 0,
        failure_count=row.failure_count or 0,
    )


def _copy_record_to_row(record: SyncRecord, row: SyncLedgerEntry) -> None:
    ref = record.remote_ref
    row.remote_id = ref.remote_id if ref else None
    row.remote_handle = ref.handle if ref else None
    row.remote_variant_ids = dict(ref.variant_ids) if ref else None
    row.status = record.status.value
    row.last_operation = record.last_operation.value if record.last_operation else None
    row.last_error = record.last_error
    row.last_error_kind = record.last_error_kind.value if record.last_error_kind else None
    row.payload_hash = record.payload_hash
    row.last_attempt_at = record.last_attempt_at
    row.last_success_at = record.last_success_at
    row.invalidated_at = record.invalidated_at
    row.attempt_count = record.attempt_count
    row.success_count = record.success_count
    row.failure_count = record.failure_count


class SqlLedgerStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, product_id: str, destination_id: str) -> Optional[SyncRecord]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(SyncLedgerEntry)
                .where(SyncLedgerEntry.product_id == product_id)
                .where(SyncLedgerEntry.destination_id == destination_id)
            )
            return _record_from_row(row) if row else None

    async def save(self, record: SyncRecord) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(SyncLedgerEntry)
                    .where(SyncLedgerEntry.product_id == record.product_id)
                    .where(SyncLedgerEntry.destination_id == record.destination_id)
                )
                if row is None:
                    row = SyncLedgerEntry(product_id=record.product_id, destination_id=record.destination_id)
                    session.add(row)
                _copy_record_to_row(record, row)

    async def _list(self, *criteria) -> List[SyncRecord]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(SyncLedgerEntry).where(*criteria))).scalars().all()
            return [_record_from_row(row) for row in rows]

    async def list_for_product(self, product_id: str) -> List[SyncRecord]:
        return await self._list(SyncLedgerEntry.product_id == product_id)

    async def list_for_destination(self, destination_id: str) -> List[SyncRecord]:
        return await self._list(SyncLedgerEntry.destination_id == destination_id)

    async def list_by_status(self, status: SyncStatus) -> List[SyncRecord]:
        return await self._list(SyncLedgerEntry.status == status.value)

    async def append_history(self, attempt: SyncAttempt) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(SyncHistoryEntry(
                    product_id=attempt.product_id,
                    destination_id=attempt.destination_id,
                    operation=attempt.operation.value if attempt.operation else None,
                    success=attempt.success,
                    error=attempt.error,
                    error_kind=attempt.error_kind.value if attempt.error_kind else None,
                    remote_id=attempt.remote_id,
                    duration_ms=attempt.duration_ms,
                    created_at=attempt.created_at,
                ))

    async def history(self, product_id: str, destination_id: Optional[str], limit: int) -> List[SyncAttempt]:
        query = select(SyncHistoryEntry).where(SyncHistoryEntry.product_id == product_id)
        if destination_id is not None:
            query = query.where(SyncHistoryEntry.destination_id == destination_id)
        query = query.order_by(SyncHistoryEntry.created_at.desc(), SyncHistoryEntry.id.desc()).limit(limit)

        async with self._session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
            return [
                SyncAttempt(
                    product_id=row.product_id,
                    destination_id=row.destination_id,
                    operation=SyncOperation(row.operation) if row.operation else None,
                    success=row.success,
                    error=row.error,
                    error_kind=ErrorKind(row.error_kind) if row.error_kind else None,
                    remote_id=row.remote_id,
                    duration_ms=row.duration_ms,
                    created_at=_aware(row.created_at),
                )
                for row in rows
            ]


# --- Ledger --------------------------------------------------------------------

class SyncStatusLedger:
    def __init__(
        self,
        store: LedgerStore,
        stale_after_seconds: float = 300.0,
        history_limit: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._stale_after = timedelta(seconds=stale_after_seconds)
        self._history_limit = history_limit
        self._clock = clock

    async def get(self, product_id: str, destination_id: str) -> SyncRecord:
        """Current record, resolving a stale pending. Missing pairs read as never synced."""
        record = await self._store.get(product_id, destination_id)
        if record is None:
            return new_record(product_id, destination_id)
        return await self._resolve_if_stale(record)

    async def record_attempt(self, product_id: str, destination_id: str) -> SyncRecord:
        record = await self._store.get(product_id, destination_id) or new_record(product_id, destination_id)
        if record.status == SyncStatus.PENDING:
            logger.warning(
                "Superseding unconfirmed pending record for product %s on %s",
                product_id, destination_id,
            )
        record = begin_attempt(record, self._clock())
        await self._store.save(record)
        return record

    async def record_outcome(self, product_id: str, destination_id: str, result: SyncResult) -> SyncRecord:
        now = self._clock()
        record = await self._store.get(product_id, destination_id) or new_record(product_id, destination_id)
        record = apply_outcome(record, result, now)
        await self._store.save(record)
        await self._store.append_history(attempt_from_result(result, now))
        return record

    async def record_removed(self, result: SyncResult) -> SyncRecord:
        """Reset the pair after its remote product was deleted."""
        now = self._clock()
        record = await self._store.get(result.product_id, result.destination_id)
        record = mark_removed(record or new_record(result.product_id, result.destination_id), now)
        await self._store.save(record)
        await self._store.append_history(attempt_from_result(result, now))
        return record

    async def status_for(self, product_id: str) -> Dict[str, SyncRecord]:
        records = await self._store.list_for_product(product_id)
        resolved = {}
        for record in records:
            resolved[record.destination_id] = await self._resolve_if_stale(record)
        return resolved

    async def is_connected(self, product_id: str) -> bool:
        """True when the product is live on at least one destination."""
        records = await self.status_for(product_id)
        return any(record.is_live for record in records.values())

    async def invalidate_destination(self, destination_id: str) -> int:
        now = self._clock()
        count = 0
        for record in await self._store.list_for_destination(destination_id):
            if record.invalidated_at is None:
                await self._store.save(invalidate(record, now))
                count += 1
        logger.info("Invalidated %d ledger records for destination %s", count, destination_id)
        return count

    async def history_for(self, product_id: str, destination_id: Optional[str] = None) -> List[SyncAttempt]:
        return await self._store.history(product_id, destination_id, self._history_limit)

    async def stats_for(self, product_id: str) -> SyncStats:
        records = await self.status_for(product_id)
        history = await self._store.history(product_id, None, self._history_limit)
        durations = [a.duration_ms for a in history if a.duration_ms is not None]
        return SyncStats(
            total_syncs=sum(r.success_count + r.failure_count for r in records.values()),
            successful_syncs=sum(r.success_count for r in records.values()),
            failed_syncs=sum(r.failure_count for r in records.values()),
            active_destinations=sum(1 for r in records.values() if r.is_live),
            average_duration_ms=sum(durations) / len(durations) if durations else None,
        )

    async def sweep_stale(self) -> int:
        """Resolve every stale pending record. Returns how many were resolved."""
        count = 0
        now = self._clock()
        for record in await self._store.list_by_status(SyncStatus.PENDING):
            if is_stale(record, now, self._stale_after):
                await self._store.save(resolve_stale(record))
                count += 1
        if count:
            logger.warning("Resolved %d stale pending sync records to error", count)
        return count

    async def _resolve_if_stale(self, record: SyncRecord) -> SyncRecord:
        if not is_stale(record, self._clock(), self._stale_after):
            return record
        logger.warning(
            "Pending record for product %s on %s is stale; marking as error",
            record.product_id, record.destination_id,
        )
        resolved = resolve_stale(record)
        await self._store.save(resolved)
        return resolved
