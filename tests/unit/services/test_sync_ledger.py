# tests/unit/services/test_sync_ledger.py
from datetime import datetime, timedelta, timezone

import pytest

from app.core.enums import ErrorKind, SyncOperation, SyncOutcome, SyncStatus
from app.schemas.sync import RemoteRef, SyncResult
from app.services.sync_ledger import (
    STALE_PENDING_MESSAGE,
    InMemoryLedgerStore,
    SyncStatusLedger,
    apply_outcome,
    begin_attempt,
    invalidate,
    new_record,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
REF = RemoteRef(remote_id="gid://shopify/Product/1", handle="guitar", variant_ids={"v1": "gid://shopify/ProductVariant/1"})


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def success(operation=SyncOperation.CREATE, ref=REF) -> SyncResult:
    return SyncResult(
        product_id="p1",
        destination_id="d1",
        outcome=SyncOutcome.SUCCESS,
        operation=operation,
        remote_ref=ref,
        payload_hash="abc",
        duration_ms=12.0,
    )


def failure(kind=ErrorKind.REMOTE, operation=SyncOperation.UPDATE, ref=None) -> SyncResult:
    return SyncResult.failure("p1", "d1", "boom", kind, operation=operation, remote_ref=ref, duration_ms=8.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return SyncStatusLedger(InMemoryLedgerStore(), stale_after_seconds=300, clock=clock)


def test_transitions_are_pure():
    record = new_record("p1", "d1")
    pending = begin_attempt(record, T0)

    assert record.status == SyncStatus.NEVER_SYNCED
    assert pending.status == SyncStatus.PENDING
    assert pending.attempt_count == 1

    synced = apply_outcome(pending, success(), T0)
    assert pending.remote_ref is None
    assert synced.status == SyncStatus.SYNCED
    assert synced.remote_ref == REF
    assert synced.last_success_at == T0


def test_failure_keeps_existing_ref():
    synced = apply_outcome(begin_attempt(new_record("p1", "d1"), T0), success(), T0)

    errored = apply_outcome(begin_attempt(synced, T0), failure(), T0)

    assert errored.status == SyncStatus.ERROR
    assert errored.remote_ref == REF
    assert errored.last_error == "boom"
    assert errored.last_error_kind == ErrorKind.REMOTE
    assert errored.payload_hash == "abc"


def test_failure_with_new_ref_records_it():
    errored = apply_outcome(new_record("p1", "d1"), failure(operation=SyncOperation.CREATE, ref=REF), T0)

    assert errored.status == SyncStatus.ERROR
    assert errored.usable_remote_ref == REF


def test_invalidated_record_hides_ref_but_keeps_it():
    synced = apply_outcome(new_record("p1", "d1"), success(), T0)
    invalidated = invalidate(synced, T0)

    assert invalidated.remote_ref == REF
    assert invalidated.usable_remote_ref is None
    assert invalidated.effective_status == SyncStatus.NEVER_SYNCED
    assert not invalidated.is_live

    dumped = invalidated.model_dump(mode="json")
    assert dumped["status"] == "synced"
    assert dumped["effective_status"] == "never_synced"

    restarted = begin_attempt(invalidated, T0)
    assert restarted.remote_ref is None
    assert restarted.invalidated_at is None


@pytest.mark.asyncio
async def test_missing_record_reads_never_synced(ledger):
    record = await ledger.get("p1", "d1")

    assert record.status == SyncStatus.NEVER_SYNCED
    assert record.remote_ref is None


@pytest.mark.asyncio
async def test_attempt_then_outcome(ledger):
    pending = await ledger.record_attempt("p1", "d1")
    assert pending.status == SyncStatus.PENDING

    record = await ledger.record_outcome("p1", "d1", success())

    assert record.status == SyncStatus.SYNCED
    assert await ledger.is_connected("p1")
    history = await ledger.history_for("p1", "d1")
    assert len(history) == 1
    assert history[0].success
    assert history[0].remote_id == REF.remote_id


@pytest.mark.asyncio
async def test_stale_pending_resolves_to_error(ledger, clock):
    await ledger.record_attempt("p1", "d1")
    clock.advance(seconds=301)

    status = await ledger.status_for("p1")

    record = status["d1"]
    assert record.status == SyncStatus.ERROR
    assert record.last_error_kind == ErrorKind.STALE
    assert record.last_error == STALE_PENDING_MESSAGE


@pytest.mark.asyncio
async def test_fresh_pending_is_left_alone(ledger, clock):
    await ledger.record_attempt("p1", "d1")
    clock.advance(seconds=10)

    assert (await ledger.get("p1", "d1")).status == SyncStatus.PENDING
    assert await ledger.sweep_stale() == 0


@pytest.mark.asyncio
async def test_sweep_stale_resolves_all(ledger, clock):
    await ledger.record_attempt("p1", "d1")
    await ledger.record_attempt("p1", "d2")
    await ledger.record_attempt("p2", "d1")
    await ledger.record_outcome("p2", "d1", success().model_copy(update={"product_id": "p2"}))
    clock.advance(minutes=10)

    assert await ledger.sweep_stale() == 2
    assert (await ledger.get("p2", "d1")).status == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_new_attempt_supersedes_pending(ledger):
    await ledger.record_attempt("p1", "d1")
    record = await ledger.record_attempt("p1", "d1")

    assert record.status == SyncStatus.PENDING
    assert record.attempt_count == 2


@pytest.mark.asyncio
async def test_invalidate_destination(ledger):
    await ledger.record_outcome("p1", "d1", success())
    await ledger.record_outcome("p1", "d2", success().model_copy(update={"destination_id": "d2"}))

    assert await ledger.invalidate_destination("d1") == 1
    assert await ledger.invalidate_destination("d1") == 0

    record = await ledger.get("p1", "d1")
    assert record.usable_remote_ref is None
    assert (await ledger.get("p1", "d2")).is_live


@pytest.mark.asyncio
async def test_stats_for_product(ledger):
    await ledger.record_outcome("p1", "d1", success())
    await ledger.record_outcome("p1", "d2", failure().model_copy(update={"destination_id": "d2"}))

    stats = await ledger.stats_for("p1")

    assert stats.total_syncs == 2
    assert stats.successful_syncs == 1
    assert stats.failed_syncs == 1
    assert stats.active_destinations == 1
    assert stats.average_duration_ms == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_record_removed_resets_pair(ledger):
    await ledger.record_outcome("p1", "d1", success())

    removed = SyncResult(
        product_id="p1",
        destination_id="d1",
        outcome=SyncOutcome.SUCCESS,
        operation=SyncOperation.DELETE,
        remote_ref=REF,
    )
    record = await ledger.record_removed(removed)

    assert record.status == SyncStatus.NEVER_SYNCED
    assert record.remote_ref is None
    assert record.last_operation == SyncOperation.DELETE
    history = await ledger.history_for("p1", "d1")
    assert [a.operation for a in history] == [SyncOperation.DELETE, SyncOperation.CREATE]
