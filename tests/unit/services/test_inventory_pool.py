# tests/unit/services/test_inventory_pool.py
import asyncio

import pytest

from app.core.exceptions import ValidationError

# p1-v1 has a pool of 10, p1-v2 a pool of 5 (see conftest.make_product)


@pytest.mark.asyncio
async def test_available_is_pool_when_nothing_committed(pool):
    assert await pool.available("p1-v1") == 10


@pytest.mark.asyncio
async def test_propose_caps_at_free_units(pool):
    await pool.commit("p1-v1", "d1", 7)

    assert await pool.propose_assignment("p1-v1", "d2", 6) == 3
    assert await pool.propose_assignment("p1-v1", "d2", 2) == 2


@pytest.mark.asyncio
async def test_propose_counts_destinations_own_assignment(pool):
    await pool.commit("p1-v1", "d1", 7)
    await pool.commit("p1-v1", "d2", 3)

    # d1 may keep its 7 even though nothing is free
    assert await pool.propose_assignment("p1-v1", "d1", 7) == 7
    assert await pool.propose_assignment("p1-v1", "d1", 9) == 7
    assert await pool.propose_assignment("p1-v1", "d1", 4) == 4


@pytest.mark.asyncio
async def test_propose_is_read_only(pool):
    first = await pool.propose_assignment("p1-v1", "d1", 8)
    second = await pool.propose_assignment("p1-v1", "d1", 8)

    assert first == second == 8
    assert await pool.available("p1-v1") == 10


@pytest.mark.asyncio
async def test_negative_request_rejected(pool):
    with pytest.raises(ValidationError):
        await pool.propose_assignment("p1-v1", "d1", -1)


@pytest.mark.asyncio
async def test_commit_clamps_and_reports(pool):
    await pool.commit("p1-v2", "d1", 4)
    decision = await pool.commit("p1-v2", "d2", 3)

    assert decision.requested == 3
    assert decision.committed == 1
    assert decision.clamped
    assert await pool.available("p1-v2") == 0


@pytest.mark.asyncio
async def test_concurrent_commits_never_oversell(pool):
    # Two destinations each ask for 60% of the pool at the same time
    decisions = await asyncio.gather(
        pool.commit("p1-v1", "d1", 6),
        pool.commit("p1-v1", "d2", 6),
    )

    assert sum(d.committed for d in decisions) <= 10
    assert sorted(d.committed for d in decisions) == [4, 6]
    assert await pool.available("p1-v1") == 0


@pytest.mark.asyncio
async def test_many_concurrent_commits_stay_within_pool(pool):
    await asyncio.gather(*(pool.commit("p1-v1", f"d{n}", 3) for n in range(10)))

    summary = await pool.allocation_summary("p1-v1")
    assert sum(summary.committed.values()) <= summary.pool_total
    assert summary.available == 10 - sum(summary.committed.values())


@pytest.mark.asyncio
async def test_shrunken_pool_floors_at_zero(catalog, pool):
    await pool.commit("p1-v1", "d1", 8)
    catalog.set_pool_total("p1-v1", 5)

    assert await pool.available("p1-v1") == -3
    assert await pool.propose_assignment("p1-v1", "d2", 2) == 0
    # d1 can shrink to what the pool now allows
    assert await pool.propose_assignment("p1-v1", "d1", 8) == 5


@pytest.mark.asyncio
async def test_release_returns_units(pool):
    await pool.commit("p1-v1", "d1", 4)
    await pool.commit("p1-v2", "d1", 2)
    await pool.commit("p1-v1", "d2", 3)

    assert await pool.release("p1-v1", "d2") == 3
    assert await pool.release_destination("d1") == 6
    assert await pool.available("p1-v1") == 10
    assert await pool.available("p1-v2") == 5


@pytest.mark.asyncio
async def test_unknown_variant_is_validation_error(pool):
    with pytest.raises(ValidationError):
        await pool.available("nope")
