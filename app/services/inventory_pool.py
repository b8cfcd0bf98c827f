# app/services/inventory_pool.py
"""
Partitioning of a variant's inventory pool across destinations.

The one invariant this module exists for: for every variant, the sum of the
quantities committed to destinations never exceeds the variant's pool total.

Over-requests are clamped, not rejected. A destination may always keep or
reduce what it already holds; it may grow only into the currently free part
of the pool. Commits for the same variant are serialized on a per-variant
lock, so two destinations cannot both pass the check against the same free
units. Different variants never share a lock.
"""

import asyncio
import logging
from typing import Dict

from app.core.exceptions import ValidationError
from app.schemas.sync import AllocationSummary, AssignmentDecision
from app.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


class InventoryPool:
    def __init__(self, store: CatalogStore):
        self._store = store
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, variant_id: str) -> asyncio.Lock:
        lock = self._locks.get(variant_id)
        if lock is None:
            lock = self._locks[variant_id] = asyncio.Lock()
        return lock

    async def available(self, variant_id: str) -> int:
        """Pool total minus everything currently committed. Always read fresh."""
        total = await self._store.get_pool_total(variant_id)
        assignments = await self._store.get_assignments(variant_id)
        return total - sum(assignments.values())

    async def current_assignment(self, variant_id: str, destination_id: str) -> int:
        assignments = await self._store.get_assignments(variant_id)
        return assignments.get(destination_id, 0)

    async def propose_assignment(self, variant_id: str, destination_id: str, requested_qty: int) -> int:
        """
        Largest quantity ``destination_id`` may hold, capped at ``requested_qty``.

        Reads only; calling it twice without an intervening commit gives the
        same answer.
        """
        if requested_qty < 0:
            raise ValidationError(f"Inventory request for variant {variant_id} must be >= 0, got {requested_qty}")

        total = await self._store.get_pool_total(variant_id)
        assignments = await self._store.get_assignments(variant_id)
        held = assignments.get(destination_id, 0)
        free = total - sum(assignments.values())
        # A shrunken pool can leave ``free`` negative; never go below zero.
        return max(0, min(requested_qty, free + held))

    async def commit(self, variant_id: str, destination_id: str, qty: int) -> AssignmentDecision:
        """Clamp and record the assignment atomically with respect to other commits for this variant."""
        async with self._lock_for(variant_id):
            committed = await self.propose_assignment(variant_id, destination_id, qty)
            await self._store.set_assignment(variant_id, destination_id, committed)

        if committed < qty:
            logger.warning(
                "Clamped inventory for variant %s on %s: requested %d, committed %d",
                variant_id, destination_id, qty, committed,
            )
        return AssignmentDecision(
            variant_id=variant_id,
            destination_id=destination_id,
            requested=qty,
            committed=committed,
        )

    async def release(self, variant_id: str, destination_id: str) -> int:
        async with self._lock_for(variant_id):
            return await self._store.delete_assignment(variant_id, destination_id)

    async def release_destination(self, destination_id: str) -> int:
        """Return everything a destination holds to the pools. Returns the number of units released."""
        released = await self._store.delete_assignments_for_destination(destination_id)
        return sum(released.values())

    async def allocation_summary(self, variant_id: str) -> AllocationSummary:
        total = await self._store.get_pool_total(variant_id)
        assignments = await self._store.get_assignments(variant_id)
        return AllocationSummary(
            variant_id=variant_id,
            pool_total=total,
            committed=assignments,
            available=total - sum(assignments.values()),
        )
