import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.core.exceptions import RemoteError
from app.schemas.sync import ProductPayload, RemoteRef


class MockDestination:
    """In-memory stand-in for a storefront. Records every call it receives."""

    def __init__(self, destination_id: str):
        self.destination_id = destination_id
        self.products: Dict[str, ProductPayload] = {}  # remote_id -> last payload
        self.stock_levels: Dict[Tuple[str, str], int] = {}  # (remote_id, variant_id) -> quantity
        self.create_calls: List[dict] = []
        self.update_calls: List[dict] = []
        self.delete_calls: List[dict] = []
        self.inventory_calls: List[dict] = []
        self.should_fail = False  # product writes and deletes raise RemoteError
        self.fail_inventory = False  # inventory writes raise RemoteError
        self.delay = 0.0  # seconds to sleep inside every call
        self.hang = False  # product writes never return
        self._counter = 0

    async def _simulate(self, operation: str):
        if self.hang and operation in ("create", "update"):
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.should_fail and operation != "inventory":
            raise RemoteError(f"{self.destination_id} rejected {operation}", destination_id=self.destination_id, status_code=500)
        if self.fail_inventory and operation == "inventory":
            raise RemoteError(f"{self.destination_id} rejected inventory write", destination_id=self.destination_id)

    def _ref_for(self, remote_id: str, payload: ProductPayload) -> RemoteRef:
        return RemoteRef(
            remote_id=remote_id,
            handle=payload.title.lower().replace(" ", "-"),
            variant_ids={v.variant_id: f"{remote_id}/variant/{v.variant_id}" for v in payload.variants},
        )

    async def create_remote(self, payload: ProductPayload) -> RemoteRef:
        await self._simulate("create")
        self._counter += 1
        remote_id = f"gid://{self.destination_id}/Product/{self._counter}"
        self.create_calls.append({"payload": payload, "timestamp": datetime.now()})
        self.products[remote_id] = payload
        return self._ref_for(remote_id, payload)

    async def update_remote(self, ref: RemoteRef, payload: ProductPayload) -> RemoteRef:
        await self._simulate("update")
        if ref.remote_id not in self.products:
            raise RemoteError(f"Product {ref.remote_id} does not exist", destination_id=self.destination_id, status_code=404)
        self.update_calls.append({"ref": ref, "payload": payload, "timestamp": datetime.now()})
        self.products[ref.remote_id] = payload
        return self._ref_for(ref.remote_id, payload)

    async def delete_remote(self, ref: RemoteRef) -> None:
        await self._simulate("delete")
        self.delete_calls.append({"ref": ref, "timestamp": datetime.now()})
        self.products.pop(ref.remote_id, None)

    async def read_inventory(self, ref: RemoteRef, variant_id: str, location_id: Optional[str] = None) -> int:
        await self._simulate("read")
        return self.stock_levels.get((ref.remote_id, variant_id), 0)

    async def write_inventory(self, ref: RemoteRef, variant_id: str, quantity: int, location_id: Optional[str] = None) -> None:
        await self._simulate("inventory")
        self.inventory_calls.append({
            "remote_id": ref.remote_id,
            "variant_id": variant_id,
            "quantity": quantity,
            "location_id": location_id,
        })
        self.stock_levels[(ref.remote_id, variant_id)] = quantity

    def clear_history(self):
        """Clear test history"""
        self.create_calls = []
        self.update_calls = []
        self.delete_calls = []
        self.inventory_calls = []
