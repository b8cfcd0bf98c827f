from typing import Optional, Protocol, runtime_checkable

from app.schemas.sync import ProductPayload, RemoteRef


@runtime_checkable
class DestinationClient(Protocol):
    """
    Capability surface a storefront exposes to the sync engine.

    Any object with these coroutines is usable; there is no base class to
    inherit from. Implementations raise ``RemoteError`` on failure.
    """

    destination_id: str

    async def create_remote(self, payload: ProductPayload) -> RemoteRef:
        """Create the product remotely and return its identifiers"""
        ...

    async def update_remote(self, ref: RemoteRef, payload: ProductPayload) -> RemoteRef:
        """Update an existing remote product in place"""
        ...

    async def delete_remote(self, ref: RemoteRef) -> None:
        """Delete the remote product"""
        ...

    async def read_inventory(self, ref: RemoteRef, variant_id: str, location_id: Optional[str] = None) -> int:
        """Current available quantity of one variant on the destination"""
        ...

    async def write_inventory(
        self,
        ref: RemoteRef,
        variant_id: str,
        quantity: int,
        location_id: Optional[str] = None,
    ) -> None:
        """Set the available quantity of one variant on the destination"""
        ...
