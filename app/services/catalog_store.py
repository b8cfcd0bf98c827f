# app/services/catalog_store.py
"""
Catalog access for the sync engine.

The engine reads products and pool totals, and reads/writes the two records
it owns on the catalog side: inventory allocations per (variant, destination)
and the last applied sync configuration per (product, destination).

Two implementations share the ``CatalogStore`` protocol: an in-memory one for
local development and tests, and a SQLAlchemy one backed by the tables in
``app.models``.
"""

import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import ValidationError
from app.models.product import Product, ProductVariant
from app.models.sync_config import DestinationSyncSetting, InventoryAllocation
from app.schemas.catalog import ProductData
from app.schemas.sync import DestinationSyncConfig, VariantOverride

logger = logging.getLogger(__name__)

# Fields that describe what was pushed, as opposed to per-run intent
_PERSISTED_CONFIG_EXCLUDE = {"variant_overrides", "inventory", "force_sync"}


class CatalogStore(Protocol):
    async def get_product(self, product_id: str) -> Optional[ProductData]: ...

    async def get_pool_total(self, variant_id: str) -> int: ...

    async def get_assignments(self, variant_id: str) -> Dict[str, int]: ...

    async def set_assignment(self, variant_id: str, destination_id: str, quantity: int) -> None: ...

    async def delete_assignment(self, variant_id: str, destination_id: str) -> int: ...

    async def delete_assignments_for_destination(self, destination_id: str) -> Dict[str, int]: ...

    async def get_sync_config(self, product_id: str, destination_id: str) -> Optional[DestinationSyncConfig]: ...

    async def save_sync_config(self, product_id: str, destination_id: str, config: DestinationSyncConfig) -> None: ...


def _config_to_rows(config: DestinationSyncConfig):
    overrides = {
        variant_id: override.model_dump(mode="json", exclude_none=True)
        for variant_id, override in config.variant_overrides.items()
    }
    return overrides, config.model_dump(mode="json", exclude=_PERSISTED_CONFIG_EXCLUDE)


def _config_from_rows(overrides: Dict, stored: Dict) -> DestinationSyncConfig:
    return DestinationSyncConfig(
        **(stored or {}),
        variant_overrides={
            variant_id: VariantOverride(**values) for variant_id, values in (overrides or {}).items()
        },
    )


class InMemoryCatalogStore:
    def __init__(self):
        self._products: Dict[str, ProductData] = {}
        self._variant_products: Dict[str, str] = {}
        self._assignments: Dict[str, Dict[str, int]] = {}
        self._configs: Dict[tuple, tuple] = {}

    def add_product(self, product: ProductData) -> None:
        self._products[product.id] = product
        for variant in product.variants:
            self._variant_products[variant.id] = product.id

    def set_pool_total(self, variant_id: str, quantity: int) -> None:
        product = self._products[self._variant_products[variant_id]]
        variants = [
            v.model_copy(update={"inventory_quantity": quantity}) if v.id == variant_id else v
            for v in product.variants
        ]
        self.add_product(product.model_copy(update={"variants": variants}))

    async def get_product(self, product_id: str) -> Optional[ProductData]:
        return self._products.get(product_id)

    async def get_pool_total(self, variant_id: str) -> int:
        product_id = self._variant_products.get(variant_id)
        if product_id is None:
            raise ValidationError(f"Unknown variant {variant_id}")
        return self._products[product_id].variant(variant_id).inventory_quantity

    async def get_assignments(self, variant_id: str) -> Dict[str, int]:
        return dict(self._assignments.get(variant_id, {}))

    async def set_assignment(self, variant_id: str, destination_id: str, quantity: int) -> None:
        self._assignments.setdefault(variant_id, {})[destination_id] = quantity

    async def delete_assignment(self, variant_id: str, destination_id: str) -> int:
        return self._assignments.get(variant_id, {}).pop(destination_id, 0)

    async def delete_assignments_for_destination(self, destination_id: str) -> Dict[str, int]:
        released = {}
        for variant_id, by_destination in self._assignments.items():
            if destination_id in by_destination:
                released[variant_id] = by_destination.pop(destination_id)
        return released

    async def get_sync_config(self, product_id: str, destination_id: str) -> Optional[DestinationSyncConfig]:
        stored = self._configs.get((product_id, destination_id))
        if stored is None:
            return None
        return _config_from_rows(*stored)

    async def save_sync_config(self, product_id: str, destination_id: str, config: DestinationSyncConfig) -> None:
        self._configs[(product_id, destination_id)] = _config_to_rows(config)


class SqlCatalogStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_product(self, product_id: str) -> Optional[ProductData]:
        async with self._session_factory() as session:
            product = await session.get(Product, product_id)
            if product is None:
                return None
            return ProductData.from_orm_model(product)

    async def get_pool_total(self, variant_id: str) -> int:
        async with self._session_factory() as session:
            quantity = await session.scalar(
                select(ProductVariant.inventory_quantity).where(ProductVariant.id == variant_id)
            )
        if quantity is None:
            raise ValidationError(f"Unknown variant {variant_id}")
        return quantity

    async def get_assignments(self, variant_id: str) -> Dict[str, int]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(InventoryAllocation.destination_id, InventoryAllocation.quantity)
                .where(InventoryAllocation.variant_id == variant_id)
            )
            return {destination_id: quantity for destination_id, quantity in rows.all()}

    async def set_assignment(self, variant_id: str, destination_id: str, quantity: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(InventoryAllocation)
                    .where(InventoryAllocation.variant_id == variant_id)
                    .where(InventoryAllocation.destination_id == destination_id)
                    .with_for_update()
                )
                if row is None:
                    session.add(InventoryAllocation(
                        variant_id=variant_id, destination_id=destination_id, quantity=quantity
                    ))
                else:
                    row.quantity = quantity

    async def delete_assignment(self, variant_id: str, destination_id: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(InventoryAllocation)
                    .where(InventoryAllocation.variant_id == variant_id)
                    .where(InventoryAllocation.destination_id == destination_id)
                )
                if row is None:
                    return 0
                released = row.quantity
                await session.delete(row)
                return released

    async def delete_assignments_for_destination(self, destination_id: str) -> Dict[str, int]:
        async with self._session_factory() as session:
            async with session.begin():
                rows = await session.execute(
                    select(InventoryAllocation.variant_id, InventoryAllocation.quantity)
                    .where(InventoryAllocation.destination_id == destination_id)
                )
                released = {variant_id: quantity for variant_id, quantity in rows.all()}
                await session.execute(
                    delete(InventoryAllocation).where(InventoryAllocation.destination_id == destination_id)
                )
        logger.info("Released %d allocations for destination %s", len(released), destination_id)
        return released

    async def get_sync_config(self, product_id: str, destination_id: str) -> Optional[DestinationSyncConfig]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(DestinationSyncSetting)
                .where(DestinationSyncSetting.product_id == product_id)
                .where(DestinationSyncSetting.destination_id == destination_id)
            )
            if row is None:
                return None
            return _config_from_rows(row.variant_overrides, row.config)

    async def save_sync_config(self, product_id: str, destination_id: str, config: DestinationSyncConfig) -> None:
        overrides, stored = _config_to_rows(config)
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.scalar(
                    select(DestinationSyncSetting)
                    .where(DestinationSyncSetting.product_id == product_id)
                    .where(DestinationSyncSetting.destination_id == destination_id)
                )
                if row is None:
                    session.add(DestinationSyncSetting(
                        product_id=product_id,
                        destination_id=destination_id,
                        variant_overrides=overrides,
                        config=stored,
                    ))
                else:
                    row.variant_overrides = overrides
                    row.config = stored
