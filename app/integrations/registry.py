"""
Destination registry: resolves a destination id to its capability object.

Built once at startup from the ``destinations`` table (see ``load_registry``)
and passed to the orchestrator. Disconnecting a destination keeps the entry
so history can still name it, but ``resolve`` refuses it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings
from app.core.enums import PlatformName
from app.core.exceptions import DestinationNotFoundError, ValidationError
from app.integrations.base import DestinationClient
from app.integrations.platforms.shopify import ShopifyDestination
from app.models.destination import Destination

logger = logging.getLogger(__name__)


@dataclass
class RegisteredDestination:
    client: DestinationClient
    connected: bool = True
    default_location_id: Optional[str] = None
    currency: str = "USD"
    locale: str = "en"


class DestinationRegistry:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._destinations: Dict[str, RegisteredDestination] = {}
        self._session_factory = session_factory

    def register(
        self,
        destination_id: str,
        client: DestinationClient,
        *,
        default_location_id: Optional[str] = None,
        currency: str = "USD",
        locale: str = "en",
    ) -> None:
        self._destinations[destination_id] = RegisteredDestination(
            client=client,
            connected=True,
            default_location_id=default_location_id,
            currency=currency,
            locale=locale,
        )
        logger.info("Registered destination %s", destination_id)

    def get(self, destination_id: str) -> RegisteredDestination:
        entry = self._destinations.get(destination_id)
        if entry is None:
            raise DestinationNotFoundError(f"Destination {destination_id} is not registered")
        return entry

    def resolve(self, destination_id: str) -> DestinationClient:
        """Return the client for a connected destination."""
        entry = self.get(destination_id)
        if not entry.connected:
            raise ValidationError(f"Destination {destination_id} is disconnected")
        return entry.client

    def is_connected(self, destination_id: str) -> bool:
        entry = self._destinations.get(destination_id)
        return bool(entry and entry.connected)

    def disconnect(self, destination_id: str) -> None:
        self.get(destination_id).connected = False
        logger.info("Destination %s disconnected", destination_id)

    async def mark_disconnected(self, destination_id: str) -> None:
        """Disconnect and, when backed by the database, persist the flag so it survives a restart."""
        self.disconnect(destination_id)
        if self._session_factory is None:
            return
        async with self._session_factory() as session:
            await session.execute(
                update(Destination)
                .where(Destination.id == destination_id)
                .values(is_connected=False, disconnected_at=datetime.now(timezone.utc))
            )
            await session.commit()

    def connected_ids(self) -> List[str]:
        return [d_id for d_id, entry in self._destinations.items() if entry.connected]

    def __contains__(self, destination_id: str) -> bool:
        return destination_id in self._destinations


async def load_registry(
    session_factory: async_sessionmaker,
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> DestinationRegistry:
    """
    Build the registry from stored destinations.

    A destination whose client cannot be built is logged and skipped so one
    bad row does not keep the service from starting.
    """
    registry = DestinationRegistry(session_factory)

    async with session_factory() as session:
        rows = (await session.execute(select(Destination))).scalars().all()

    for row in rows:
        if row.platform_name != PlatformName.SHOPIFY.slug:
            logger.warning("Skipping destination %s: unsupported platform %s", row.id, row.platform_name)
            continue
        try:
            client = ShopifyDestination(
                destination_id=row.id,
                shop_domain=row.shop_domain,
                access_token=row.access_token,
                api_version=settings.SHOPIFY_API_VERSION,
                http_client=http_client,
                default_location_id=row.default_location_id or settings.SHOPIFY_DEFAULT_LOCATION_GID,
            )
        except ValueError as e:
            logger.error("Failed to initialize destination %s: %s", row.id, e)
            continue

        registry.register(
            row.id,
            client,
            default_location_id=row.default_location_id,
            currency=row.currency,
            locale=row.locale,
        )
        if not row.is_connected:
            registry.disconnect(row.id)

    logger.info("Loaded %d destinations (%d connected)", len(rows), len(registry.connected_ids()))
    return registry
