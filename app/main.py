# app/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request

from app.core.config import Settings, get_settings
from app.core.enums import SyncEventName
from app.core.logging_config import configure_logging
from app.database import create_engine_for, create_session_factory
from app.integrations.registry import DestinationRegistry, load_registry
from app.routes import health, notifications, sync, websockets as websocket_router
from app.services.catalog_store import InMemoryCatalogStore, SqlCatalogStore
from app.services.inventory_pool import InventoryPool
from app.services.notification_relay import WILDCARD, NotificationRelay
from app.services.notification_service import (
    InMemoryNotificationStore,
    NotificationService,
    SqlNotificationStore,
)
from app.services.sync_ledger import InMemoryLedgerStore, SqlLedgerStore, SyncStatusLedger
from app.services.sync_orchestrator import SyncOrchestrator
from app.services.websockets.manager import ConnectionManager

logger = logging.getLogger(__name__)


async def build_components(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    """Wire stores, engine and relay subscribers onto ``app.state``."""
    engine = None
    session_factory = None
    if settings.DATABASE_URL:
        engine = create_engine_for(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)
        catalog = SqlCatalogStore(session_factory)
        ledger_store = SqlLedgerStore(session_factory)
        notification_store = SqlNotificationStore(session_factory)
        registry = await load_registry(session_factory, settings, http_client)
    else:
        logger.warning("DATABASE_URL not set; using in-memory stores")
        catalog = InMemoryCatalogStore()
        ledger_store = InMemoryLedgerStore()
        notification_store = InMemoryNotificationStore()
        registry = DestinationRegistry()

    relay = NotificationRelay()
    ledger = SyncStatusLedger(
        ledger_store,
        stale_after_seconds=settings.SYNC_PENDING_STALE_SECONDS,
        history_limit=settings.SYNC_HISTORY_LIMIT,
    )
    pool = InventoryPool(catalog)
    notification_service = NotificationService(notification_store, settings.NOTIFICATION_RETENTION_DAYS)
    connection_manager = ConnectionManager()

    relay.subscribe(SyncEventName.COMPLETED, notification_service.handle_event)
    relay.subscribe(WILDCARD, connection_manager.handle_event)

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.catalog = catalog
    app.state.pool = pool
    app.state.ledger = ledger
    app.state.registry = registry
    app.state.relay = relay
    app.state.notification_service = notification_service
    app.state.connection_manager = connection_manager
    app.state.orchestrator = SyncOrchestrator.from_settings(catalog, pool, ledger, registry, relay, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    http_client = httpx.AsyncClient(timeout=settings.REMOTE_CALL_TIMEOUT_SECONDS)
    await build_components(app, settings, http_client)

    swept = await app.state.ledger.sweep_stale()
    if swept:
        logger.warning("Resolved %d sync records left pending by a previous process", swept)
    await app.state.notification_service.purge_expired()

    try:
        yield  # This is where the app runs
    finally:
        app.state.relay.close()
        await http_client.aclose()
        if app.state.engine is not None:
            await app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="StoreSync",
        lifespan=lifespan
    )
    app.state.settings = settings

    # Add middleware to handle HTTPS behind proxy
    @app.middleware("http")
    async def proxy_headers_middleware(request: Request, call_next):
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto == "https":
            request.scope["scheme"] = "https"
        return await call_next(request)

    app.include_router(sync.router)
    app.include_router(notifications.router)
    app.include_router(websocket_router.router)
    app.include_router(health.router)
    return app


app = create_app()
