from fastapi import Request

from app.integrations.registry import DestinationRegistry
from app.services.notification_relay import NotificationRelay
from app.services.notification_service import NotificationService
from app.services.sync_ledger import SyncStatusLedger
from app.services.sync_orchestrator import SyncOrchestrator
from app.services.websockets.manager import ConnectionManager

# Components are built once in the lifespan handler and kept on app.state.


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator


def get_ledger(request: Request) -> SyncStatusLedger:
    return request.app.state.ledger


def get_registry(request: Request) -> DestinationRegistry:
    return request.app.state.registry


def get_relay(request: Request) -> NotificationRelay:
    return request.app.state.relay


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager
