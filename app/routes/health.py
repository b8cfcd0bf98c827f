from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from app.dependencies import get_ledger, get_orchestrator, get_registry
from app.integrations.registry import DestinationRegistry
from app.services.sync_ledger import SyncStatusLedger
from app.services.sync_orchestrator import SyncOrchestrator

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "StoreSync"}

@router.get("/health/db")
async def database_health(request: Request):
    """Check database connectivity"""
    session_factory = request.app.state.session_factory
    if session_factory is None:
        return {"status": "healthy", "database": "in-memory"}
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }

@router.get("/health/sync")
async def sync_health(
    ledger: SyncStatusLedger = Depends(get_ledger),
    registry: DestinationRegistry = Depends(get_registry),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Resolve interrupted syncs and report engine state"""
    resolved = await ledger.sweep_stale()
    return {
        "status": "healthy",
        "stale_pending_resolved": resolved,
        "connected_destinations": registry.connected_ids(),
        "active_runs": orchestrator.active_runs(),
    }
