# app/routes/sync.py
"""
HTTP surface of the sync engine.

Single syncs surface configuration problems as 400s. Bulk syncs always answer
200 with a per-key report, failures included.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.exceptions import (
    ConflictError,
    DestinationNotFoundError,
    ProductNotFoundError,
    RemoteError,
    ValidationError,
)
from app.dependencies import get_ledger, get_orchestrator
from app.schemas.sync import (
    AllocationSummary,
    BulkSyncConfig,
    BulkSyncReport,
    DestinationSyncConfig,
    DisconnectSummary,
    LiveInventory,
    ProductSyncStatus,
    SyncAttempt,
    SyncResult,
)
from app.services.sync_ledger import SyncStatusLedger
from app.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["sync"])


class BulkByDestinationsRequest(BaseModel):
    destination_ids: List[str] = Field(min_length=1)
    config: BulkSyncConfig = Field(default_factory=BulkSyncConfig)
    run_id: Optional[str] = None


class BulkByProductsRequest(BaseModel):
    product_ids: List[str] = Field(min_length=1)
    config: BulkSyncConfig = Field(default_factory=BulkSyncConfig)
    run_id: Optional[str] = None


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (ProductNotFoundError, DestinationNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RemoteError):
        return HTTPException(status_code=502, detail=str(e))
    logger.exception("Unhandled error in sync route")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/sync/products/{product_id}/destinations/{destination_id}", response_model=SyncResult)
async def sync_product(
    product_id: str,
    destination_id: str,
    config: Optional[DestinationSyncConfig] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.sync_product(product_id, destination_id, config)
    except Exception as e:
        raise _http_error(e)


@router.post("/sync/products/{product_id}/bulk", response_model=BulkSyncReport)
async def bulk_sync_product(
    product_id: str,
    request: BulkByDestinationsRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.bulk_sync(product_id, request.destination_ids, request.config, request.run_id)
    except Exception as e:
        raise _http_error(e)


@router.post("/sync/destinations/{destination_id}/bulk", response_model=BulkSyncReport)
async def bulk_sync_destination(
    destination_id: str,
    request: BulkByProductsRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.bulk_sync_products(
            destination_id, request.product_ids, request.config, request.run_id
        )
    except Exception as e:
        raise _http_error(e)


@router.get("/sync/products/{product_id}/status", response_model=ProductSyncStatus)
async def product_sync_status(
    product_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_sync_status(product_id)


@router.get(
    "/sync/products/{product_id}/destinations/{destination_id}/history",
    response_model=List[SyncAttempt],
)
async def product_sync_history(
    product_id: str,
    destination_id: str,
    ledger: SyncStatusLedger = Depends(get_ledger),
):
    return await ledger.history_for(product_id, destination_id)


@router.delete("/sync/products/{product_id}/destinations/{destination_id}", response_model=SyncResult)
async def unsync_product(
    product_id: str,
    destination_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.unsync_product(product_id, destination_id)
    except Exception as e:
        raise _http_error(e)


@router.post("/sync/runs/{run_id}/cancel")
async def cancel_run(run_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> Dict[str, object]:
    if not orchestrator.cancel(run_id):
        raise HTTPException(status_code=404, detail=f"No active sync run {run_id}")
    return {"run_id": run_id, "cancelled": True}


@router.post("/destinations/{destination_id}/disconnect", response_model=DisconnectSummary)
async def disconnect_destination(
    destination_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.disconnect_destination(destination_id)
    except Exception as e:
        raise _http_error(e)


@router.get("/inventory/variants/{variant_id}", response_model=AllocationSummary)
async def variant_allocation(variant_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.allocation_summary(variant_id)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/inventory/products/{product_id}/destinations/{destination_id}", response_model=LiveInventory)
async def live_inventory(
    product_id: str,
    destination_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Stock currently reported by the destination for a synced product"""
    try:
        return await orchestrator.live_inventory(product_id, destination_id)
    except Exception as e:
        raise _http_error(e)
