"""
Payloads carried by sync lifecycle events.

Each model is dumped to a plain dict before being handed to the relay, so
websocket clients and the notification sink see JSON-ready data.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from app.core.enums import SyncStatus


class SyncStartedEvent(BaseModel):
    run_id: str
    keyed_by: str
    product_ids: List[str]
    destination_ids: List[str]


class SyncProgressEvent(BaseModel):
    run_id: str
    product_id: str
    destination_id: str
    status: SyncStatus
    error: Optional[str] = None


class SyncCompletedEvent(BaseModel):
    run_id: str
    report: Dict[str, Any]
