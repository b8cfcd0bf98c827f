# app/routes/notifications.py
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_notification_service
from app.schemas.notification import NotificationItem
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationItem])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=500),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.list_notifications(unread_only=unread_only, limit=limit)


@router.get("/unread-count")
async def unread_count(service: NotificationService = Depends(get_notification_service)) -> Dict[str, int]:
    return {"count": await service.unread_count()}


@router.post("/read-all")
async def mark_all_read(service: NotificationService = Depends(get_notification_service)) -> Dict[str, int]:
    return {"updated": await service.mark_all_read()}


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, service: NotificationService = Depends(get_notification_service)):
    if not await service.mark_read(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return {"id": notification_id, "is_read": True}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, service: NotificationService = Depends(get_notification_service)):
    if not await service.delete(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return {"id": notification_id, "deleted": True}
