"""Notification feed endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from aics.dependencies import get_notification_service
from aics.services.notifications import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/")
async def list_notifications(
    plugin_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Notifications raised by plugins, oldest first."""
    items = notifications.list(plugin_id=plugin_id, limit=limit)
    return {"notifications": [n.to_dict() for n in items]}
