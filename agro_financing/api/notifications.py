"""
Notification endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .deps import AgroFinancingSystem, get_system
from ..notifications import NotificationStatus


router = APIRouter()


@router.get("/{farmer_id}")
async def get_notifications(
    farmer_id: str,
    status: Optional[str] = None,
    limit: int = 50,
    system: AgroFinancingSystem = Depends(get_system)
):
    """Notifications for a farmer, newest first"""
    try:
        status_filter = NotificationStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown notification status: {status}")

    notifications = system.notifications.get_notifications(farmer_id, status=status_filter, limit=limit)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": system.notifications.get_unread_count(farmer_id)
    }


@router.post("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    system: AgroFinancingSystem = Depends(get_system)
):
    if not system.notifications.mark_as_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}
