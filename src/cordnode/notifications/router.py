"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.database import get_session
from cordnode.notifications.schemas import NotificationListResponse, NotificationResponse
from cordnode.notifications.service import get_notifications, mark_read

router = APIRouter(prefix="/api/users/{user_id}/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    user_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
    db: AsyncSession = Depends(get_session),
):
    """List a user's notifications (paginated, newest first)."""
    listing = await get_notifications(db, user_id, page, per_page)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=str(n.id),
                type=n.type,
                subtype=n.subtype,
                kind=n.kind,
                title=n.title,
                description=n.description,
                timestamp=n.created_at,
                read=n.read,
            )
            for n in listing.items
        ],
        total=listing.total,
        unread_count=listing.unread,
        page=page,
        per_page=per_page,
    )


@router.post("/read-all", status_code=200)
async def mark_all_read(user_id: str, db: AsyncSession = Depends(get_session)):
    """Mark all notifications as read."""
    count = await mark_read(db, user_id)
    await db.commit()
    return {"detail": f"Marked {count} notifications as read"}


@router.post("/{notification_id}/read", status_code=200)
async def mark_notification_read(
    user_id: str,
    notification_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Mark a notification as read."""
    if not await mark_read(db, user_id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"detail": "Notification marked as read"}
