"""Notification response schemas."""

from datetime import datetime

from cordnode.schemas import CamelModel


class NotificationResponse(CamelModel):
    id: str
    type: str
    subtype: str
    kind: str
    title: str
    description: str | None = None
    timestamp: datetime
    read: bool


class NotificationListResponse(CamelModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    per_page: int
