"""Notification creation and delivery.

Notifications are persisted, filtered by the user's notification settings,
and pushed to the user's notification channel over Redis pub/sub when Redis is available.

Categories: mining, tasks, referrals, system
Kinds: success, info, warning, error
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import Notification, UserSettings
from cordnode.redis_client import notification_channel

logger = logging.getLogger(__name__)

VALID_CATEGORIES = {"mining", "tasks", "referrals", "system"}
VALID_KINDS = {"success", "info", "warning", "error"}

# Category -> on/off, same keys as the notifications settings group
DEFAULT_PREFERENCES = {
    "mining": True,
    "tasks": True,
    "referrals": True,
    "system": False,
}


def should_deliver(preferences: dict, category: str) -> bool:
    """Check if a notification category is enabled in the user's preferences."""
    return bool(preferences.get(category, DEFAULT_PREFERENCES.get(category, True)))


async def get_user_notification_preferences(db: AsyncSession, user_id: str) -> dict:
    """Get the user's notification preferences, falling back to defaults."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    merged = dict(DEFAULT_PREFERENCES)
    if settings is not None and settings.notifications:
        merged.update(settings.notifications)
    return merged


def to_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "subtype": notification.subtype,
        "kind": notification.kind,
        "title": notification.title,
        "description": notification.description,
        "timestamp": notification.created_at.isoformat() if notification.created_at else None,
        "read": notification.read,
    }


async def push_notification_to_user(redis: Any | None, notification: Notification) -> None:
    """Publish a flushed notification to the user's pub/sub channel."""
    if redis is None:
        return
    try:
        await redis.publish(
            notification_channel(notification.user_id),
            json.dumps({"event": "notification", "data": to_payload(notification)}),
        )
    except Exception:
        logger.warning("Failed to push notification to user %s", notification.user_id, exc_info=True)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    category: str,
    subtype: str,
    title: str,
    description: str | None = None,
    kind: str = "info",
    redis: Any | None = None,
) -> Notification | None:
    """Create a notification unless the user has muted its category."""
    if category not in VALID_CATEGORIES:
        raise ValueError(f"Invalid notification category: {category}. Must be one of {VALID_CATEGORIES}")
    if kind not in VALID_KINDS:
        raise ValueError(f"Invalid notification kind: {kind}. Must be one of {VALID_KINDS}")

    preferences = await get_user_notification_preferences(db, user_id)
    if not should_deliver(preferences, category):
        return None

    notification = Notification(
        user_id=user_id,
        type=category,
        subtype=subtype,
        kind=kind,
        title=title,
        description=description,
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    await push_notification_to_user(redis, notification)
    return notification


@dataclass(frozen=True)
class NotificationPage:
    items: list[Notification]
    total: int
    unread: int


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> NotificationPage:
    """One page of a user's notifications, newest first, with inbox totals."""
    counts = await db.execute(
        select(
            func.count(),
            func.coalesce(func.sum(case((Notification.read.is_(False), 1), else_=0)), 0),
        ).where(Notification.user_id == user_id)
    )
    total, unread = counts.one()

    rows = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return NotificationPage(items=list(rows.scalars().all()), total=total, unread=int(unread))


async def mark_read(db: AsyncSession, user_id: str, notification_id: int | None = None) -> int:
    """Mark one notification, or the whole inbox when no id is given, as read.

    Returns how many rows matched. A single id owned by another user matches
    nothing, and an already read one still counts as found.
    """
    stmt = update(Notification).where(Notification.user_id == user_id)
    if notification_id is None:
        stmt = stmt.where(Notification.read.is_(False))
    else:
        stmt = stmt.where(Notification.id == notification_id)
    result = await db.execute(stmt.values(read=True).execution_options(synchronize_session=False))
    return result.rowcount
