"""Live progress predicates for catalogue tasks.

Tasks listed in LIVE_PROGRESS derive their progress from the user row at
read time; everything else uses the stored UserTask progress.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cordnode.db.models import Task, User

DAILY_CHECKIN = "daily-checkin"
SOCIAL_MEDIA_MASTER = "social-media-master"
EARLY_ADOPTER_MIN_AGE = Decimal("5")

LIVE_PROGRESS = frozenset(
    {
        "mine-1-hour",
        "weekly-mining",
        "invite-friends",
        "early-adopter",
        SOCIAL_MEDIA_MASTER,
    }
)


def day_start(now: datetime) -> datetime:
    """Midnight UTC of ``now``'s calendar day."""
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def week_start(now: datetime) -> datetime:
    """Monday 00:00 UTC of ``now``'s ISO week."""
    return day_start(now) - timedelta(days=now.astimezone(timezone.utc).weekday())


def period_start(task_type: str, now: datetime) -> datetime | None:
    """Start of the current repeat period, or None for one-off tasks."""
    if task_type == "daily":
        return day_start(now)
    if task_type == "weekly":
        return week_start(now)
    return None


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def checkin_available(user: User, now: datetime) -> bool:
    """A new UTC day since the last claim, or today's claim still open."""
    if not user.daily_checkin_claimed:
        return True
    return user.last_login_time < to_epoch_ms(day_start(now))


def compute_progress(
    task: Task,
    stored_progress: int,
    user: User,
    social_completed: int,
    now: datetime,
) -> int:
    """Current progress of ``user`` on ``task``, capped at the task's maximum."""
    cap = task.max_progress
    if task.id == "mine-1-hour":
        if not user.is_node_active or not user.node_start_time:
            return min(cap, stored_progress)
        uptime = (to_epoch_ms(now) - user.node_start_time) // 1000
        return max(0, min(cap, int(uptime)))
    if task.id == "weekly-mining":
        return min(cap, int(user.weekly_earnings))
    if task.id == "invite-friends":
        return min(cap, user.total_referrals)
    if task.id == "early-adopter":
        return 1 if Decimal(user.account_age) >= EARLY_ADOPTER_MIN_AGE else 0
    if task.id == SOCIAL_MEDIA_MASTER:
        return min(cap, social_completed)
    if task.id == DAILY_CHECKIN:
        return 0 if checkin_available(user, now) else 1
    return min(cap, stored_progress)


def requirements_met(task: Task, progress: int) -> bool:
    """Whether a claim may proceed given current progress."""
    if task.max_progress > 1 or task.id in LIVE_PROGRESS:
        return progress >= task.max_progress
    return True
