"""Task completion engine.

Claims are idempotent per (user, task) and per repeat period: one-off tasks
complete once, daily and weekly tasks once per UTC day / ISO week. The
daily check-in lives on the user row and is claimed with a single
conditional UPDATE.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import Task, User, UserTask
from cordnode.errors import NotFoundError
from cordnode.ledger.service import credit, credit_values, refresh_user
from cordnode.notifications.service import create_notification
from cordnode.referrals.service import distribute_referral_reward
from cordnode.tasks.progress import (
    DAILY_CHECKIN,
    SOCIAL_MEDIA_MASTER,
    compute_progress,
    day_start,
    period_start,
    requirements_met,
    to_epoch_ms,
)
from cordnode.tasks.schemas import TaskCompletionResult, TaskResponse, TaskWithProgress

logger = structlog.get_logger()

ALREADY_COMPLETED = "Task already completed"
REQUIREMENTS_NOT_MET = "Task requirements not met"
CHECKIN_ALREADY_CLAIMED = "Daily check-in already claimed"
TASK_EXPIRED = "Task has expired"


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_completed(user_task: UserTask | None, task: Task, now: datetime) -> bool:
    """Whether a stored completion still counts in the task's current period."""
    if user_task is None or not user_task.completed:
        return False
    start = period_start(task.type, now)
    if start is None:
        return True
    claimed = _utc(user_task.claimed_at)
    return claimed is not None and claimed >= start


def to_task_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        reward=float(task.reward),
        type=task.type,
        max_progress=task.max_progress,
        social_url=task.social_url,
        expires_at=task.expires_at,
    )


async def get_all_tasks(db: AsyncSession) -> list[Task]:
    result = await db.execute(select(Task).order_by(Task.sort_order, Task.id))
    return list(result.scalars().all())


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return user


async def _user_tasks(db: AsyncSession, user_id: str) -> dict[str, UserTask]:
    result = await db.execute(select(UserTask).where(UserTask.user_id == user_id))
    return {ut.task_id: ut for ut in result.scalars().all()}


async def count_completed_social(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(UserTask)
        .join(Task, Task.id == UserTask.task_id)
        .where(UserTask.user_id == user_id, UserTask.completed.is_(True), Task.type == "social")
    )
    return result.scalar_one()


async def get_tasks_with_progress(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
) -> list[TaskWithProgress]:
    """Catalogue merged with the user's stored rows and live progress."""
    if now is None:
        now = datetime.now(timezone.utc)
    user = await _get_user(db, user_id)
    tasks = await get_all_tasks(db)
    user_tasks = await _user_tasks(db, user_id)
    social_completed = await count_completed_social(db, user_id)

    items = []
    for task in tasks:
        ut = user_tasks.get(task.id)
        progress = compute_progress(task, ut.progress if ut else 0, user, social_completed, now)
        if task.id == DAILY_CHECKIN:
            completed = progress >= 1
        else:
            completed = is_completed(ut, task, now)
        if completed:
            progress = task.max_progress
        items.append(
            TaskWithProgress(
                **to_task_response(task).model_dump(),
                completed=completed,
                progress=progress,
                claimed_at=_utc(ut.claimed_at) if ut else None,
            )
        )
    return items


async def _record_claim(
    db: AsyncSession,
    user_id: str,
    task: Task,
    existing: UserTask | None,
    reward: Decimal,
    now: datetime,
) -> bool:
    """Mark the (user, task) row completed. False if another claim got there first."""
    if existing is None:
        db.add(
            UserTask(
                user_id=user_id,
                task_id=task.id,
                completed=True,
                progress=task.max_progress,
                claimed_at=now,
                reward=reward,
            )
        )
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            return False
        return True

    not_current = UserTask.completed.is_(False)
    start = period_start(task.type, now)
    if start is not None:
        not_current = or_(not_current, UserTask.claimed_at.is_(None), UserTask.claimed_at < start)
    result = await db.execute(
        update(UserTask)
        .where(UserTask.id == existing.id, not_current)
        .values(completed=True, progress=task.max_progress, claimed_at=now, reward=reward)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def _update_social_master_progress(db: AsyncSession, user_id: str) -> None:
    """Store the completed-social-task count on the social-media-master row."""
    master = await db.get(Task, SOCIAL_MEDIA_MASTER)
    if master is None:
        return
    count = min(master.max_progress, await count_completed_social(db, user_id))
    result = await db.execute(
        select(UserTask).where(UserTask.user_id == user_id, UserTask.task_id == SOCIAL_MEDIA_MASTER)
    )
    row = result.scalar_one_or_none()
    if row is None:
        db.add(UserTask(user_id=user_id, task_id=SOCIAL_MEDIA_MASTER, completed=False, progress=count))
    elif not row.completed:
        row.progress = count
    await db.flush()


async def _claim_daily_checkin(
    db: AsyncSession,
    user: User,
    task: Task,
    reward: Decimal,
    now: datetime,
) -> bool:
    now_ms = to_epoch_ms(now)

    # Credit and flag flip in one statement so a same-day second claim matches nothing
    result = await db.execute(
        update(User)
        .where(
            User.id == user.id,
            or_(User.daily_checkin_claimed.is_(False), User.last_login_time < to_epoch_ms(day_start(now))),
        )
        .values(
            **credit_values(reward, period_earnings=False),
            tasks_completed=User.tasks_completed + 1,
            daily_checkin_claimed=True,
            last_login_time=now_ms,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False

    existing = (await _user_tasks(db, user.id)).get(task.id)
    if existing is None:
        db.add(
            UserTask(user_id=user.id, task_id=task.id, completed=True, progress=1, claimed_at=now, reward=reward)
        )
    else:
        existing.completed = True
        existing.progress = 1
        existing.claimed_at = now
        existing.reward = reward
    await db.flush()
    return True


async def complete_task(
    db: AsyncSession,
    user_id: str,
    task_id: str,
    redis: Any | None = None,
    now: datetime | None = None,
) -> TaskCompletionResult:
    """Claim a task's reward for a user.

    Business-rule rejections come back as ``success=False`` results.

    Raises:
        NotFoundError: Unknown task or user.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    task = await db.get(Task, task_id)
    if task is None:
        msg = f"Task {task_id} not found"
        raise NotFoundError(msg)
    user = await _get_user(db, user_id)

    if task.expires_at is not None and _utc(task.expires_at) <= now:
        return TaskCompletionResult(success=False, error=TASK_EXPIRED)

    reward = task.reward * user.multiplier
    if task.id == DAILY_CHECKIN:
        if not await _claim_daily_checkin(db, user, task, reward, now):
            return TaskCompletionResult(success=False, error=CHECKIN_ALREADY_CLAIMED)
    else:
        user_tasks = await _user_tasks(db, user_id)
        existing = user_tasks.get(task.id)
        if is_completed(existing, task, now):
            return TaskCompletionResult(success=False, error=ALREADY_COMPLETED)

        social_completed = await count_completed_social(db, user_id)
        progress = compute_progress(task, existing.progress if existing else 0, user, social_completed, now)
        if not requirements_met(task, progress):
            return TaskCompletionResult(success=False, error=REQUIREMENTS_NOT_MET)

        if not await _record_claim(db, user_id, task, existing, reward, now):
            return TaskCompletionResult(success=False, error=ALREADY_COMPLETED)

        await credit(db, user_id, reward, period_earnings=False)
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(tasks_completed=User.tasks_completed + 1)
            .execution_options(synchronize_session=False)
        )

        if task.type == "social":
            await _update_social_master_progress(db, user_id)

    await distribute_referral_reward(db, user_id, reward)

    await create_notification(
        db,
        user_id,
        "tasks",
        "task_completed",
        f"{task.title} completed",
        f"You earned {reward.quantize(Decimal('0.01'))} CORD.",
        kind="success",
        redis=redis,
    )

    user = await refresh_user(db, user_id)
    logger.info("task_completed", user_id=user_id, task_id=task_id, reward=str(reward))
    return TaskCompletionResult(success=True, new_balance=float(user.current_balance), reward=float(reward))
