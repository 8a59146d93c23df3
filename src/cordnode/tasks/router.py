"""Task catalogue and completion endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.database import get_session
from cordnode.dependencies import get_redis_dep, http_error
from cordnode.errors import NotFoundError
from cordnode.tasks.schemas import CompleteTaskRequest, TaskCompletionResult, TaskResponse, TaskWithProgress
from cordnode.tasks.service import complete_task, get_all_tasks, get_tasks_with_progress, to_task_response

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Tasks"])


@router.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(db: AsyncSession = Depends(get_session)):
    """The task catalogue."""
    return [to_task_response(t) for t in await get_all_tasks(db)]


@router.get("/users/{user_id}/tasks", response_model=list[TaskWithProgress])
async def list_user_tasks(user_id: str, db: AsyncSession = Depends(get_session)):
    """Catalogue with the user's completion state and live progress."""
    try:
        return await get_tasks_with_progress(db, user_id)
    except NotFoundError as e:
        raise http_error(e) from e


@router.post("/users/{user_id}/tasks/{task_id}/complete", response_model=TaskCompletionResult)
async def complete(
    user_id: str,
    task_id: str,
    body: CompleteTaskRequest | None = None,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Claim a task reward. Rule rejections return 200 with success=false."""
    if body is not None and body.reward_amount is not None:
        logger.debug("client_reward_amount_ignored", task_id=task_id, reward_amount=str(body.reward_amount))
    try:
        result = await complete_task(db, user_id, task_id, redis=redis)
    except NotFoundError as e:
        await db.rollback()
        raise http_error(e) from e
    if result.success:
        await db.commit()
    else:
        await db.rollback()
    return result
