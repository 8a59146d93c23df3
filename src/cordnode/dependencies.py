"""Shared FastAPI dependencies and router helpers."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import User
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.redis_client import get_redis_optional as _get_redis_optional


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client (or None when unavailable) as a FastAPI dependency."""
    yield _get_redis_optional()


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def http_error(exc: Exception) -> HTTPException:
    """Map a service-layer exception to the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValidationFailed):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
