"""Anti-cheat endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.anticheat.schemas import AntiCheatStatus, TrackIpRequest
from cordnode.anticheat.service import get_latest_status, track_user_ip
from cordnode.database import get_session
from cordnode.dependencies import get_redis_dep, get_user_or_404

logger = structlog.get_logger()

router = APIRouter(prefix="/api/users/{user_id}/anticheat", tags=["Anti-cheat"])


@router.post("/track", response_model=AntiCheatStatus)
async def track(
    user_id: str,
    request: Request,
    body: TrackIpRequest | None = None,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Record the caller's IP for the user and return the resulting status.

    The IP is taken from the connection unless the body names one.
    """
    await get_user_or_404(db, user_id)
    body = body or TrackIpRequest()
    ip_address = body.ip_address or (request.client.host if request.client else "unknown")
    user_agent = body.user_agent or request.headers.get("user-agent")

    status = await track_user_ip(db, user_id, ip_address, user_agent, redis=redis)
    await db.commit()
    if status.is_flagged:
        logger.info("anticheat_flagged", user_id=user_id, penalty_level=status.penalty_level)
    return status


@router.get("/status", response_model=AntiCheatStatus)
async def get_status(user_id: str, db: AsyncSession = Depends(get_session)):
    """Current anti-cheat status for the user's most recent IP."""
    await get_user_or_404(db, user_id)
    return await get_latest_status(db, user_id)
