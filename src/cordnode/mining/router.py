"""Mining session API router."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.database import get_session
from cordnode.dependencies import get_redis_dep, get_user_or_404, http_error
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.mining import schemas, service

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Mining"])


# ---------------------------------------------------------------------------
# POST /users/{user_id}/mining/start
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/mining/start", response_model=schemas.MiningSessionResponse, status_code=201)
async def start_mining(
    user_id: str,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Open a mining session for the user."""
    try:
        session = await service.start_session(db, user_id, redis=redis)
    except (NotFoundError, ConflictError) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return service.to_response(session)


# ---------------------------------------------------------------------------
# GET /users/{user_id}/mining/current
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/mining/current", response_model=schemas.MiningSessionResponse | None)
async def current_session(user_id: str, db: AsyncSession = Depends(get_session)):
    """The user's open session, or null."""
    session = await service.get_current_session(db, user_id)
    return service.to_response(session) if session else None


# ---------------------------------------------------------------------------
# PUT /mining/{session_id}
# ---------------------------------------------------------------------------
@router.put("/mining/{session_id}", response_model=schemas.MiningSessionResponse)
async def update_session(
    session_id: str,
    body: schemas.UpdateSessionRequest,
    db: AsyncSession = Depends(get_session),
):
    """Update display metrics of a session."""
    try:
        session = await service.update_session(db, session_id, body.hash_rate, body.efficiency)
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return service.to_response(session)


# ---------------------------------------------------------------------------
# POST /mining/{session_id}/end
# ---------------------------------------------------------------------------
@router.post("/mining/{session_id}/end", response_model=schemas.EndSessionResult)
async def end_session(
    session_id: str,
    body: schemas.EndSessionRequest,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Close a session and reconcile its final earnings."""
    try:
        result = await service.end_session(db, session_id, body.final_earnings, redis=redis)
    except (NotFoundError, ConflictError) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return result


# ---------------------------------------------------------------------------
# POST /users/{user_id}/mining/{session_id}/save
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/mining/{session_id}/save", response_model=schemas.SaveProgressResult)
async def save_progress(
    user_id: str,
    session_id: str,
    body: schemas.SaveProgressRequest,
    db: AsyncSession = Depends(get_session),
):
    """Credit one flush batch of accrued earnings."""
    try:
        result = await service.save_progress(db, user_id, session_id, body.earnings_to_add, body.sequence)
    except (NotFoundError, ConflictError, ValidationFailed) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    if result.duplicate:
        logger.info("mining_flush_acknowledged_duplicate", user_id=user_id, sequence=body.sequence)
    return result


# ---------------------------------------------------------------------------
# GET /users/{user_id}/mining/history
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/mining/history", response_model=list[schemas.MiningSessionResponse])
async def history(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Most recent sessions first."""
    sessions = await service.get_user_sessions(db, user_id, limit)
    return [service.to_response(s) for s in sessions]


# ---------------------------------------------------------------------------
# GET /users/{user_id}/mining/stats
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/mining/stats", response_model=schemas.MiningStatsResponse)
async def stats(user_id: str, db: AsyncSession = Depends(get_session)):
    await get_user_or_404(db, user_id)
    return await service.get_mining_stats(db, user_id)
