"""Scheduled maintenance jobs run by the arq worker.

- Weekly earnings reset: Monday 00:00 UTC
- Monthly earnings reset: 1st of the month 00:00 UTC
- Stale mining session reaper: every 5 minutes
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.config import get_settings
from cordnode.database import close_db, get_session, init_db
from cordnode.ledger.service import reset_period_earnings
from cordnode.mining.service import close_stale_sessions

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB engine on worker startup (arq provides ctx["redis"])."""
    settings = get_settings()
    await init_db(settings.database_url)
    logger.info("CordNode worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("CordNode worker shut down")


async def _reset(period: str) -> int:
    db = await _get_db_session()
    try:
        count = await reset_period_earnings(db, period)
        await db.commit()
        return count
    except Exception:
        await db.rollback()
        logger.exception("Failed to reset %s earnings", period)
        raise
    finally:
        await db.close()


async def reset_weekly_earnings(ctx: dict) -> int:  # type: ignore[type-arg]
    """Zero weekly_earnings for every user."""
    return await _reset("weekly")


async def reset_monthly_earnings(ctx: dict) -> int:  # type: ignore[type-arg]
    """Zero monthly_earnings for every user."""
    return await _reset("monthly")


async def reap_stale_sessions(ctx: dict) -> int:  # type: ignore[type-arg]
    """Close mining sessions whose client stopped flushing."""
    db = await _get_db_session()
    try:
        closed = await close_stale_sessions(db, max_idle_seconds=get_settings().mining_stale_session_seconds)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to reap stale mining sessions")
        raise
    finally:
        await db.close()
    if closed:
        logger.info("Closed %d stale mining sessions", closed)
    return closed
