"""Mining session lifecycle and periodic earnings flushes.

A session is open while ``end_time`` is NULL; the partial unique index
``uq_mining_sessions_one_open`` allows one open session per user. Earnings
reach the ledger through ``save_progress`` (every flush) and, for whatever
the flushes missed, ``end_session``.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.config import get_settings
from cordnode.db.models import MiningSession, User
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.ledger.service import credit, refresh_user
from cordnode.mining.schemas import EndSessionResult, MiningSessionResponse, MiningStatsResponse, SaveProgressResult
from cordnode.notifications.service import create_notification
from cordnode.referrals.service import distribute_referral_reward

logger = structlog.get_logger()

END_SESSION_ATTEMPTS = 3
# Below any real flush; absorbs Numeric rounding on read-back
EARNINGS_EPSILON = Decimal("0.000001")


def _utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _epoch_ms(value: datetime) -> int:
    return int(_utc(value).timestamp() * 1000)


def to_response(session: MiningSession) -> MiningSessionResponse:
    return MiningSessionResponse(
        id=session.id,
        user_id=session.user_id,
        start_time=_utc(session.start_time),
        end_time=_utc(session.end_time) if session.end_time else None,
        earnings=float(session.earnings),
        hash_rate=float(session.hash_rate),
        efficiency=float(session.efficiency),
    )


async def _load_session(db: AsyncSession, session_id: str, for_update: bool = False) -> MiningSession:
    stmt = select(MiningSession).where(MiningSession.id == session_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    session = result.scalar_one_or_none()
    if session is None:
        msg = "Mining session not found"
        raise NotFoundError(msg)
    return session


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def get_current_session(db: AsyncSession, user_id: str) -> MiningSession | None:
    """Newest open session for the user, if any."""
    result = await db.execute(
        select(MiningSession)
        .where(MiningSession.user_id == user_id, MiningSession.end_time.is_(None))
        .order_by(MiningSession.start_time.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def start_session(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
    redis: Any | None = None,
) -> MiningSession:
    """Open a new session and mark the user's node active.

    Raises:
        NotFoundError: Unknown user.
        ConflictError: The user already has an open session.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    exists = await db.execute(select(User.id).where(User.id == user_id))
    if exists.scalar_one_or_none() is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)

    if await get_current_session(db, user_id) is not None:
        msg = "Mining session already active"
        raise ConflictError(msg)

    session = MiningSession(
        user_id=user_id,
        start_time=now,
        last_activity_at=now,
        earnings=Decimal("0"),
        hash_rate=Decimal(str(round(150 + random.random() * 50, 2))),  # noqa: S311
        efficiency=Decimal(str(round(85 + random.random() * 15, 2))),  # noqa: S311
        flush_sequence=0,
    )
    db.add(session)
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost a start/start race to the one-open-session index
        msg = "Mining session already active"
        raise ConflictError(msg) from e

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(is_node_active=True, node_start_time=_epoch_ms(now))
        .execution_options(synchronize_session=False)
    )

    await create_notification(
        db, user_id, "mining", "node_started", "Node started", "Your node is now mining CORD.", redis=redis
    )
    logger.info("mining_session_started", user_id=user_id, session_id=session.id)
    return session


async def update_session(
    db: AsyncSession,
    session_id: str,
    hash_rate: float | None = None,
    efficiency: float | None = None,
) -> MiningSession:
    """Update the display-only metrics of a session."""
    session = await _load_session(db, session_id)
    if hash_rate is not None:
        session.hash_rate = Decimal(str(hash_rate))
    if efficiency is not None:
        session.efficiency = Decimal(str(efficiency))
    await db.flush()
    return session


async def save_progress(
    db: AsyncSession,
    user_id: str,
    session_id: str,
    earnings_to_add: Decimal,
    sequence: int | None = None,
    now: datetime | None = None,
) -> SaveProgressResult:
    """Credit one flush batch to the ledger and the session.

    With a ``sequence``, a batch numbered at or below the last one credited
    to this session is acknowledged as a duplicate and credits nothing.

    Raises:
        ValidationFailed: Negative amount.
        NotFoundError: Unknown session or the session belongs to someone else.
        ConflictError: The session has already ended.
    """
    amount = Decimal(earnings_to_add)
    if amount < 0:
        msg = "earningsToAdd must be non-negative"
        raise ValidationFailed(msg)
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        update(MiningSession)
        .where(
            MiningSession.id == session_id,
            MiningSession.user_id == user_id,
            MiningSession.end_time.is_(None),
        )
        .values(earnings=MiningSession.earnings + amount, last_activity_at=now)
        .execution_options(synchronize_session=False)
    )
    if sequence is not None:
        stmt = stmt.where(MiningSession.flush_sequence < sequence).values(flush_sequence=sequence)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        session = await _load_session(db, session_id)
        if session.user_id != user_id:
            msg = "Mining session not found"
            raise NotFoundError(msg)
        if session.end_time is not None:
            msg = "Mining session has already ended"
            raise ConflictError(msg)
        # Only a stale sequence is left
        user = await refresh_user(db, user_id)
        logger.info("mining_flush_duplicate", user_id=user_id, session_id=session_id, sequence=sequence)
        return SaveProgressResult(
            success=True,
            duplicate=True,
            new_balance=float(user.current_balance),
            session_earnings=float(session.earnings),
        )

    if amount > 0:
        await credit(db, user_id, amount)
        if get_settings().referral_commission_on_mining:
            await distribute_referral_reward(db, user_id, amount)

    user = await refresh_user(db, user_id)
    session = await _load_session(db, session_id)
    return SaveProgressResult(
        success=True,
        new_balance=float(user.current_balance),
        session_earnings=float(session.earnings),
    )


async def end_session(
    db: AsyncSession,
    session_id: str,
    final_earnings: Decimal,
    now: datetime | None = None,
    redis: Any | None = None,
) -> EndSessionResult:
    """Close a session, crediting only what the flushes have not already recorded.

    The row is locked while the remainder is computed, and the closing
    UPDATE only matches the earnings it was computed from; a flush that
    lands in between forces a recompute instead of a double credit.

    Raises:
        NotFoundError: Unknown session.
        ConflictError: The session has already ended.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    final_earnings = Decimal(final_earnings)

    for _attempt in range(END_SESSION_ATTEMPTS):
        session = await _load_session(db, session_id, for_update=True)
        if session.end_time is not None:
            msg = "Mining session has already ended"
            raise ConflictError(msg)

        seen_earnings = session.earnings
        remaining = final_earnings - seen_earnings
        credited = remaining if remaining > 0 else Decimal("0")

        closed = await db.execute(
            update(MiningSession)
            .where(
                MiningSession.id == session_id,
                MiningSession.end_time.is_(None),
                MiningSession.earnings < seen_earnings + EARNINGS_EPSILON,
            )
            .values(
                end_time=now,
                last_activity_at=now,
                earnings=MiningSession.earnings + credited,
            )
            .execution_options(synchronize_session=False)
        )
        if closed.rowcount:
            break
        logger.info("mining_session_end_retry", session_id=session_id)
    else:
        msg = "Mining session changed while ending; retry"
        raise ConflictError(msg)

    if credited > 0:
        await credit(db, session.user_id, credited)
        if get_settings().referral_commission_on_mining:
            await distribute_referral_reward(db, session.user_id, credited)

    await db.execute(
        update(User)
        .where(User.id == session.user_id)
        .values(is_node_active=False, node_start_time=None)
        .execution_options(synchronize_session=False)
    )

    session = await _load_session(db, session_id)
    user = await refresh_user(db, session.user_id)

    await create_notification(
        db,
        session.user_id,
        "mining",
        "node_stopped",
        "Node stopped",
        f"Session earned {session.earnings.quantize(Decimal('0.0001'))} CORD.",
        kind="success",
        redis=redis,
    )
    logger.info(
        "mining_session_ended",
        user_id=session.user_id,
        session_id=session_id,
        earnings=str(session.earnings),
        credited=str(credited),
    )
    return EndSessionResult(
        success=True,
        session=to_response(session),
        credited=float(credited),
        new_balance=float(user.current_balance),
    )


# ---------------------------------------------------------------------------
# History / stats
# ---------------------------------------------------------------------------


async def get_user_sessions(db: AsyncSession, user_id: str, limit: int = 10) -> list[MiningSession]:
    """A user's sessions, newest first."""
    result = await db.execute(
        select(MiningSession)
        .where(MiningSession.user_id == user_id)
        .order_by(MiningSession.start_time.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_mining_stats(db: AsyncSession, user_id: str, now: datetime | None = None) -> MiningStatsResponse:
    if now is None:
        now = datetime.now(timezone.utc)

    result = await db.execute(select(MiningSession).where(MiningSession.user_id == user_id))
    sessions = list(result.scalars().all())

    total_earnings = sum((s.earnings for s in sessions), Decimal("0"))
    total_seconds = 0
    active_id = None
    for s in sessions:
        end = _utc(s.end_time) if s.end_time else now
        total_seconds += max(0, int((end - _utc(s.start_time)).total_seconds()))
        if s.end_time is None:
            active_id = s.id

    average_efficiency = (
        float(sum((s.efficiency for s in sessions), Decimal("0")) / len(sessions)) if sessions else 0.0
    )
    return MiningStatsResponse(
        total_sessions=len(sessions),
        total_earnings=float(total_earnings),
        average_efficiency=round(average_efficiency, 2),
        total_mining_seconds=total_seconds,
        active_session_id=active_id,
    )


async def close_stale_sessions(
    db: AsyncSession,
    now: datetime | None = None,
    max_idle_seconds: int | None = None,
) -> int:
    """Close open sessions that have not flushed for ``max_idle_seconds``.

    The session ends at its last activity; nothing is credited since the
    client never reported more.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if max_idle_seconds is None:
        max_idle_seconds = get_settings().mining_stale_session_seconds
    cutoff = now - timedelta(seconds=max_idle_seconds)

    result = await db.execute(
        select(MiningSession).where(
            MiningSession.end_time.is_(None),
            MiningSession.last_activity_at < cutoff,
        )
    )
    stale = list(result.scalars().all())
    for session in stale:
        session.end_time = session.last_activity_at
        await db.execute(
            update(User)
            .where(User.id == session.user_id)
            .values(is_node_active=False, node_start_time=None)
            .execution_options(synchronize_session=False)
        )
    await db.flush()
    return len(stale)
