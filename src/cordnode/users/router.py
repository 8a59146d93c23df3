"""User, leaderboard, stats and settings endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.database import get_session
from cordnode.db.models import User
from cordnode.dependencies import get_redis_dep, http_error
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.users.schemas import (
    CreateUserRequest,
    CreateUserResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    PlatformStats,
    ProfileUpdateRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    UserResponse,
)
from cordnode.users.service import (
    create_user,
    get_leaderboard,
    get_platform_stats,
    get_user,
    get_user_by_username,
    get_user_settings,
    record_login,
    set_node_active,
    update_profile,
    update_user_settings,
    with_defaults,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Users"])


def _user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        username=user.username,
        discriminator=user.discriminator,
        avatar=user.avatar,
        join_date=user.join_date,
        account_age=float(user.account_age),
        multiplier=float(user.multiplier),
        total_earned=float(user.total_earned),
        current_balance=float(user.current_balance),
        weekly_earnings=float(user.weekly_earnings),
        monthly_earnings=float(user.monthly_earnings),
        referral_earnings=float(user.referral_earnings),
        is_node_active=user.is_node_active,
        node_start_time=user.node_start_time,
        tasks_completed=user.tasks_completed,
        last_login_time=user.last_login_time,
        daily_checkin_claimed=user.daily_checkin_claimed,
        referral_code=user.referral_code,
        referred_by=user.referred_by,
        total_referrals=user.total_referrals,
        has_badge_of_honor=user.has_badge_of_honor,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.post("/users", response_model=CreateUserResponse, status_code=201)
async def create(
    body: CreateUserRequest,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Register a Discord user."""
    try:
        user, balance, referral_error = await create_user(
            db,
            body.id,
            body.username,
            discriminator=body.discriminator,
            avatar=body.avatar,
            join_date=body.join_date,
            referral_code=body.referral_code,
            redis=redis,
        )
    except ConflictError as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return CreateUserResponse(
        user=_user_response(user),
        starting_balance=float(balance),
        referral_applied=user.referred_by is not None,
        referral_error=referral_error,
    )


@router.get("/users/username/{username}", response_model=UserResponse)
async def get_by_username(username: str, db: AsyncSession = Depends(get_session)):
    try:
        return _user_response(await get_user_by_username(db, username))
    except NotFoundError as e:
        raise http_error(e) from e


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_by_id(user_id: str, db: AsyncSession = Depends(get_session)):
    try:
        return _user_response(await get_user(db, user_id))
    except NotFoundError as e:
        raise http_error(e) from e


@router.put("/users/{user_id}", response_model=UserResponse)
async def update(user_id: str, body: ProfileUpdateRequest, db: AsyncSession = Depends(get_session)):
    """Update profile fields (username, discriminator, avatar)."""
    try:
        user = await update_profile(
            db, user_id, username=body.username, discriminator=body.discriminator, avatar=body.avatar
        )
    except (NotFoundError, ConflictError) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    logger.info("profile_updated", user_id=user_id)
    return _user_response(user)


@router.post("/users/{user_id}/login", response_model=UserResponse)
async def login(user_id: str, db: AsyncSession = Depends(get_session)):
    """Record a login; opens the daily check-in on a new UTC day."""
    try:
        user = await record_login(db, user_id)
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return _user_response(user)


@router.post("/users/{user_id}/activate-node", response_model=UserResponse)
async def activate_node(user_id: str, db: AsyncSession = Depends(get_session)):
    try:
        user = await set_node_active(db, user_id, True)
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return _user_response(user)


@router.post("/users/{user_id}/deactivate-node", response_model=UserResponse)
async def deactivate_node(user_id: str, db: AsyncSession = Depends(get_session)):
    try:
        user = await set_node_active(db, user_id, False)
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return _user_response(user)


# ---------------------------------------------------------------------------
# Leaderboard / stats
# ---------------------------------------------------------------------------


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int = Query(100, ge=1, le=500),
    period: str = Query("all-time", pattern="^(all-time|weekly|monthly)$"),
    db: AsyncSession = Depends(get_session),
):
    """Top earners, ranked."""
    try:
        entries = await get_leaderboard(db, period, limit)
    except ValidationFailed as e:
        raise http_error(e) from e
    return LeaderboardResponse(period=period, leaderboard=[LeaderboardEntry(**entry) for entry in entries])


@router.get("/stats", response_model=PlatformStats)
async def stats(db: AsyncSession = Depends(get_session)):
    """Platform-wide totals."""
    return PlatformStats(**await get_platform_stats(db))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/settings", response_model=SettingsResponse)
async def get_settings_endpoint(user_id: str, db: AsyncSession = Depends(get_session)):
    """Get user settings (defaults filled in)."""
    try:
        settings = await get_user_settings(db, user_id)
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return SettingsResponse(**with_defaults(settings))


@router.put("/users/{user_id}/settings", response_model=SettingsResponse)
async def update_settings_endpoint(
    user_id: str,
    body: SettingsUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    """Deep-merge settings groups."""

    def _group(model):  # type: ignore[no-untyped-def]
        return model.model_dump(by_alias=True, exclude_none=True) if model is not None else None

    try:
        settings = await update_user_settings(
            db,
            user_id,
            notifications=_group(body.notifications),
            privacy=_group(body.privacy),
            mining=_group(body.mining),
            display=_group(body.display),
        )
    except NotFoundError as e:
        raise http_error(e) from e
    await db.commit()
    return SettingsResponse(**with_defaults(settings))
