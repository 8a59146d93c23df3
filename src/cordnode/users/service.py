"""User management business logic."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update

from cordnode.config import get_settings
from cordnode.db.models import User, UserSettings
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.ledger.service import credit, refresh_user
from cordnode.notifications.service import DEFAULT_PREFERENCES, create_notification
from cordnode.referrals.codes import generate_unique_referral_code
from cordnode.referrals.service import process_new_user_referral
from cordnode.rewards.multiplier import account_age_years, compute_multiplier, discord_created_at, starting_balance
from cordnode.tasks.progress import day_start, to_epoch_ms

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_SETTINGS: dict[str, dict[str, Any]] = {
    "notifications": dict(DEFAULT_PREFERENCES),
    "privacy": {
        "showProfile": True,
        "showEarnings": False,
        "showActivity": True,
    },
    "mining": {
        "autoStart": False,
        "intensity": "medium",
        "offlineEarnings": "8h",
    },
    "display": {
        "theme": "dark",
        "language": "en",
        "currency": "CORD",
    },
}

SETTINGS_GROUPS = tuple(DEFAULT_SETTINGS)

LEADERBOARD_COLUMNS = {
    "all-time": "total_earned",
    "weekly": "weekly_earnings",
    "monthly": "monthly_earnings",
}

ANONYMOUS_NAME = "Anonymous Miner"


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: str) -> User:
    """Raises NotFoundError if the user does not exist."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


async def get_user_by_username(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


# ---------------------------------------------------------------------------
# Creation / login
# ---------------------------------------------------------------------------


async def create_user(
    db: AsyncSession,
    user_id: str,
    username: str,
    discriminator: str = "0000",
    avatar: str | None = None,
    join_date: datetime | None = None,
    referral_code: str | None = None,
    redis: Any | None = None,
    now: datetime | None = None,
) -> tuple[User, Decimal, str | None]:
    """Create a user from a Discord profile.

    Account age comes from ``join_date`` when given, otherwise from the
    snowflake. Returns (user, starting balance, referral error or None).

    Raises:
        ConflictError: The id or username is already registered.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    settings = get_settings()

    existing = await db.execute(select(User.id).where(User.id == user_id))
    if existing.scalar_one_or_none() is not None:
        msg = "User already exists"
        raise ConflictError(msg)
    taken = await db.execute(select(User.id).where(User.username == username))
    if taken.scalar_one_or_none() is not None:
        msg = "Username already taken"
        raise ConflictError(msg)

    created_at = join_date or discord_created_at(user_id)
    age = account_age_years(created_at, now)
    multiplier = compute_multiplier(age)
    balance = starting_balance(age, multiplier) if settings.starting_balance_enabled else Decimal("0")

    user = User(
        id=user_id,
        username=username,
        discriminator=discriminator,
        avatar=avatar,
        join_date=created_at,
        account_age=age,
        multiplier=multiplier,
        current_balance=Decimal("0"),
        total_earned=Decimal("0"),
        weekly_earnings=Decimal("0"),
        monthly_earnings=Decimal("0"),
        referral_earnings=Decimal("0"),
        last_login_time=0,
        referral_code=await generate_unique_referral_code(db),
    )
    db.add(user)
    db.add(UserSettings(user_id=user_id, **{k: dict(v) for k, v in DEFAULT_SETTINGS.items()}, updated_at=now))
    await db.flush()

    if balance > 0:
        await credit(db, user_id, balance, period_earnings=False)

    await create_notification(
        db,
        user_id,
        "system",
        "welcome",
        "Welcome to CordNode",
        f"Your account age earns you a {multiplier}x multiplier.",
        kind="success",
        redis=redis,
    )

    referral_error = None
    if referral_code:
        try:
            await process_new_user_referral(db, user_id, referral_code, redis=redis)
        except ValidationFailed as e:
            referral_error = str(e)
            logger.info("referral_rejected_on_signup", user_id=user_id, reason=referral_error)

    user = await refresh_user(db, user_id)
    logger.info("user_created", user_id=user_id, account_age=str(age), multiplier=str(multiplier))
    return user, balance, referral_error


async def record_login(db: AsyncSession, user_id: str, now: datetime | None = None) -> User:
    """Reset the check-in flag on the first login of a new UTC day.

    Account age and multiplier are refreshed too. ``last_login_time`` is
    left to the check-in claim so that eligibility still reflects the last
    claimed day.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    await recompute_account_age(db, user_id, now)
    await db.execute(
        update(User)
        .where(User.id == user_id, User.last_login_time < to_epoch_ms(day_start(now)))
        .values(daily_checkin_claimed=False)
        .execution_options(synchronize_session=False)
    )
    return await refresh_user(db, user_id)


async def recompute_account_age(db: AsyncSession, user_id: str, now: datetime | None = None) -> User:
    """Refresh the stored age and the multiplier derived from it."""
    user = await get_user(db, user_id)
    age = account_age_years(user.join_date, now)
    user.account_age = age
    user.multiplier = compute_multiplier(age)
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Profile / node flags
# ---------------------------------------------------------------------------


async def update_profile(
    db: AsyncSession,
    user_id: str,
    username: str | None = None,
    discriminator: str | None = None,
    avatar: str | None = None,
) -> User:
    """
    Update user profile fields.

    Raises:
        ConflictError: If the username is already taken.
    """
    user = await get_user(db, user_id)
    if username is not None and username != user.username:
        result = await db.execute(select(User.id).where(User.username == username, User.id != user_id))
        if result.scalar_one_or_none() is not None:
            msg = "Username already taken"
            raise ConflictError(msg)
        user.username = username
    if discriminator is not None:
        user.discriminator = discriminator
    if avatar is not None:
        user.avatar = avatar
    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return user


async def set_node_active(db: AsyncSession, user_id: str, active: bool, now: datetime | None = None) -> User:
    """Toggle the node flags directly, without a mining session."""
    if now is None:
        now = datetime.now(timezone.utc)
    await get_user(db, user_id)
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(is_node_active=active, node_start_time=to_epoch_ms(now) if active else None)
        .execution_options(synchronize_session=False)
    )
    return await refresh_user(db, user_id)


# ---------------------------------------------------------------------------
# Leaderboard / stats
# ---------------------------------------------------------------------------


async def get_leaderboard(db: AsyncSession, period: str = "all-time", limit: int = 100) -> list[dict[str, Any]]:
    """Top earners for the period. Users hiding their profile appear anonymised."""
    column_name = LEADERBOARD_COLUMNS.get(period)
    if column_name is None:
        msg = f"Invalid period: {period}"
        raise ValidationFailed(msg)
    column = getattr(User, column_name)

    result = await db.execute(
        select(User, UserSettings.privacy)
        .outerjoin(UserSettings, UserSettings.user_id == User.id)
        .order_by(column.desc(), User.created_at.asc(), User.id.asc())
        .limit(limit)
    )

    entries = []
    for rank, (user, privacy) in enumerate(result.all(), start=1):
        show_profile = (privacy or {}).get("showProfile", True)
        entries.append(
            {
                "rank": rank,
                "user_id": user.id,
                "username": user.username if show_profile else ANONYMOUS_NAME,
                "avatar": user.avatar if show_profile else None,
                "earnings": float(getattr(user, column_name)),
                "total_earned": float(user.total_earned),
                "weekly_earnings": float(user.weekly_earnings),
                "account_age": float(user.account_age),
                "is_active": user.is_node_active,
                "has_badge_of_honor": user.has_badge_of_honor,
            }
        )
    return entries


async def get_platform_stats(db: AsyncSession) -> dict[str, Any]:
    result = await db.execute(
        select(
            func.count(User.id),
            func.count(User.id).filter(User.is_node_active.is_(True)),
            func.coalesce(func.sum(User.total_earned), 0),
            func.coalesce(func.max(User.total_earned), 0),
        )
    )
    total, active, earned, top = result.one()
    return {
        "total_miners": total,
        "active_miners": active,
        "total_earned": float(earned),
        "top_earner_amount": float(top),
    }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def with_defaults(settings: UserSettings) -> dict[str, dict[str, Any]]:
    """Stored groups layered over the defaults."""
    merged = {}
    for group in SETTINGS_GROUPS:
        values = dict(DEFAULT_SETTINGS[group])
        values.update(getattr(settings, group) or {})
        merged[group] = values
    return merged


async def get_user_settings(db: AsyncSession, user_id: str) -> UserSettings:
    """Get user settings, creating defaults if they don't exist."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()

    if settings is None:
        await get_user(db, user_id)
        settings = UserSettings(
            user_id=user_id,
            **{group: dict(values) for group, values in DEFAULT_SETTINGS.items()},
            updated_at=datetime.now(timezone.utc),
        )
        db.add(settings)
        await db.flush()

    return settings


async def update_user_settings(
    db: AsyncSession,
    user_id: str,
    notifications: dict[str, Any] | None = None,
    privacy: dict[str, Any] | None = None,
    mining: dict[str, Any] | None = None,
    display: dict[str, Any] | None = None,
) -> UserSettings:
    """
    Deep-merge update user settings.

    Only the provided keys are updated; others remain unchanged.
    """
    settings = await get_user_settings(db, user_id)

    for group, values in (
        ("notifications", notifications),
        ("privacy", privacy),
        ("mining", mining),
        ("display", display),
    ):
        if values is None:
            continue
        # Reassign a new dict so the JSON column is flagged dirty
        merged = dict(getattr(settings, group) or {})
        merged.update(values)
        setattr(settings, group, merged)

    settings.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return settings
