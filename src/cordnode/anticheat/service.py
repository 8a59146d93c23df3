"""Multi-account detection by shared IP address.

Each (user, ip) pair is recorded with first/last seen timestamps. The number
of *other* accounts seen on the same IP selects a penalty level, and the
level selects the mining efficiency multiplier.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.anticheat.schemas import AntiCheatStatus
from cordnode.config import get_settings
from cordnode.db.models import UserIpAddress
from cordnode.notifications.service import create_notification
from cordnode.redis_client import anticheat_status_key

logger = logging.getLogger(__name__)

# (minimum other accounts on the IP, penalty level, efficiency); checked top-down
PENALTY_TIERS: list[tuple[int, int, Decimal]] = [
    (5, 4, Decimal("0.10")),
    (3, 3, Decimal("0.30")),
    (2, 2, Decimal("0.50")),
    (1, 1, Decimal("0.75")),
    (0, 0, Decimal("1.00")),
]

PENALTY_DESCRIPTIONS = {
    0: None,
    1: "Light penalty (25% reduction) - Shared household detected",
    2: "Moderate penalty (50% reduction) - Multiple accounts detected",
    3: "High penalty (70% reduction) - Significant multi-accounting",
    4: "Severe penalty (90% reduction) - Extreme multi-accounting",
}


def penalty_for(other_accounts: int) -> tuple[int, Decimal]:
    """Return (penalty level, efficiency multiplier) for a count of other accounts."""
    floor = get_settings().anticheat_efficiency_floor
    for minimum, level, efficiency in PENALTY_TIERS:
        if other_accounts >= minimum:
            return level, min(Decimal("1.0"), max(floor, efficiency))
    return 0, Decimal("1.0")


def risk_score(other_accounts: int, user_ip_count: int) -> int:
    """0-100 heuristic: other accounts weigh heavily, hopping between IPs lightly."""
    return min(100, max(0, other_accounts) * 20 + max(0, user_ip_count - 1) * 5)


def apply_efficiency(rate: Decimal | float, status: AntiCheatStatus | None) -> Decimal:
    """Scale a nominal mining rate by the anti-cheat efficiency."""
    rate = Decimal(str(rate))
    if status is None:
        return rate
    return rate * Decimal(str(status.efficiency_multiplier))


def build_status(total_users_on_ip: int, user_ip_count: int) -> AntiCheatStatus:
    other = max(0, total_users_on_ip - 1)
    level, efficiency = penalty_for(other)
    return AntiCheatStatus(
        efficiency_multiplier=float(efficiency),
        penalty_level=level,
        is_flagged=level > 0,
        risk_score=risk_score(other, user_ip_count),
        total_users_on_ip=max(1, total_users_on_ip),
        other_users_on_ip=other,
        user_ip_count=max(1, user_ip_count),
        warning_message=PENALTY_DESCRIPTIONS.get(level),
    )


async def _read_cached(redis: Any | None, key: str) -> AntiCheatStatus | None:
    if redis is None:
        return None
    try:
        raw = await redis.get(key)
    except Exception:
        logger.warning("Failed to read anti-cheat cache %s", key, exc_info=True)
        return None
    if not raw:
        return None
    return AntiCheatStatus.model_validate_json(raw)


async def _write_cached(redis: Any | None, key: str, status: AntiCheatStatus) -> None:
    if redis is None:
        return
    try:
        await redis.set(key, status.model_dump_json(), ex=get_settings().anticheat_min_recheck_seconds)
    except Exception:
        logger.warning("Failed to cache anti-cheat status %s", key, exc_info=True)


async def compute_status(db: AsyncSession, user_id: str, ip_address: str) -> AntiCheatStatus:
    """Derive the status from recorded pairs without recording anything."""
    total_result = await db.execute(
        select(func.count(func.distinct(UserIpAddress.user_id))).where(UserIpAddress.ip_address == ip_address)
    )
    total_users = total_result.scalar_one()

    ip_count_result = await db.execute(
        select(func.count()).select_from(UserIpAddress).where(UserIpAddress.user_id == user_id)
    )
    user_ip_count = ip_count_result.scalar_one()
    return build_status(total_users, user_ip_count)


async def track_user_ip(
    db: AsyncSession,
    user_id: str,
    ip_address: str,
    user_agent: str | None = None,
    redis: Any | None = None,
    now: datetime | None = None,
) -> AntiCheatStatus:
    """Record that ``user_id`` was seen on ``ip_address`` and return its status.

    A status cached within the recheck window is returned as-is.
    """
    key = anticheat_status_key(user_id, ip_address)
    cached = await _read_cached(redis, key)
    if cached is not None:
        return cached

    if now is None:
        now = datetime.now(timezone.utc)

    result = await db.execute(
        select(UserIpAddress).where(
            UserIpAddress.user_id == user_id,
            UserIpAddress.ip_address == ip_address,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        db.add(
            UserIpAddress(
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                first_seen=now,
                last_seen=now,
            )
        )
    else:
        row.last_seen = now
        if user_agent:
            row.user_agent = user_agent
    await db.flush()

    status = await compute_status(db, user_id, ip_address)

    if status.penalty_level > 0:
        logger.info(
            "Anti-cheat penalty level %d for user %s (%d other accounts on IP)",
            status.penalty_level,
            user_id,
            status.other_users_on_ip,
        )
        await create_notification(
            db,
            user_id,
            "system",
            "anticheat_penalty",
            "Mining efficiency reduced",
            description=status.warning_message,
            kind="warning",
            redis=redis,
        )

    await _write_cached(redis, key, status)
    return status


async def get_latest_status(db: AsyncSession, user_id: str) -> AntiCheatStatus:
    """Status for the IP the user was most recently seen on (clean if never tracked)."""
    result = await db.execute(
        select(UserIpAddress.ip_address)
        .where(UserIpAddress.user_id == user_id)
        .order_by(UserIpAddress.last_seen.desc(), UserIpAddress.id.desc())
        .limit(1)
    )
    ip_address = result.scalar_one_or_none()
    if ip_address is None:
        return AntiCheatStatus()
    return await compute_status(db, user_id, ip_address)
