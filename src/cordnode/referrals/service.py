"""Referral signup bonuses and ongoing commission."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.config import get_settings
from cordnode.db.models import ReferralData, User
from cordnode.errors import NotFoundError, ValidationFailed
from cordnode.ledger.service import credit
from cordnode.notifications.service import create_notification
from cordnode.referrals.codes import find_user_by_referral_code, normalize_referral_code
from cordnode.referrals.schemas import (
    ReferralHistoryItem,
    ReferralResult,
    ReferralRewardResult,
    ReferralStatsResponse,
    ReferredUserSummary,
)
from cordnode.rewards.multiplier import welcome_bonus

logger = structlog.get_logger()


async def process_new_user_referral(
    db: AsyncSession,
    new_user_id: str,
    referral_code: str,
    redis: Any | None = None,
) -> ReferralResult:
    """Link a user to the owner of ``referral_code`` and pay both signup bonuses.

    Raises:
        NotFoundError: If the user does not exist.
        ValidationFailed: Already referred, unknown code, or own code.
    """
    settings = get_settings()

    result = await db.execute(select(User).where(User.id == new_user_id))
    new_user = result.scalar_one_or_none()
    if new_user is None:
        msg = "New user not found"
        raise NotFoundError(msg)

    if new_user.referred_by:
        msg = "You have already used a referral code"
        raise ValidationFailed(msg)

    referrer = await find_user_by_referral_code(db, referral_code)
    if referrer is None:
        msg = "Invalid referral code"
        raise ValidationFailed(msg)
    if referrer.id == new_user.id:
        msg = "You cannot use your own referral code"
        raise ValidationFailed(msg)

    # Written once: a concurrent second claim matches no row
    linked = await db.execute(
        update(User)
        .where(User.id == new_user.id, User.referred_by.is_(None))
        .values(referred_by=referrer.id)
        .execution_options(synchronize_session=False)
    )
    if linked.rowcount == 0:
        msg = "You have already used a referral code"
        raise ValidationFailed(msg)

    referred_bonus = welcome_bonus(new_user.account_age, new_user.multiplier)
    referrer_bonus = (referred_bonus * settings.referral_signup_bonus_rate).to_integral_value(rounding=ROUND_FLOOR)

    await credit(db, new_user.id, referred_bonus, period_earnings=False)
    await credit(db, referrer.id, referrer_bonus, period_earnings=False, referral=True)
    await db.execute(
        update(User)
        .where(User.id == referrer.id)
        .values(total_referrals=User.total_referrals + 1)
        .execution_options(synchronize_session=False)
    )

    db.add(
        ReferralData(
            code=normalize_referral_code(referral_code),
            referrer_id=referrer.id,
            referred_user_id=new_user.id,
            total_earnings=referrer_bonus,
            total_referrals=1,
        )
    )
    await db.flush()

    await create_notification(
        db,
        referrer.id,
        "referrals",
        "referral_joined",
        "New referral joined",
        description=f"{new_user.username} used your referral code. You earned {referrer_bonus} CORD.",
        kind="success",
        redis=redis,
    )

    logger.info(
        "referral_processed",
        referrer_id=referrer.id,
        referred_user_id=new_user.id,
        referrer_bonus=str(referrer_bonus),
        referred_bonus=str(referred_bonus),
    )
    return ReferralResult(success=True, referrer_bonus=float(referrer_bonus), referred_bonus=float(referred_bonus))


async def distribute_referral_reward(
    db: AsyncSession,
    user_id: str,
    earning_amount: Decimal,
) -> ReferralRewardResult:
    """Pay the user's referrer a commission on ``earning_amount``.

    Users without a (still existing) referrer are a successful no-op.
    """
    result = await db.execute(select(User.referred_by).where(User.id == user_id))
    referrer_id = result.scalar_one_or_none()
    if not referrer_id:
        return ReferralRewardResult(success=True)

    exists = await db.execute(select(User.id).where(User.id == referrer_id))
    if exists.scalar_one_or_none() is None:
        return ReferralRewardResult(success=True)

    bonus = Decimal(earning_amount) * get_settings().referral_commission_rate
    if bonus <= 0:
        return ReferralRewardResult(success=True, referrer_bonus=0.0)

    await credit(db, referrer_id, bonus, period_earnings=False, referral=True)
    await db.execute(
        update(ReferralData)
        .where(ReferralData.referrer_id == referrer_id, ReferralData.referred_user_id == user_id)
        .values(total_earnings=ReferralData.total_earnings + bonus)
        .execution_options(synchronize_session=False)
    )
    return ReferralRewardResult(success=True, referrer_bonus=float(bonus))


async def get_referral_stats(db: AsyncSession, user_id: str) -> ReferralStatsResponse:
    """Totals plus per-referral history, newest first."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)

    rows = await db.execute(
        select(ReferralData, User)
        .join(User, User.id == ReferralData.referred_user_id)
        .where(ReferralData.referrer_id == user_id)
        .order_by(ReferralData.created_at.desc())
    )
    history = [
        ReferralHistoryItem(
            id=ref.id,
            referred_username=referred.username,
            total_earnings=float(ref.total_earnings),
            created_at=ref.created_at,
            referred_user=ReferredUserSummary(
                username=referred.username,
                account_age=float(referred.account_age),
                total_earned=float(referred.total_earned),
            ),
        )
        for ref, referred in rows.all()
    ]
    return ReferralStatsResponse(
        referral_code=user.referral_code,
        total_referrals=user.total_referrals,
        total_earnings=float(user.referral_earnings),
        referral_history=history,
    )
