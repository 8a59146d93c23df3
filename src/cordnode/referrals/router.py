"""Referral endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.database import get_session
from cordnode.dependencies import get_redis_dep, http_error
from cordnode.errors import NotFoundError, ValidationFailed
from cordnode.referrals.schemas import ApplyReferralRequest, ReferralResult, ReferralStatsResponse
from cordnode.referrals.service import get_referral_stats, process_new_user_referral

router = APIRouter(prefix="/api/users/{user_id}", tags=["Referrals"])


@router.post("/referral", response_model=ReferralResult)
async def apply_referral(
    user_id: str,
    body: ApplyReferralRequest,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Apply a referral code to an existing user."""
    try:
        result = await process_new_user_referral(db, user_id, body.referral_code, redis=redis)
    except (NotFoundError, ValidationFailed) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return result


@router.get("/referrals", response_model=ReferralStatsResponse)
async def referral_stats(user_id: str, db: AsyncSession = Depends(get_session)):
    """Referral totals and history for a user."""
    try:
        return await get_referral_stats(db, user_id)
    except NotFoundError as e:
        raise http_error(e) from e
