"""Referral request/response schemas."""

from datetime import datetime

from pydantic import Field

from cordnode.schemas import CamelModel


class ApplyReferralRequest(CamelModel):
    referral_code: str = Field(min_length=1, max_length=16)


class ReferralResult(CamelModel):
    success: bool
    referrer_bonus: float = 0.0
    referred_bonus: float = 0.0


class ReferralRewardResult(CamelModel):
    success: bool
    referrer_bonus: float | None = None
    error: str | None = None


class ReferredUserSummary(CamelModel):
    username: str
    account_age: float
    total_earned: float


class ReferralHistoryItem(CamelModel):
    id: str
    referred_username: str
    total_earnings: float
    created_at: datetime
    referred_user: ReferredUserSummary


class ReferralStatsResponse(CamelModel):
    referral_code: str
    total_referrals: int
    total_earnings: float
    referral_history: list[ReferralHistoryItem]
