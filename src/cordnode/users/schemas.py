"""Request/response schemas for user, leaderboard and settings endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from cordnode.schemas import CamelModel

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class CreateUserRequest(CamelModel):
    """Discord profile as returned by the OAuth exchange."""

    id: str = Field(pattern=r"^\d{1,20}$")
    username: str = Field(min_length=1, max_length=255)
    discriminator: str = Field(default="0000", max_length=10)
    avatar: str | None = Field(default=None, max_length=255)
    join_date: datetime | None = None
    referral_code: str | None = Field(default=None, max_length=16)


class ProfileUpdateRequest(CamelModel):
    """Profile fields only; ledger and multiplier are server-owned."""

    username: str | None = Field(default=None, min_length=1, max_length=255)
    discriminator: str | None = Field(default=None, max_length=10)
    avatar: str | None = Field(default=None, max_length=255)


class UserResponse(CamelModel):
    id: str
    username: str
    discriminator: str
    avatar: str | None = None
    join_date: datetime
    account_age: float
    multiplier: float
    total_earned: float
    current_balance: float
    weekly_earnings: float
    monthly_earnings: float
    referral_earnings: float
    is_node_active: bool
    node_start_time: int | None = None
    tasks_completed: int
    last_login_time: int
    daily_checkin_claimed: bool
    referral_code: str
    referred_by: str | None = None
    total_referrals: int
    has_badge_of_honor: bool


class CreateUserResponse(CamelModel):
    user: UserResponse
    starting_balance: float
    referral_applied: bool = False
    referral_error: str | None = None


# ---------------------------------------------------------------------------
# Leaderboard / stats
# ---------------------------------------------------------------------------


class LeaderboardEntry(CamelModel):
    rank: int
    user_id: str
    username: str
    avatar: str | None = None
    earnings: float
    total_earned: float
    weekly_earnings: float
    account_age: float
    is_active: bool
    has_badge_of_honor: bool


class LeaderboardResponse(CamelModel):
    period: str
    leaderboard: list[LeaderboardEntry]


class PlatformStats(CamelModel):
    total_miners: int
    active_miners: int
    total_earned: float
    top_earner_amount: float


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class NotificationSettings(CamelModel):
    mining: bool | None = None
    tasks: bool | None = None
    referrals: bool | None = None
    system: bool | None = None


class PrivacySettings(CamelModel):
    show_profile: bool | None = None
    show_earnings: bool | None = None
    show_activity: bool | None = None


class MiningSettings(CamelModel):
    auto_start: bool | None = None
    intensity: Literal["low", "medium", "high"] | None = None
    offline_earnings: Literal["off", "4h", "8h", "12h"] | None = None


class DisplaySettings(CamelModel):
    theme: Literal["dark", "light"] | None = None
    language: Literal["en", "es", "fr", "de"] | None = None
    currency: Literal["CORD", "USD"] | None = None


class SettingsUpdateRequest(CamelModel):
    """Partial update; each group is deep-merged into the stored one."""

    notifications: NotificationSettings | None = None
    privacy: PrivacySettings | None = None
    mining: MiningSettings | None = None
    display: DisplaySettings | None = None


class SettingsResponse(CamelModel):
    notifications: dict[str, bool | str]
    privacy: dict[str, bool | str]
    mining: dict[str, bool | str]
    display: dict[str, bool | str]
