"""Account-age multiplier tiers and the bonuses derived from them.

Tier boundaries match the web client's multiplier badge.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal

from cordnode.config import get_settings

DISCORD_EPOCH_MS = 1420070400000
DAYS_PER_YEAR = Decimal("365.25")

# (exclusive upper bound in years, multiplier); last tier is open-ended
MULTIPLIER_TIERS: list[tuple[Decimal | None, Decimal]] = [
    (Decimal("1"), Decimal("1.0")),
    (Decimal("2"), Decimal("1.2")),
    (Decimal("3"), Decimal("1.5")),
    (Decimal("4"), Decimal("2.0")),
    (Decimal("5"), Decimal("2.5")),
    (Decimal("6"), Decimal("3.5")),
    (Decimal("7"), Decimal("5.0")),
    (Decimal("8"), Decimal("7.0")),
    (None, Decimal("10.0")),
]

STARTING_BASE = Decimal("50")
STARTING_PER_YEAR = Decimal("25")
STARTING_PER_MULTIPLIER = Decimal("100")
STARTING_FACTOR = Decimal("2")


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def compute_multiplier(account_age_years: Decimal | float) -> Decimal:
    """Return the earning multiplier for an account age in years."""
    age = max(Decimal(str(account_age_years)), Decimal("0"))
    for upper, multiplier in MULTIPLIER_TIERS:
        if upper is None or age < upper:
            return multiplier
    return MULTIPLIER_TIERS[-1][1]


def discord_created_at(snowflake: str | int) -> datetime:
    """Decode the creation time embedded in a Discord snowflake id."""
    ms = (int(snowflake) >> 22) + DISCORD_EPOCH_MS
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def account_age_years(created_at: datetime, now: datetime | None = None) -> Decimal:
    """Years since ``created_at``, floored to one decimal place and never negative."""
    if now is None:
        now = datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    seconds = Decimal(str((now - created_at).total_seconds()))
    if seconds <= 0:
        return Decimal("0.0")
    years = seconds / Decimal(86400) / DAYS_PER_YEAR
    return (years * 10).to_integral_value(rounding=ROUND_FLOOR) / Decimal(10)


def welcome_bonus(account_age_years: Decimal, multiplier: Decimal) -> Decimal:
    """One-time bonus paid to a referred user."""
    settings = get_settings()
    return _floor(
        Decimal(account_age_years) * settings.welcome_bonus_per_year * Decimal(multiplier) * settings.welcome_bonus_factor
    )


def starting_balance(account_age_years: Decimal, multiplier: Decimal) -> Decimal:
    """Balance credited when an account is first created."""
    age = Decimal(account_age_years)
    return _floor(
        (STARTING_BASE + age * STARTING_PER_YEAR + (Decimal(multiplier) - 1) * STARTING_PER_MULTIPLIER)
        * STARTING_FACTOR
    )
