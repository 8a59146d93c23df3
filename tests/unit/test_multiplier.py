"""Unit tests for the account-age multiplier and derived bonuses."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cordnode.rewards.multiplier import (
    DISCORD_EPOCH_MS,
    account_age_years,
    compute_multiplier,
    discord_created_at,
    starting_balance,
    welcome_bonus,
)


class TestComputeMultiplier:
    @pytest.mark.parametrize(
        ("age", "expected"),
        [
            (0, "1.0"),
            (0.9, "1.0"),
            (1.0, "1.2"),
            (2.0, "1.5"),
            (3.5, "2.0"),
            (4.9, "2.5"),
            (5.0, "3.5"),
            (5.9, "3.5"),
            (6.0, "5.0"),
            (7.2, "7.0"),
            (8.0, "10.0"),
            (15, "10.0"),
        ],
    )
    def test_tier_boundaries(self, age, expected):
        assert compute_multiplier(age) == Decimal(expected)

    def test_negative_age_clamps_to_first_tier(self):
        assert compute_multiplier(-3) == Decimal("1.0")

    def test_monotonically_non_decreasing(self):
        ages = [Decimal(i) / 10 for i in range(0, 120)]
        values = [compute_multiplier(a) for a in ages]
        assert values == sorted(values)
        assert all(v >= Decimal("1.0") for v in values)


class TestAccountAge:
    def test_floors_to_one_decimal(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        created = now - timedelta(days=365.25 * 2.58)
        assert account_age_years(created, now) == Decimal("2.5")

    def test_future_creation_is_zero(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert account_age_years(now + timedelta(days=10), now) == Decimal("0")

    def test_naive_datetime_treated_as_utc(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        created = datetime(2024, 1, 1)
        assert account_age_years(created, now) == Decimal("2.0")


class TestDiscordSnowflake:
    def test_epoch(self):
        assert discord_created_at(0) == datetime.fromtimestamp(DISCORD_EPOCH_MS / 1000, tz=timezone.utc)

    def test_known_id(self):
        # 175928847299117063 is the example id from Discord's documentation
        created = discord_created_at("175928847299117063")
        assert created == datetime(2016, 4, 30, 11, 18, 25, 796000, tzinfo=timezone.utc)


class TestBonuses:
    def test_starting_balance_new_account(self):
        assert starting_balance(Decimal("0"), Decimal("1.0")) == Decimal("100")

    def test_starting_balance_scales_with_age_and_multiplier(self):
        # (50 + 2.5*25 + 0.5*100) * 2
        assert starting_balance(Decimal("2.5"), Decimal("1.5")) == Decimal("325")

    def test_welcome_bonus_is_floored(self):
        # 2.5 * 25 * 1.5 * 2 = 187.5
        assert welcome_bonus(Decimal("2.5"), Decimal("1.5")) == Decimal("187")

    def test_welcome_bonus_zero_for_new_account(self):
        assert welcome_bonus(Decimal("0"), Decimal("1.0")) == Decimal("0")
