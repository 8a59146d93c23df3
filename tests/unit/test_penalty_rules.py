"""Unit tests for anti-cheat penalty math."""

from decimal import Decimal

import pytest

from cordnode.anticheat.schemas import AntiCheatStatus
from cordnode.anticheat.service import apply_efficiency, build_status, penalty_for, risk_score
from cordnode.config import get_settings


class TestPenaltyFor:
    @pytest.mark.parametrize(
        ("others", "level", "efficiency"),
        [
            (0, 0, "1.00"),
            (1, 1, "0.75"),
            (2, 2, "0.50"),
            (3, 3, "0.30"),
            (4, 3, "0.30"),
            (5, 4, "0.10"),
            (40, 4, "0.10"),
        ],
    )
    def test_tiers(self, others, level, efficiency):
        assert penalty_for(others) == (level, Decimal(efficiency))

    def test_efficiency_never_below_floor(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "anticheat_efficiency_floor", Decimal("0.25"))
        assert penalty_for(9) == (4, Decimal("0.25"))

    def test_efficiency_never_above_one(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "anticheat_efficiency_floor", Decimal("1.5"))
        _, efficiency = penalty_for(0)
        assert efficiency == Decimal("1.0")


class TestRiskScore:
    def test_clean(self):
        assert risk_score(0, 1) == 0

    def test_weights(self):
        assert risk_score(2, 3) == 50

    def test_capped(self):
        assert risk_score(10, 10) == 100


class TestBuildStatus:
    def test_single_user_on_ip(self):
        status = build_status(total_users_on_ip=1, user_ip_count=1)
        assert status.penalty_level == 0
        assert status.is_flagged is False
        assert status.warning_message is None

    def test_shared_household(self):
        status = build_status(total_users_on_ip=2, user_ip_count=1)
        assert status.other_users_on_ip == 1
        assert status.efficiency_multiplier == 0.75
        assert status.is_flagged is True
        assert "Shared household" in status.warning_message


class TestApplyEfficiency:
    def test_without_status(self):
        assert apply_efficiency(Decimal("1.75"), None) == Decimal("1.75")

    def test_scales_rate(self):
        status = AntiCheatStatus(efficiency_multiplier=0.5, penalty_level=2)
        assert apply_efficiency(Decimal("2"), status) == Decimal("1.0")
