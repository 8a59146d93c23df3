"""Integration tests: task completion rules."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import NOW, make_user
from cordnode.db.models import Task, UserTask
from cordnode.errors import NotFoundError
from cordnode.ledger.service import refresh_user
from cordnode.mining.service import start_session
from cordnode.tasks.service import (
    ALREADY_COMPLETED,
    CHECKIN_ALREADY_CLAIMED,
    REQUIREMENTS_NOT_MET,
    TASK_EXPIRED,
    complete_task,
    get_tasks_with_progress,
)

TOMORROW = NOW + timedelta(days=1)


async def _progress_row(db: AsyncSession, user_id: str, task_id: str) -> UserTask | None:
    result = await db.execute(
        select(UserTask)
        .where(UserTask.user_id == user_id, UserTask.task_id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class TestOneOffTasks:
    @pytest.mark.asyncio
    async def test_social_task_credits_reward_times_multiplier(self, db: AsyncSession):
        user = await make_user(db, age_years=2.5)
        start_balance = float(user.current_balance)

        result = await complete_task(db, "1001", "follow-twitter", now=NOW)
        await db.commit()

        assert result.success is True
        assert result.reward == pytest.approx(150.0)  # 100 x 1.5
        user = await refresh_user(db, "1001")
        assert float(user.current_balance) == pytest.approx(start_balance + 150)
        assert user.tasks_completed == 1
        assert float(user.weekly_earnings) == 0

        row = await _progress_row(db, "1001", "follow-twitter")
        assert row.completed is True
        assert float(row.reward) == pytest.approx(150.0)
        assert row.claimed_at is not None

    @pytest.mark.asyncio
    async def test_second_completion_is_rejected_without_credit(self, db: AsyncSession):
        await make_user(db)
        await complete_task(db, "1001", "follow-twitter", now=NOW)
        await db.commit()
        balance = float((await refresh_user(db, "1001")).current_balance)

        again = await complete_task(db, "1001", "follow-twitter", now=NOW + timedelta(days=3))

        assert again.success is False
        assert again.error == ALREADY_COMPLETED
        user = await refresh_user(db, "1001")
        assert float(user.current_balance) == pytest.approx(balance)
        assert user.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_unknown_task(self, db: AsyncSession):
        await make_user(db)
        with pytest.raises(NotFoundError):
            await complete_task(db, "1001", "no-such-task", now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await complete_task(db, "404", "follow-twitter", now=NOW)

    @pytest.mark.asyncio
    async def test_expired_task(self, db: AsyncSession):
        await make_user(db)
        task = await db.get(Task, "follow-twitter")
        task.expires_at = NOW - timedelta(days=1)
        await db.commit()

        result = await complete_task(db, "1001", "follow-twitter", now=NOW)
        assert result.success is False
        assert result.error == TASK_EXPIRED


class TestAchievements:
    @pytest.mark.asyncio
    async def test_invite_friends_requires_three_referrals(self, db: AsyncSession):
        await make_user(db)
        result = await complete_task(db, "1001", "invite-friends", now=NOW)
        assert result.success is False
        assert result.error == REQUIREMENTS_NOT_MET

    @pytest.mark.asyncio
    async def test_invite_friends_after_three_referrals(self, db: AsyncSession):
        referrer = await make_user(db, "2000")
        for i in range(3):
            await make_user(db, f"210{i}", referral_code=referrer.referral_code)

        result = await complete_task(db, "2000", "invite-friends", now=NOW)
        assert result.success is True

    @pytest.mark.asyncio
    async def test_early_adopter_needs_five_years(self, db: AsyncSession):
        await make_user(db, "1001", age_years=4.5)
        await make_user(db, "1002", age_years=5.5)

        young = await complete_task(db, "1001", "early-adopter", now=NOW)
        old = await complete_task(db, "1002", "early-adopter", now=NOW)

        assert young.error == REQUIREMENTS_NOT_MET
        assert old.success is True
        assert old.reward == pytest.approx(3500.0)  # 1000 x 3.5

    @pytest.mark.asyncio
    async def test_weekly_mining_needs_weekly_earnings(self, db: AsyncSession):
        await make_user(db)
        result = await complete_task(db, "1001", "weekly-mining", now=NOW)
        assert result.error == REQUIREMENTS_NOT_MET

    @pytest.mark.asyncio
    async def test_social_media_master_tracks_social_completions(self, db: AsyncSession):
        await make_user(db)

        early = await complete_task(db, "1001", "social-media-master", now=NOW)
        assert early.error == REQUIREMENTS_NOT_MET

        await complete_task(db, "1001", "follow-twitter", now=NOW)
        row = await _progress_row(db, "1001", "social-media-master")
        assert row.progress == 1

        await complete_task(db, "1001", "join-discord", now=NOW)
        row = await _progress_row(db, "1001", "social-media-master")
        assert row.progress == 2

        result = await complete_task(db, "1001", "social-media-master", now=NOW)
        await db.commit()
        assert result.success is True
        assert (await refresh_user(db, "1001")).tasks_completed == 3


class TestRepeatingTasks:
    @pytest.mark.asyncio
    async def test_daily_checkin_once_per_day(self, db: AsyncSession):
        user = await make_user(db)
        start_balance = float(user.current_balance)

        first = await complete_task(db, "1001", "daily-checkin", now=NOW)
        await db.commit()
        second = await complete_task(db, "1001", "daily-checkin", now=NOW + timedelta(hours=2))
        await db.rollback()

        assert first.success is True
        assert first.reward == pytest.approx(50.0)
        assert second.success is False
        assert second.error == CHECKIN_ALREADY_CLAIMED

        user = await refresh_user(db, "1001")
        assert user.daily_checkin_claimed is True
        assert user.last_login_time == int(NOW.timestamp() * 1000)
        assert float(user.current_balance) == pytest.approx(start_balance + 50)

    @pytest.mark.asyncio
    async def test_daily_checkin_available_next_day(self, db: AsyncSession):
        user = await make_user(db)
        start_balance = float(user.current_balance)

        await complete_task(db, "1001", "daily-checkin", now=NOW)
        await db.commit()
        next_day = await complete_task(db, "1001", "daily-checkin", now=TOMORROW)
        await db.commit()

        assert next_day.success is True
        user = await refresh_user(db, "1001")
        assert float(user.current_balance) == pytest.approx(start_balance + 100)
        assert user.tasks_completed == 2

    @pytest.mark.asyncio
    async def test_mine_one_hour_repeats_daily(self, db: AsyncSession):
        await make_user(db)
        await start_session(db, "1001", now=NOW - timedelta(hours=2))
        await db.commit()

        today = await complete_task(db, "1001", "mine-1-hour", now=NOW)
        again = await complete_task(db, "1001", "mine-1-hour", now=NOW + timedelta(hours=1))
        tomorrow = await complete_task(db, "1001", "mine-1-hour", now=TOMORROW)

        assert today.success is True
        assert again.error == ALREADY_COMPLETED
        assert tomorrow.success is True

    @pytest.mark.asyncio
    async def test_mine_one_hour_needs_an_hour_of_uptime(self, db: AsyncSession):
        await make_user(db)
        await start_session(db, "1001", now=NOW - timedelta(minutes=20))
        await db.commit()

        result = await complete_task(db, "1001", "mine-1-hour", now=NOW)
        assert result.error == REQUIREMENTS_NOT_MET


class TestReferralCommission:
    @pytest.mark.asyncio
    async def test_referrer_earns_commission_on_task_reward(self, db: AsyncSession):
        referrer = await make_user(db, "2001")
        await make_user(db, "2002", referral_code=referrer.referral_code)
        before = float((await refresh_user(db, "2001")).referral_earnings)

        await complete_task(db, "2002", "follow-twitter", now=NOW)
        await db.commit()

        referrer = await refresh_user(db, "2001")
        assert float(referrer.referral_earnings) == pytest.approx(before + 10.0)


class TestTasksWithProgress:
    @pytest.mark.asyncio
    async def test_catalogue_merged_with_user_state(self, db: AsyncSession):
        await make_user(db)
        await complete_task(db, "1001", "daily-checkin", now=NOW)
        await complete_task(db, "1001", "follow-twitter", now=NOW)
        await db.commit()

        items = {t.id: t for t in await get_tasks_with_progress(db, "1001", now=NOW)}
        assert len(items) == 8
        assert items["daily-checkin"].completed is True
        assert items["follow-twitter"].completed is True
        assert items["follow-twitter"].progress == 1
        assert items["social-media-master"].progress == 1
        assert items["invite-friends"].completed is False

        tomorrow = {t.id: t for t in await get_tasks_with_progress(db, "1001", now=TOMORROW)}
        assert tomorrow["daily-checkin"].completed is False
        assert tomorrow["follow-twitter"].completed is True

    @pytest.mark.asyncio
    async def test_unknown_user(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await get_tasks_with_progress(db, "404", now=NOW)
