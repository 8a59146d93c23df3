"""Tests for the scheduled ledger maintenance jobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user
from cordnode.ledger.service import credit, refresh_user
from cordnode.mining.service import get_current_session, start_session
from cordnode.workers.jobs import reap_stale_sessions, reset_monthly_earnings, reset_weekly_earnings
from cordnode.workers.settings import WorkerSettings


class TestEarningsResets:
    @pytest.mark.asyncio
    async def test_weekly_reset_keeps_other_columns(self, db: AsyncSession):
        await make_user(db, now=None)
        await credit(db, "1001", Decimal("40"))
        await db.commit()

        count = await reset_weekly_earnings({})

        assert count == 1
        user = await refresh_user(db, "1001")
        assert float(user.weekly_earnings) == 0
        assert float(user.monthly_earnings) == pytest.approx(40)
        assert float(user.current_balance) == pytest.approx(140)
        assert float(user.total_earned) == pytest.approx(140)

    @pytest.mark.asyncio
    async def test_monthly_reset(self, db: AsyncSession):
        await make_user(db, now=None)
        await credit(db, "1001", Decimal("40"))
        await db.commit()

        await reset_monthly_earnings({})

        user = await refresh_user(db, "1001")
        assert float(user.monthly_earnings) == 0
        assert float(user.weekly_earnings) == pytest.approx(40)


class TestStaleSessionReaper:
    @pytest.mark.asyncio
    async def test_reaps_idle_sessions(self, db: AsyncSession):
        await make_user(db, now=None)
        await start_session(db, "1001", now=datetime.now(timezone.utc) - timedelta(days=1))
        await db.commit()

        assert await reap_stale_sessions({}) == 1
        assert await get_current_session(db, "1001") is None

    @pytest.mark.asyncio
    async def test_nothing_to_reap(self, db: AsyncSession):
        assert await reap_stale_sessions({}) == 0


class TestWorkerSettings:
    def test_registered_jobs(self):
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {"reset_weekly_earnings", "reset_monthly_earnings", "reap_stale_sessions"}
        assert len(WorkerSettings.cron_jobs) == 3
