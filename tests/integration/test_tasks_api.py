"""Integration tests: task endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user


class TestTaskCatalogue:
    @pytest.mark.asyncio
    async def test_catalogue_is_seeded_in_order(self, client: AsyncClient):
        response = await client.get("/api/tasks")
        assert response.status_code == 200
        ids = [t["id"] for t in response.json()]
        assert ids == [
            "daily-checkin",
            "mine-1-hour",
            "weekly-mining",
            "invite-friends",
            "early-adopter",
            "follow-twitter",
            "join-discord",
            "social-media-master",
        ]
        twitter = response.json()[5]
        assert twitter["socialUrl"] == "https://twitter.com/cordnode"
        assert twitter["maxProgress"] == 1

    @pytest.mark.asyncio
    async def test_user_tasks(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        response = await client.get("/api/users/1001/tasks")
        assert response.status_code == 200
        assert all(t["completed"] is False for t in response.json())

    @pytest.mark.asyncio
    async def test_user_tasks_unknown_user(self, client: AsyncClient):
        assert (await client.get("/api/users/404/tasks")).status_code == 404


class TestCompleteTask:
    @pytest.mark.asyncio
    async def test_complete_and_reject_repeat(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        url = "/api/users/1001/tasks/join-discord/complete"

        first = await client.post(url)
        assert first.status_code == 200
        assert first.json() == {"success": True, "newBalance": 200.0, "reward": 100.0, "error": None}

        second = await client.post(url)
        assert second.status_code == 200
        assert second.json()["success"] is False
        assert second.json()["error"] == "Task already completed"

        user = (await client.get("/api/users/1001")).json()
        assert user["currentBalance"] == 200
        assert user["tasksCompleted"] == 1

    @pytest.mark.asyncio
    async def test_client_reward_amount_is_ignored(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        response = await client.post(
            "/api/users/1001/tasks/follow-twitter/complete", json={"rewardAmount": "999999"}
        )
        assert response.json()["reward"] == 100.0

    @pytest.mark.asyncio
    async def test_daily_checkin_once(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        url = "/api/users/1001/tasks/daily-checkin/complete"
        assert (await client.post(url)).json()["success"] is True
        second = (await client.post(url)).json()
        assert second["success"] is False
        assert second["error"] == "Daily check-in already claimed"

        user = (await client.get("/api/users/1001")).json()
        assert user["dailyCheckinClaimed"] is True

    @pytest.mark.asyncio
    async def test_unknown_task(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        response = await client.post("/api/users/1001/tasks/nope/complete")
        assert response.status_code == 404
