"""Integration tests: mining endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user


@pytest.fixture
def user_id() -> str:
    return "1001"


class TestMiningApi:
    @pytest.mark.asyncio
    async def test_full_session(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)

        start = await client.post(f"/api/users/{user_id}/mining/start")
        assert start.status_code == 201
        session = start.json()
        assert session["userId"] == user_id
        assert session["endTime"] is None

        current = await client.get(f"/api/users/{user_id}/mining/current")
        assert current.json()["id"] == session["id"]

        save = await client.post(
            f"/api/users/{user_id}/mining/{session['id']}/save",
            json={"earningsToAdd": "0.75", "sequence": 1},
        )
        assert save.status_code == 200
        assert save.json()["newBalance"] == pytest.approx(100.75)
        assert save.json()["sessionEarnings"] == pytest.approx(0.75)

        end = await client.post(f"/api/mining/{session['id']}/end", json={"finalEarnings": "1.0"})
        assert end.status_code == 200
        body = end.json()
        assert body["credited"] == pytest.approx(0.25)
        assert body["newBalance"] == pytest.approx(101.0)
        assert body["session"]["earnings"] == pytest.approx(1.0)

        assert (await client.get(f"/api/users/{user_id}/mining/current")).json() is None
        user = (await client.get(f"/api/users/{user_id}")).json()
        assert user["isNodeActive"] is False
        assert user["weeklyEarnings"] == pytest.approx(1.0)
        assert user["monthlyEarnings"] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_double_start_conflicts(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        await client.post(f"/api/users/{user_id}/mining/start")
        response = await client.post(f"/api/users/{user_id}/mining/start")
        assert response.status_code == 409
        assert response.json()["detail"] == "Mining session already active"

    @pytest.mark.asyncio
    async def test_start_unknown_user(self, client: AsyncClient):
        assert (await client.post("/api/users/404/mining/start")).status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_flush_acknowledged(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        session = (await client.post(f"/api/users/{user_id}/mining/start")).json()
        url = f"/api/users/{user_id}/mining/{session['id']}/save"

        await client.post(url, json={"earningsToAdd": "0.5", "sequence": 1})
        retry = await client.post(url, json={"earningsToAdd": "0.5", "sequence": 1})

        assert retry.status_code == 200
        assert retry.json()["duplicate"] is True
        assert retry.json()["newBalance"] == pytest.approx(100.5)

    @pytest.mark.asyncio
    async def test_negative_flush_rejected(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        session = (await client.post(f"/api/users/{user_id}/mining/start")).json()
        response = await client.post(
            f"/api/users/{user_id}/mining/{session['id']}/save", json={"earningsToAdd": "-1"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_end_twice_conflicts(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        session = (await client.post(f"/api/users/{user_id}/mining/start")).json()
        await client.post(f"/api/mining/{session['id']}/end", json={"finalEarnings": "0"})
        again = await client.post(f"/api/mining/{session['id']}/end", json={"finalEarnings": "0"})
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_update_display_metrics(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        session = (await client.post(f"/api/users/{user_id}/mining/start")).json()
        response = await client.put(f"/api/mining/{session['id']}", json={"hashRate": 321.5, "efficiency": 90})
        assert response.status_code == 200
        assert response.json()["hashRate"] == 321.5
        assert response.json()["earnings"] == 0

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, client: AsyncClient):
        response = await client.put("/api/mining/nope", json={"hashRate": 1})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_history_and_stats(self, client: AsyncClient, db: AsyncSession, user_id: str):
        await make_user(db, user_id, now=None)
        for _ in range(2):
            session = (await client.post(f"/api/users/{user_id}/mining/start")).json()
            await client.post(f"/api/mining/{session['id']}/end", json={"finalEarnings": "1.5"})

        history = (await client.get(f"/api/users/{user_id}/mining/history", params={"limit": 1})).json()
        assert len(history) == 1

        stats = (await client.get(f"/api/users/{user_id}/mining/stats")).json()
        assert stats["totalSessions"] == 2
        assert stats["totalEarnings"] == pytest.approx(3.0)
        assert stats["activeSessionId"] is None

    @pytest.mark.asyncio
    async def test_stats_unknown_user(self, client: AsyncClient):
        assert (await client.get("/api/users/404/mining/stats")).status_code == 404
