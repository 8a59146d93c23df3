"""Integration tests: referral endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user


class TestReferralApi:
    @pytest.mark.asyncio
    async def test_apply_and_stats(self, client: AsyncClient, db: AsyncSession):
        referrer = await make_user(db, "3001", now=None)
        await make_user(db, "3002", username="newcomer", age_years=2.5, now=None)

        response = await client.post("/api/users/3002/referral", json={"referralCode": referrer.referral_code})
        assert response.status_code == 200
        assert response.json() == {"success": True, "referrerBonus": 18.0, "referredBonus": 187.0}

        stats = (await client.get("/api/users/3001/referrals")).json()
        assert stats["referralCode"] == referrer.referral_code
        assert stats["totalReferrals"] == 1
        assert stats["totalEarnings"] == 18.0
        history = stats["referralHistory"]
        assert history[0]["referredUsername"] == "newcomer"
        assert history[0]["referredUser"]["accountAge"] == 2.5

    @pytest.mark.asyncio
    async def test_second_code_rejected(self, client: AsyncClient, db: AsyncSession):
        first = await make_user(db, "3001", now=None)
        second = await make_user(db, "3003", now=None)
        await make_user(db, "3002", now=None)

        await client.post("/api/users/3002/referral", json={"referralCode": first.referral_code})
        response = await client.post("/api/users/3002/referral", json={"referralCode": second.referral_code})
        assert response.status_code == 400
        assert response.json()["detail"] == "You have already used a referral code"

    @pytest.mark.asyncio
    async def test_invalid_code(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, "3002", now=None)
        response = await client.post("/api/users/3002/referral", json={"referralCode": "NOPE0000"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.post("/api/users/404/referral", json={"referralCode": "ABCDEFGH"})
        assert response.status_code == 404
        assert (await client.get("/api/users/404/referrals")).status_code == 404
