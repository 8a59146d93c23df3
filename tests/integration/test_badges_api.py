"""Integration tests: Badge of Honor purchases."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_user


def _purchase(tx: str = "5jTxHash", user_id: str = "1001") -> dict:
    return {
        "userId": user_id,
        "walletAddress": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        "transactionHash": tx,
        "amountSol": "0.05",
        "amountUsd": "9.99",
    }


class TestBadgePurchases:
    @pytest.mark.asyncio
    async def test_purchase_lifecycle(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)

        created = await client.post("/api/badge-purchases", json=_purchase())
        assert created.status_code == 201
        assert created.json()["status"] == "pending"
        assert created.json()["amountUsd"] == 9.99
        assert (await client.get("/api/users/1001")).json()["hasBadgeOfHonor"] is False

        completed = await client.put("/api/badge-purchases/5jTxHash/status", json={"status": "completed"})
        assert completed.status_code == 200
        assert completed.json()["status"] == "completed"
        assert (await client.get("/api/users/1001")).json()["hasBadgeOfHonor"] is True

        listed = (await client.get("/api/users/1001/badge-purchases")).json()
        assert [p["transactionHash"] for p in listed] == ["5jTxHash"]

    @pytest.mark.asyncio
    async def test_duplicate_transaction_hash(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        await client.post("/api/badge-purchases", json=_purchase())
        response = await client.post("/api/badge-purchases", json=_purchase())
        assert response.status_code == 409
        assert response.json()["detail"] == "Transaction hash already exists"

    @pytest.mark.asyncio
    async def test_failed_purchase_grants_nothing(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        await client.post("/api/badge-purchases", json=_purchase())
        await client.put("/api/badge-purchases/5jTxHash/status", json={"status": "failed"})
        assert (await client.get("/api/users/1001")).json()["hasBadgeOfHonor"] is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.post("/api/badge-purchases", json=_purchase(user_id="404"))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client: AsyncClient):
        response = await client.put("/api/badge-purchases/nope/status", json={"status": "completed"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_status(self, client: AsyncClient, db: AsyncSession):
        await make_user(db, now=None)
        await client.post("/api/badge-purchases", json=_purchase())
        response = await client.put("/api/badge-purchases/5jTxHash/status", json={"status": "refunded"})
        assert response.status_code == 422
