"""Tests for health, readiness and version endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import Task


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_ready_with_seeded_database(client: AsyncClient) -> None:
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["redis"] == "disabled"


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "cordnode-api"
    assert "version" in data
    assert "environment" in data


@pytest.mark.asyncio
async def test_ready_degraded_without_task_catalogue(db: AsyncSession, client: AsyncClient) -> None:
    await db.execute(delete(Task))
    await db.commit()

    data = (await client.get("/ready")).json()

    assert data["status"] == "degraded"
    assert data["checks"]["database"] == "error: task catalogue not seeded"
