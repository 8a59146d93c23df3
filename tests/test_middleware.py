"""Tests for request ids, error formatting, CORS and rate limiting."""

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from cordnode.middleware.rate_limit import client_ip


class TestRequestId:
    @pytest.mark.asyncio
    async def test_generated_when_missing(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert len(response.headers["X-Request-Id"]) == 36

    @pytest.mark.asyncio
    async def test_caller_id_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_unsafe_caller_id_replaced(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-Id": "bad id with spaces"})
        assert response.headers["X-Request-Id"] != "bad id with spaces"


class TestErrorFormat:
    @pytest.mark.asyncio
    async def test_404_is_json(self, client: AsyncClient) -> None:
        response = await client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert "detail" in response.json()

    @pytest.mark.asyncio
    async def test_validation_error_shape(self, client: AsyncClient) -> None:
        response = await client.post("/api/users", json={"username": "x"})
        assert response.status_code == 422
        data = response.json()
        assert data["detail"] == "Validation error"
        assert any(err["loc"][-1] == "id" for err in data["errors"])


class TestCors:
    @pytest.mark.asyncio
    async def test_allowed_origin(self, client: AsyncClient) -> None:
        response = await client.options(
            "/api/tasks",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
        )
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_no_redis_means_no_limit_headers(self, client: AsyncClient) -> None:
        response = await client.get("/api/tasks")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_client_ip_prefers_forwarded_for(self) -> None:
        scope = {
            "type": "http",
            "headers": [(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")],
            "client": ("10.0.0.1", 5000),
        }
        assert client_ip(Request(scope)) == "203.0.113.7"

    def test_client_ip_falls_back_to_peer(self) -> None:
        scope = {"type": "http", "headers": [], "client": ("198.51.100.4", 5000)}
        assert client_ip(Request(scope)) == "198.51.100.4"
