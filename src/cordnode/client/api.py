"""Async HTTP client for the CordNode API."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class CordNodeApi:
    """Thin wrapper over ``httpx.AsyncClient``; JSON in, JSON out.

    Pass ``client`` to reuse a configured client (tests hand in one bound to
    an ASGI transport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> CordNodeApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:  # noqa: ANN401
        response = await self._client.request(method, path, json=json, params=params)
        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiError(response.status_code, detail)
        return response.json()

    # --- Users ---

    async def get_user(self, user_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/users/{user_id}")

    async def login(self, user_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/users/{user_id}/login")

    # --- Mining ---

    async def start_mining(self, user_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/users/{user_id}/mining/start")

    async def get_current_session(self, user_id: str) -> dict[str, Any] | None:
        return await self._request("GET", f"/api/users/{user_id}/mining/current")

    async def save_progress(
        self,
        user_id: str,
        session_id: str,
        earnings_to_add: Decimal,
        sequence: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"earningsToAdd": str(earnings_to_add)}
        if sequence is not None:
            body["sequence"] = sequence
        return await self._request("POST", f"/api/users/{user_id}/mining/{session_id}/save", json=body)

    async def end_mining(self, session_id: str, final_earnings: Decimal) -> dict[str, Any]:
        return await self._request("POST", f"/api/mining/{session_id}/end", json={"finalEarnings": str(final_earnings)})

    # --- Tasks ---

    async def get_tasks(self, user_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/api/users/{user_id}/tasks")

    async def complete_task(self, user_id: str, task_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/users/{user_id}/tasks/{task_id}/complete")

    # --- Anti-cheat ---

    async def track_anticheat(self, user_id: str, user_agent: str | None = None) -> dict[str, Any]:
        body = {"userAgent": user_agent} if user_agent else {}
        return await self._request("POST", f"/api/users/{user_id}/anticheat/track", json=body)
