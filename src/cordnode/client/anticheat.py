"""Client-side anti-cheat status polling."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from cordnode.client.api import CordNodeApi
from cordnode.client.notifications import NotificationStore

logger = logging.getLogger(__name__)


class AntiCheatMonitor:
    """Fetches the server anti-cheat status at login and every ``check_interval``.

    Checks closer together than ``min_recheck`` reuse the last status.
    """

    def __init__(
        self,
        api: CordNodeApi,
        user_id: str,
        *,
        notifications: NotificationStore | None = None,
        check_interval: float = 1800.0,
        min_recheck: float = 300.0,
        user_agent: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api = api
        self.user_id = user_id
        self.notifications = notifications
        self.check_interval = check_interval
        self.min_recheck = min_recheck
        self.user_agent = user_agent
        self._clock = clock
        self._last_check: float | None = None
        self._task: asyncio.Task[None] | None = None
        self.status: dict[str, Any] | None = None

    @property
    def efficiency_multiplier(self) -> Decimal:
        if self.status is None:
            return Decimal("1.0")
        return min(Decimal("1.0"), Decimal(str(self.status.get("efficiencyMultiplier", 1.0))))

    async def check(self) -> dict[str, Any] | None:
        """Refresh the status unless the last check was under ``min_recheck`` ago."""
        now = self._clock()
        if self._last_check is not None and now - self._last_check < self.min_recheck:
            return self.status
        self._last_check = now
        try:
            status = await self.api.track_anticheat(self.user_id, self.user_agent)
        except Exception:
            logger.warning("Anti-cheat check failed for %s", self.user_id, exc_info=True)
            return self.status

        previous_level = (self.status or {}).get("penaltyLevel", 0)
        self.status = status
        if self.notifications is not None and status.get("penaltyLevel", 0) > previous_level:
            self.notifications.warning("Mining efficiency reduced", status.get("warningMessage") or "")
        return status

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            await self.check()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
