"""Client session: login, mining and logout wired together."""

from __future__ import annotations

import logging
from typing import Any

from cordnode.client.anticheat import AntiCheatMonitor
from cordnode.client.api import CordNodeApi
from cordnode.client.cache import LocalSessionCache
from cordnode.client.miner import NodeMiner, NodeState
from cordnode.client.notifications import NotificationStore
from cordnode.config import get_settings

logger = logging.getLogger(__name__)


def _miner_defaults() -> dict[str, Any]:
    settings = get_settings()
    return {
        "base_rate_per_minute": settings.mining_base_rate_per_minute,
        "tick_seconds": settings.mining_tick_seconds,
        "flush_interval_seconds": settings.mining_flush_interval_seconds,
        "startup_delay_seconds": settings.mining_startup_delay_seconds,
    }


def _monitor_defaults() -> dict[str, Any]:
    settings = get_settings()
    return {
        "check_interval": settings.anticheat_check_interval_seconds,
        "min_recheck": settings.anticheat_min_recheck_seconds,
    }


class ClientSession:
    def __init__(
        self,
        api: CordNodeApi,
        user_id: str,
        cache: LocalSessionCache,
        *,
        notifications: NotificationStore | None = None,
        miner_options: dict[str, Any] | None = None,
        monitor_options: dict[str, Any] | None = None,
    ) -> None:
        self.api = api
        self.user_id = user_id
        self.cache = cache
        self.notifications = notifications or NotificationStore()
        self.monitor = AntiCheatMonitor(
            api,
            user_id,
            notifications=self.notifications,
            **{**_monitor_defaults(), **(monitor_options or {})},
        )
        self._miner_options = {**_miner_defaults(), **(miner_options or {})}
        self.miner: NodeMiner | None = None
        self.user: dict[str, Any] | None = None

    async def login(self) -> dict[str, Any]:
        """Record the login, reconcile the cached record and check anti-cheat status."""
        server_user = await self.api.login(self.user_id)
        self.user = self.cache.reconcile(server_user)
        await self.monitor.check()
        self.monitor.start()
        self.miner = NodeMiner(
            self.api,
            self.user_id,
            self.user["multiplier"],
            efficiency=lambda: self.monitor.efficiency_multiplier,
            notifications=self.notifications,
            **self._miner_options,
        )
        return self.user

    async def refresh(self) -> dict[str, Any]:
        self.user = self.cache.reconcile(await self.api.get_user(self.user_id))
        return self.user

    def _require_miner(self) -> NodeMiner:
        if self.miner is None:
            raise RuntimeError("Not logged in")
        return self.miner

    async def start_mining(self) -> None:
        await self._require_miner().start()

    async def stop_mining(self) -> dict[str, Any]:
        result = await self._require_miner().stop()
        await self.refresh()
        return result

    async def on_visibility_lost(self) -> bool:
        if self.miner is None:
            return True
        return await self.miner.force_flush()

    async def complete_task(self, task_id: str) -> dict[str, Any]:
        """Claim a task; an idempotency rejection is informational and triggers a refresh."""
        result = await self.api.complete_task(self.user_id, task_id)
        if result.get("success"):
            self.notifications.success("Task completed", f"You earned {result.get('reward')} CORD.")
        else:
            self.notifications.info("Task not claimed", result.get("error") or "")
        await self.refresh()
        return result

    async def logout(self) -> None:
        """Flush and stop mining, then stop background checks."""
        if self.miner is not None and self.miner.state is NodeState.ACTIVE:
            await self.miner.force_flush()
            try:
                await self.miner.stop()
            except Exception:
                logger.warning("Failed to stop node on logout", exc_info=True)
                self.notifications.error("Logout incomplete", "Your node could not be stopped cleanly.")
                await self.miner.abandon()
        await self.monitor.stop()
        self.miner = None
