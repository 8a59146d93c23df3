"""Node mining state machine.

STOPPED -> STARTING -> ACTIVE -> STOPPING -> STOPPED

While ACTIVE two tasks run: a tick that accrues earnings every second and a
flush that sends the pending amount every ten seconds. A flush batch keeps
its sequence number until the server acknowledges it, so a retried batch is
credited once.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from cordnode.client.api import ApiError, CordNodeApi
from cordnode.client.notifications import NotificationStore

logger = logging.getLogger(__name__)


class NodeState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class MinerStateError(RuntimeError):
    """Operation not allowed in the current node state."""


@dataclass(frozen=True)
class FlushBatch:
    sequence: int
    amount: Decimal


class NodeMiner:
    def __init__(
        self,
        api: CordNodeApi,
        user_id: str,
        multiplier: Decimal | float,
        *,
        efficiency: Callable[[], Decimal] | None = None,
        notifications: NotificationStore | None = None,
        base_rate_per_minute: Decimal = Decimal("0.5"),
        tick_seconds: float = 1.0,
        flush_interval_seconds: float = 10.0,
        startup_delay_seconds: float = 2.0,
    ) -> None:
        self.api = api
        self.user_id = user_id
        self.multiplier = Decimal(str(multiplier))
        self._efficiency = efficiency or (lambda: Decimal("1.0"))
        self.notifications = notifications
        self.base_rate_per_minute = Decimal(base_rate_per_minute)
        self.tick_seconds = tick_seconds
        self.flush_interval_seconds = flush_interval_seconds
        self.startup_delay_seconds = startup_delay_seconds

        self.state = NodeState.STOPPED
        self.session_id: str | None = None
        self.pending = Decimal("0")
        self.inflight: FlushBatch | None = None
        self.acknowledged = Decimal("0")
        self.display_total = Decimal("0")
        self._sequence = 0
        self._orphaned = False
        self._flush_lock = asyncio.Lock()
        self._tasks: list[asyncio.Task[None]] = []

    # --- Accrual ---

    @property
    def rate_per_minute(self) -> Decimal:
        return self.base_rate_per_minute * self.multiplier * self._efficiency()

    def accrue(self, seconds: float = 1.0) -> Decimal:
        """Add ``seconds`` worth of earnings to the pending amount."""
        amount = self.rate_per_minute / 60 * Decimal(str(seconds))
        self.pending += amount
        self.display_total += amount
        return amount

    @property
    def unacknowledged(self) -> Decimal:
        return self.pending + (self.inflight.amount if self.inflight else Decimal("0"))

    # --- Timers ---

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            self.accrue(self.tick_seconds)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval_seconds)
            await self.flush()

    def _start_timers(self) -> None:
        self._tasks = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._flush_loop()),
        ]

    async def _cancel_timers(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # --- Flush ---

    async def flush(self) -> bool:
        """Send the in-flight batch, or freeze pending into a new one and send it.

        Returns True once nothing is left unacknowledged. Failures are logged
        and reported, never raised; the batch is kept for the next attempt.
        A 409 means the server already closed the session (the stale-session
        reaper, or an end from elsewhere): the unsent earnings move to a
        freshly opened session instead of being retried forever.
        """
        async with self._flush_lock:
            for _attempt in range(2):
                if self.session_id is None:
                    if not self._orphaned or not await self._reopen_session():
                        return False
                if self.inflight is None:
                    if self.pending <= 0:
                        return True
                    self._sequence += 1
                    self.inflight = FlushBatch(self._sequence, self.pending)
                    self.pending = Decimal("0")

                batch = self.inflight
                try:
                    await self.api.save_progress(self.user_id, self.session_id, batch.amount, batch.sequence)
                except Exception as e:
                    if isinstance(e, ApiError) and e.status_code == 409:
                        self._orphan_session()
                        continue
                    logger.warning(
                        "Flush of batch %d (%s CORD) failed; will retry", batch.sequence, batch.amount, exc_info=True
                    )
                    if self.notifications is not None:
                        self.notifications.error("Sync failed", "Mining progress will be retried shortly.")
                    return False

                self.acknowledged += batch.amount
                self.inflight = None
                return True
            return False

    def _orphan_session(self) -> None:
        """Forget a session the server has closed; unsent earnings start over as pending."""
        logger.warning("Mining session %s was closed by the server", self.session_id)
        self.pending = self.unacknowledged
        self.inflight = None
        # Everything acknowledged so far was credited with the closed session
        self.acknowledged = Decimal("0")
        self._sequence = 0
        self.session_id = None
        self._orphaned = True
        if self.notifications is not None:
            self.notifications.warning("Mining session closed", "Unsaved progress moves to a new session.")

    async def _reopen_session(self) -> bool:
        try:
            session = await self._open_session()
        except Exception:
            logger.warning("Could not open a replacement mining session", exc_info=True)
            return False
        self.session_id = session["id"]
        self._orphaned = False
        logger.info("Continuing in mining session %s", self.session_id)
        return True

    async def force_flush(self) -> bool:
        """Out-of-band flush (visibility loss, logout)."""
        if self.state not in (NodeState.ACTIVE, NodeState.STOPPING):
            return True
        return await self.flush()

    # --- Lifecycle ---

    def _reset_counters(self) -> None:
        self.pending = Decimal("0")
        self.inflight = None
        self.acknowledged = Decimal("0")
        self.display_total = Decimal("0")
        self._sequence = 0

    async def _open_session(self) -> dict[str, Any]:
        try:
            return await self.api.start_mining(self.user_id)
        except ApiError as e:
            if e.status_code != 409:
                raise
            # Close the session a previous run left open, crediting nothing new
            current = await self.api.get_current_session(self.user_id)
            if current is not None:
                logger.info("Closing leftover mining session %s", current["id"])
                await self.api.end_mining(current["id"], Decimal(str(current["earnings"])))
            return await self.api.start_mining(self.user_id)

    async def start(self) -> None:
        if self.state is not NodeState.STOPPED:
            raise MinerStateError(f"Cannot start node while {self.state.value}")

        self.state = NodeState.STARTING
        try:
            session = await self._open_session()
        except Exception:
            self.state = NodeState.STOPPED
            raise

        self.session_id = session["id"]
        self._orphaned = False
        self._reset_counters()
        await asyncio.sleep(self.startup_delay_seconds)
        self.state = NodeState.ACTIVE
        self._start_timers()
        if self.notifications is not None:
            self.notifications.success("Node started", "Your node is mining CORD.")

    async def stop(self) -> dict[str, Any]:
        """Cancel timers, flush, then end the session with the full local total.

        A session the server already closed is replaced so unsent earnings
        still land; if no replacement can be opened the loss is reported and
        the node stops anyway. Any other failure returns the node to ACTIVE
        with timers running and the error propagates.
        """
        if self.state is not NodeState.ACTIVE:
            raise MinerStateError(f"Cannot stop node while {self.state.value}")

        self.state = NodeState.STOPPING
        await self._cancel_timers()
        try:
            final, result = await self._end_session()
        except Exception:
            self.state = NodeState.ACTIVE
            self._start_timers()
            raise

        self.state = NodeState.STOPPED
        self.session_id = None
        self._orphaned = False
        self.acknowledged = final
        self.pending = Decimal("0")
        self.inflight = None
        if self.notifications is not None:
            self.notifications.success("Node stopped", f"Session earned {final.quantize(Decimal('0.0001'))} CORD.")
        return result

    async def _end_session(self) -> tuple[Decimal, dict[str, Any]]:
        for _attempt in range(2):
            await self.flush()
            if self.session_id is None:
                lost = self.unacknowledged
                logger.error("Mining session closed by the server; %s CORD could not be saved", lost)
                if self.notifications is not None:
                    self.notifications.error(
                        "Unsaved earnings lost", f"{lost.quantize(Decimal('0.0001'))} CORD could not be saved."
                    )
                return self.acknowledged, {"success": False, "credited": 0.0, "lost": float(lost)}

            final = self.acknowledged + self.unacknowledged
            try:
                return final, await self.api.end_mining(self.session_id, final)
            except ApiError as e:
                if e.status_code != 409:
                    raise
                saved = self.acknowledged
                self._orphan_session()
                if self.pending <= 0:
                    # Reaped with everything already saved
                    return saved, {"success": True, "credited": 0.0}
        raise ApiError(409, "Mining session has already ended")

    async def abandon(self) -> None:
        """Cancel timers without ending the session; the server reaps it later."""
        await self._cancel_timers()
        self.state = NodeState.STOPPED
        self.session_id = None
        self._orphaned = False
