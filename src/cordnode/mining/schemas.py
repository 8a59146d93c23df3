"""Pydantic schemas for the mining session API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from cordnode.schemas import CamelModel

# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class MiningSessionResponse(CamelModel):
    id: str
    user_id: str
    start_time: datetime
    end_time: datetime | None = None
    earnings: float
    hash_rate: float
    efficiency: float


class UpdateSessionRequest(CamelModel):
    """Cosmetic metrics only; earnings move through save/end."""

    hash_rate: float | None = Field(default=None, ge=0)
    efficiency: float | None = Field(default=None, ge=0, le=100)


# ---------------------------------------------------------------------------
# Flush / end
# ---------------------------------------------------------------------------


class SaveProgressRequest(CamelModel):
    earnings_to_add: Decimal = Field(ge=0)
    sequence: int | None = Field(default=None, ge=1)


class SaveProgressResult(CamelModel):
    success: bool
    new_balance: float | None = None
    session_earnings: float | None = None
    duplicate: bool = False
    error: str | None = None


class EndSessionRequest(CamelModel):
    final_earnings: Decimal = Field(ge=0)


class EndSessionResult(CamelModel):
    success: bool
    session: MiningSessionResponse
    credited: float
    new_balance: float


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class MiningStatsResponse(CamelModel):
    total_sessions: int
    total_earnings: float
    average_efficiency: float
    total_mining_seconds: int
    active_session_id: str | None = None
