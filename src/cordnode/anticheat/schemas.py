"""Anti-cheat request/response schemas."""

from pydantic import Field

from cordnode.schemas import CamelModel


class TrackIpRequest(CamelModel):
    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = Field(default=None, max_length=512)


class AntiCheatStatus(CamelModel):
    efficiency_multiplier: float = 1.0
    penalty_level: int = 0
    is_flagged: bool = False
    risk_score: int = 0
    total_users_on_ip: int = 1
    other_users_on_ip: int = 0
    user_ip_count: int = 1
    warning_message: str | None = None
