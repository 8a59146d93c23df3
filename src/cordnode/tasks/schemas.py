"""Task request/response schemas."""

from datetime import datetime
from decimal import Decimal

from cordnode.schemas import CamelModel


class TaskResponse(CamelModel):
    id: str
    title: str
    description: str
    reward: float
    type: str
    max_progress: int
    social_url: str | None = None
    expires_at: datetime | None = None


class TaskWithProgress(TaskResponse):
    completed: bool = False
    progress: int = 0
    claimed_at: datetime | None = None


class CompleteTaskRequest(CamelModel):
    """``rewardAmount`` is accepted from older clients and ignored."""

    reward_amount: Decimal | None = None


class TaskCompletionResult(CamelModel):
    success: bool
    new_balance: float | None = None
    reward: float | None = None
    error: str | None = None
