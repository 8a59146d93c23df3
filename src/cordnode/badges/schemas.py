"""Badge of Honor purchase schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from cordnode.schemas import CamelModel

PurchaseStatus = Literal["pending", "completed", "failed"]


class BadgePurchaseRequest(CamelModel):
    user_id: str
    wallet_address: str = Field(min_length=1, max_length=64)
    transaction_hash: str = Field(min_length=1, max_length=120)
    amount_sol: Decimal = Field(gt=0)
    amount_usd: Decimal = Field(ge=0)


class PurchaseStatusUpdate(CamelModel):
    status: PurchaseStatus


class BadgePurchaseResponse(CamelModel):
    id: str
    user_id: str
    wallet_address: str
    transaction_hash: str
    amount_sol: float
    amount_usd: float
    status: PurchaseStatus
    purchase_date: datetime
