"""Atomic ledger mutations on the users table.

Every balance change is issued as a single ``UPDATE ... SET col = col + :delta``
so concurrent flushes, task claims and referral payouts never overwrite each
other. Callers that need the new values afterwards use ``refresh_user``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import User
from cordnode.errors import NotFoundError

logger = logging.getLogger(__name__)

PERIOD_COLUMNS = {
    "weekly": "weekly_earnings",
    "monthly": "monthly_earnings",
}


def credit_values(
    amount: Decimal,
    *,
    period_earnings: bool = True,
    referral: bool = False,
) -> dict[str, Any]:
    """Column increments for a credit of ``amount``.

    Exposed so callers can fold a credit into a larger conditional UPDATE.
    """
    values: dict[str, Any] = {
        "current_balance": User.current_balance + amount,
        "total_earned": User.total_earned + amount,
    }
    if period_earnings:
        values["weekly_earnings"] = User.weekly_earnings + amount
        values["monthly_earnings"] = User.monthly_earnings + amount
    if referral:
        values["referral_earnings"] = User.referral_earnings + amount
    return values


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: Decimal,
    *,
    period_earnings: bool = True,
    referral: bool = False,
) -> None:
    """Add ``amount`` to a user's balance and lifetime total.

    Raises NotFoundError if the user does not exist, ValueError on a negative amount.
    """
    amount = Decimal(amount)
    if amount < 0:
        msg = "Credit amount must be non-negative"
        raise ValueError(msg)

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(**credit_values(amount, period_earnings=period_earnings, referral=referral))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)


async def reset_period_earnings(db: AsyncSession, period: str) -> int:
    """Zero the weekly or monthly earnings column for every user."""
    column = PERIOD_COLUMNS.get(period)
    if column is None:
        msg = f"Unknown earnings period: {period}"
        raise ValueError(msg)

    result = await db.execute(
        update(User).values({column: Decimal("0")}).execution_options(synchronize_session=False)
    )
    logger.info("Reset %s earnings for %d users", period, result.rowcount)
    return result.rowcount


async def refresh_user(db: AsyncSession, user_id: str) -> User:
    """Re-read a user row, overwriting any stale identity-map copy."""
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return user
