"""Badge of Honor purchases.

Payment verification happens off-platform; this service records purchases
by transaction hash and grants the badge once a purchase is marked completed.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import BadgePurchase, User
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed
from cordnode.notifications.service import create_notification

logger = logging.getLogger(__name__)

VALID_STATUSES = {"pending", "completed", "failed"}


async def create_badge_purchase(
    db: AsyncSession,
    user_id: str,
    wallet_address: str,
    transaction_hash: str,
    amount_sol: Decimal,
    amount_usd: Decimal,
) -> BadgePurchase:
    """Record a pending purchase.

    Raises:
        NotFoundError: Unknown user.
        ConflictError: The transaction hash was already recorded.
    """
    user = await db.execute(select(User.id).where(User.id == user_id))
    if user.scalar_one_or_none() is None:
        msg = "User not found"
        raise NotFoundError(msg)

    existing = await db.execute(select(BadgePurchase.id).where(BadgePurchase.transaction_hash == transaction_hash))
    if existing.scalar_one_or_none() is not None:
        msg = "Transaction hash already exists"
        raise ConflictError(msg)

    purchase = BadgePurchase(
        user_id=user_id,
        wallet_address=wallet_address,
        transaction_hash=transaction_hash,
        amount_sol=amount_sol,
        amount_usd=amount_usd,
        status="pending",
    )
    db.add(purchase)
    try:
        await db.flush()
    except IntegrityError as e:
        msg = "Transaction hash already exists"
        raise ConflictError(msg) from e
    await db.refresh(purchase)
    logger.info("Recorded badge purchase %s for user %s", transaction_hash, user_id)
    return purchase


async def update_purchase_status(
    db: AsyncSession,
    transaction_hash: str,
    status: str,
    redis: Any | None = None,
) -> BadgePurchase:
    """Set a purchase's status; ``completed`` grants the badge to its buyer."""
    if status not in VALID_STATUSES:
        msg = f"Invalid status: {status}"
        raise ValidationFailed(msg)

    result = await db.execute(select(BadgePurchase).where(BadgePurchase.transaction_hash == transaction_hash))
    purchase = result.scalar_one_or_none()
    if purchase is None:
        msg = "Purchase not found"
        raise NotFoundError(msg)

    purchase.status = status
    if status == "completed":
        await db.execute(
            update(User)
            .where(User.id == purchase.user_id)
            .values(has_badge_of_honor=True)
            .execution_options(synchronize_session=False)
        )
        await create_notification(
            db,
            purchase.user_id,
            "system",
            "badge_of_honor",
            "Badge of Honor unlocked",
            kind="success",
            redis=redis,
        )
    await db.flush()
    return purchase


async def get_user_purchases(db: AsyncSession, user_id: str) -> list[BadgePurchase]:
    result = await db.execute(
        select(BadgePurchase).where(BadgePurchase.user_id == user_id).order_by(BadgePurchase.purchase_date.desc())
    )
    return list(result.scalars().all())
