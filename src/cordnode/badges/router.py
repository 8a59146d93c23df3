"""Badge of Honor purchase endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.badges.schemas import BadgePurchaseRequest, BadgePurchaseResponse, PurchaseStatusUpdate
from cordnode.badges.service import create_badge_purchase, get_user_purchases, update_purchase_status
from cordnode.database import get_session
from cordnode.db.models import BadgePurchase
from cordnode.dependencies import get_redis_dep, http_error
from cordnode.errors import ConflictError, NotFoundError, ValidationFailed

router = APIRouter(prefix="/api", tags=["Badges"])


def _purchase_response(purchase: BadgePurchase) -> BadgePurchaseResponse:
    return BadgePurchaseResponse(
        id=purchase.id,
        user_id=purchase.user_id,
        wallet_address=purchase.wallet_address,
        transaction_hash=purchase.transaction_hash,
        amount_sol=float(purchase.amount_sol),
        amount_usd=float(purchase.amount_usd),
        status=purchase.status,
        purchase_date=purchase.purchase_date,
    )


@router.post("/badge-purchases", response_model=BadgePurchaseResponse, status_code=201)
async def create_purchase(body: BadgePurchaseRequest, db: AsyncSession = Depends(get_session)):
    """Record a Badge of Honor purchase (status pending)."""
    try:
        purchase = await create_badge_purchase(
            db, body.user_id, body.wallet_address, body.transaction_hash, body.amount_sol, body.amount_usd
        )
    except (NotFoundError, ConflictError) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return _purchase_response(purchase)


@router.put("/badge-purchases/{transaction_hash}/status", response_model=BadgePurchaseResponse)
async def set_status(
    transaction_hash: str,
    body: PurchaseStatusUpdate,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    try:
        purchase = await update_purchase_status(db, transaction_hash, body.status, redis=redis)
    except (NotFoundError, ValidationFailed) as e:
        await db.rollback()
        raise http_error(e) from e
    await db.commit()
    return _purchase_response(purchase)


@router.get("/users/{user_id}/badge-purchases", response_model=list[BadgePurchaseResponse])
async def list_purchases(user_id: str, db: AsyncSession = Depends(get_session)):
    """A user's purchases, newest first."""
    return [_purchase_response(p) for p in await get_user_purchases(db, user_id)]
