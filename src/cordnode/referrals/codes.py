"""Referral code generation.

Codes are 8-character alphanumeric (A-Z, 0-9), generated server-side
with a cryptographic random source and assigned once per user.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import User

REFERRAL_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
REFERRAL_CODE_LENGTH = 8


def generate_referral_code() -> str:
    """Generate a cryptographically random 8-character referral code."""
    return "".join(secrets.choice(REFERRAL_CHARSET) for _ in range(REFERRAL_CODE_LENGTH))


def normalize_referral_code(code: str) -> str:
    """Normalize a referral code for case-insensitive lookup."""
    return code.strip().upper()


async def generate_unique_referral_code(db: AsyncSession) -> str:
    """Generate a referral code that no user holds yet."""
    for _ in range(10):
        code = generate_referral_code()
        existing = await db.execute(select(User.id).where(User.referral_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate unique referral code after 10 attempts")


async def find_user_by_referral_code(db: AsyncSession, code: str) -> User | None:
    result = await db.execute(select(User).where(User.referral_code == normalize_referral_code(code)))
    return result.scalar_one_or_none()
