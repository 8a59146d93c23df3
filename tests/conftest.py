"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) with no Redis;
every test gets a fresh schema and a freshly seeded task catalogue.
"""

from __future__ import annotations

import os

os.environ["CORD_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("CORD_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.config import get_settings

get_settings.cache_clear()

from cordnode.database import close_db, create_all, get_session, init_db  # noqa: E402
from cordnode.db.models import User  # noqa: E402
from cordnode.main import create_app  # noqa: E402
from cordnode.rewards.multiplier import DISCORD_EPOCH_MS  # noqa: E402
from cordnode.tasks.seed import seed_tasks  # noqa: E402
from cordnode.users.service import create_user  # noqa: E402

# Wednesday, so the ISO week started two days earlier
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def years_ago(years: float, now: datetime = NOW) -> datetime:
    """A join date that floors to ``years`` of account age at ``now``."""
    return now - timedelta(days=365.25 * years + 1)


def snowflake_for(created_at: datetime) -> str:
    """Discord id whose embedded timestamp is ``created_at``."""
    ms = int(created_at.timestamp() * 1000)
    return str((ms - DISCORD_EPOCH_MS) << 22)


async def make_user(
    db: AsyncSession,
    user_id: str = "1001",
    username: str | None = None,
    age_years: float = 0.5,
    referral_code: str | None = None,
    now: datetime | None = NOW,
) -> User:
    """Create and commit a user through the real signup path."""
    join_date = years_ago(age_years, now or datetime.now(timezone.utc))
    user, _balance, _error = await create_user(
        db,
        user_id,
        username or f"user{user_id}",
        join_date=join_date,
        referral_code=referral_code,
        now=now,
    )
    await db.commit()
    return user


class FakeRedis:
    """Just enough of redis.asyncio for cache and pub/sub assertions."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key: str) -> Any:  # noqa: ANN401
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> None:  # noqa: ANN401
        self.store[key] = value

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh schema, seeded catalogue, and a session on it."""
    await init_db(get_settings().database_url)
    await create_all()
    sessions = get_session()
    session = await anext(sessions)
    await seed_tasks(session)
    yield session
    await sessions.aclose()
    await close_db()


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app; the database comes from the ``db`` fixture."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
