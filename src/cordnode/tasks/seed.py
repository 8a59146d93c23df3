"""Task catalogue seed data."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.db.models import Task

logger = logging.getLogger(__name__)

TASK_SEED_DATA: list[dict] = [
    {
        "id": "daily-checkin",
        "title": "Daily Check-in",
        "description": "Claim your daily login bonus",
        "reward": Decimal("50"),
        "type": "daily",
        "max_progress": 1,
        "sort_order": 1,
    },
    {
        "id": "mine-1-hour",
        "title": "Mine for 1 Hour",
        "description": "Keep your mining node active for 1 hour",
        "reward": Decimal("100"),
        "type": "daily",
        "max_progress": 3600,  # seconds
        "sort_order": 2,
    },
    {
        "id": "weekly-mining",
        "title": "Weekly Mining Goal",
        "description": "Earn 1000 CORD this week",
        "reward": Decimal("200"),
        "type": "weekly",
        "max_progress": 1000,
        "sort_order": 3,
    },
    {
        "id": "invite-friends",
        "title": "Invite 3 Friends",
        "description": "Refer 3 friends to CordNode",
        "reward": Decimal("500"),
        "type": "achievement",
        "max_progress": 3,
        "sort_order": 4,
    },
    {
        "id": "early-adopter",
        "title": "Early Adopter",
        "description": "Account older than 5 years",
        "reward": Decimal("1000"),
        "type": "achievement",
        "max_progress": 1,
        "sort_order": 5,
    },
    {
        "id": "follow-twitter",
        "title": "Follow on Twitter",
        "description": "Follow @CordNode on Twitter",
        "reward": Decimal("100"),
        "type": "social",
        "max_progress": 1,
        "social_url": "https://twitter.com/cordnode",
        "sort_order": 6,
    },
    {
        "id": "join-discord",
        "title": "Join Discord",
        "description": "Join our Discord community",
        "reward": Decimal("100"),
        "type": "social",
        "max_progress": 1,
        "social_url": "https://discord.gg/cordnode",
        "sort_order": 7,
    },
    {
        "id": "social-media-master",
        "title": "Social Media Master",
        "description": "Complete all social media tasks",
        "reward": Decimal("300"),
        "type": "achievement",
        "max_progress": 2,  # number of social tasks
        "sort_order": 8,
    },
]


async def seed_tasks(db: AsyncSession) -> int:
    """Upsert the task catalogue. Returns number of tasks seeded."""
    insert = sqlite_insert if db.bind.dialect.name == "sqlite" else pg_insert
    seeded = 0
    for task_data in TASK_SEED_DATA:
        row = {"social_url": None, **task_data}
        stmt = insert(Task).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "reward": stmt.excluded.reward,
                "type": stmt.excluded.type,
                "max_progress": stmt.excluded.max_progress,
                "social_url": stmt.excluded.social_url,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d tasks", seeded)
    return seeded
