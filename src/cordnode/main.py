"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cordnode.anticheat.router import router as anticheat_router
from cordnode.badges.router import router as badges_router
from cordnode.config import get_settings
from cordnode.database import close_db, create_all, get_session, init_db
from cordnode.health.router import router as health_router
from cordnode.middleware import setup_middleware
from cordnode.mining.router import router as mining_router
from cordnode.notifications.router import router as notifications_router
from cordnode.redis_client import close_redis, init_redis
from cordnode.referrals.router import router as referrals_router
from cordnode.tasks.router import router as tasks_router
from cordnode.tasks.seed import seed_tasks
from cordnode.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.database_url.startswith("sqlite"):
        # Local runs without Alembic
        await create_all()
    await init_redis(settings.redis_url)

    # Seed the task catalogue (idempotent)
    try:
        async for db in get_session():
            await seed_tasks(db)
            break
    except Exception:
        logger.warning("Task seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CordNode API",
        description="Backend API for CordNode: Discord-account rewards, mining sessions, tasks and referrals",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(mining_router)
    app.include_router(tasks_router)
    app.include_router(referrals_router)
    app.include_router(anticheat_router)
    app.include_router(badges_router)
    app.include_router(notifications_router)

    return app


app = create_app()
