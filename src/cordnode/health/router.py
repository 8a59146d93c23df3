"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from cordnode.config import get_settings
from cordnode.database import get_session
from cordnode.db.models import Task
from cordnode.redis_client import get_redis_optional

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database reachable and task catalogue seeded; Redis optional."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        seeded = (await db.execute(select(Task.id).limit(1))).scalar_one_or_none()
        checks["database"] = "ok" if seeded else "error: task catalogue not seeded"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    redis = get_redis_optional()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"

    all_ok = all(v in ("ok", "disabled") for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "name": "cordnode-api",
        "version": settings.app_version,
        "environment": settings.environment,
    }
