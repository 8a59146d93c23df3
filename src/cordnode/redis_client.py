"""Redis connection pool and key layout.

Redis is optional for CordNode: the API runs without it, losing only rate
limiting, the anti-cheat status cache and live notification pushes. Every
key and channel lives under the ``cordnode:`` prefix.
"""

import redis.asyncio as redis

KEY_PREFIX = "cordnode"

_pool: redis.Redis | None = None


def notification_channel(user_id: str) -> str:
    """Pub/sub channel a user's client subscribes to for live notifications."""
    return f"{KEY_PREFIX}:notifications:{user_id}"


def anticheat_status_key(user_id: str, ip_address: str) -> str:
    return f"{KEY_PREFIX}:anticheat:{user_id}:{ip_address}"


def rate_limit_key(ip_address: str, window: int) -> str:
    return f"{KEY_PREFIX}:ratelimit:{ip_address}:{window}"


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis_optional() -> redis.Redis | None:
    """The Redis client, or None when it has not been initialized.

    Publishing and caching are best-effort; callers skip them on None.
    """
    return _pool
