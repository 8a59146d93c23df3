"""arq worker settings module.

Import path for arq CLI: arq cordnode.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from cordnode.config import get_settings
from cordnode.workers.jobs import (
    reap_stale_sessions,
    reset_monthly_earnings,
    reset_weekly_earnings,
    shutdown,
    startup,
)


class WorkerSettings:
    """arq worker settings for scheduled ledger maintenance."""

    functions = [reset_weekly_earnings, reset_monthly_earnings, reap_stale_sessions]
    cron_jobs = [
        cron(reset_weekly_earnings, weekday=0, hour=0, minute=0, second=0),  # Monday 00:00 UTC
        cron(reset_monthly_earnings, day=1, hour=0, minute=0, second=0),  # 1st 00:00 UTC
        cron(reap_stale_sessions, minute=set(range(0, 60, 5)), second=0),
    ]
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
    job_timeout = get_settings().worker_timeout_seconds
    allow_abort_jobs = True
