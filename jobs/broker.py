"""
Dramatiq broker.

Redis broker for the payout retry sweep. Start workers with:
    dramatiq jobs.broker jobs.tasks.payout_retry
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import (
    AgeLimit,
    Callbacks,
    CurrentMessage,
    Pipelines,
    Retries,
    ShutdownNotifications,
    TimeLimit,
)
from loguru import logger

from referral_ledger.config.settings import settings

SWEEP_MAX_RETRIES = 3

# Explicit list replaces the defaults, so Retries is registered once
broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
    middleware=[
        AgeLimit(),
        TimeLimit(),
        ShutdownNotifications(),
        Callbacks(),
        Pipelines(),
        # Backoff between 1 s and 1 min for sweeps that crash outright
        Retries(
            max_retries=SWEEP_MAX_RETRIES,
            min_backoff=1_000,
            max_backoff=60_000,
        ),
        CurrentMessage(),
    ],
)

dramatiq.set_broker(broker)

logger.info(
    "Dramatiq broker initialized",
    extra={
        "redis": f"{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
    },
)
