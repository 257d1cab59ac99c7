"""
arq Worker Configuration.

Background maintenance of passkey state. Reads already apply expiry lazily;
these jobs persist the corrected state so listings and reports agree.

Run the worker with:
    arq coursegate.worker.WorkerSettings
"""

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from coursegate.config import get_settings

logger = logging.getLogger(__name__)


async def reconcile_expired_task(_ctx: dict[str, Any]) -> int:
    """
    Persist EXPIRED for passkeys whose window has passed.

    Args:
        _ctx: arq context (contains redis connection, job info, etc.)

    Returns:
        Number of passkeys moved to EXPIRED
    """
    from coursegate.core.database import get_db_context
    from coursegate.services.passkey_registry import PasskeyRegistry

    async with get_db_context() as db:
        expired = await PasskeyRegistry(db).reconcile_expired()

    logger.info(
        f"Expiry reconciliation complete: {expired} passkeys expired",
        extra={"expired_count": expired},
    )
    return expired


async def flag_overdue_fees_task(_ctx: dict[str, Any]) -> int:
    """
    Flag passkeys whose monthly platform fee is past due.

    Args:
        _ctx: arq context

    Returns:
        Number of passkeys flagged OVERDUE
    """
    from coursegate.core.database import get_db_context
    from coursegate.services.passkey_registry import PasskeyRegistry

    async with get_db_context() as db:
        flagged = await PasskeyRegistry(db).flag_overdue_platform_fees()

    logger.info(
        f"Platform fee check complete: {flagged} passkeys overdue",
        extra={"overdue_count": flagged},
    )
    return flagged


class WorkerSettings:
    """
    arq worker settings.

    Only cron jobs run here; nothing is enqueued from the API.
    """

    functions = [reconcile_expired_task, flag_overdue_fees_task]

    cron_jobs = [
        cron(reconcile_expired_task, minute={0, 15, 30, 45}),  # Every 15 minutes
        cron(flag_overdue_fees_task, hour=2, minute=0),  # Daily at 2am
    ]

    # Redis connection settings (loaded from environment)
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

    max_jobs = 2

    job_timeout = 300

    retry_jobs = True

    max_tries = 3
