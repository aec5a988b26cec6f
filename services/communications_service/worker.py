"""ARQ worker for communications service background tasks.

Triggers the email queue on a schedule via ARQ cron jobs backed by Redis.
Run with: arq services.communications_service.worker.WorkerSettings
"""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


# ── Wrapper functions (ARQ requires top-level async callables) ──


async def task_process_email_queue(ctx: dict):
    """Send pending emails within today's allowance."""
    from services.communications_service.tasks import process_queue_once

    logger.info("Running: process_email_queue")
    result = await process_queue_once()
    return {"sent": len(result.sent), "failed": len(result.failed)}


async def startup(ctx: dict):
    configure_logging()


# ── Worker configuration ──


class WorkerSettings:
    """ARQ worker settings with cron job schedules."""

    redis_settings = get_redis_settings()
    on_startup = startup

    functions = [
        task_process_email_queue,
    ]

    cron_jobs = [
        # Hourly; the daily cap spreads the backlog across runs
        cron(
            task_process_email_queue,
            minute=0,
            run_at_startup=False,
        ),
    ]
