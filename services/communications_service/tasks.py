"""
Background entry points for the email queue.

Each call is a short, stateless run with its own session; the ARQ cron and
the operator script both go through here.
"""

from typing import Optional

from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.communications_service.queue import QueueRunResult, process_email_queue

logger = get_logger(__name__)


async def process_queue_once(daily_limit: Optional[int] = None) -> QueueRunResult:
    """Process the email queue once using a fresh database session."""
    async with AsyncSessionLocal() as db:
        try:
            return await process_email_queue(db, daily_limit=daily_limit)
        except Exception:
            logger.exception("Email queue run failed")
            await db.rollback()
            raise
