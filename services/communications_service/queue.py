"""
Email dispatch queue.

Items are rendered and stored as ``pending`` when queued, then sent by short
on-demand processing runs (HTTP trigger, ARQ cron or the operator script).
Each run re-counts what was already sent in the current academy-local
calendar day and never exceeds ``EMAIL_DAILY_LIMIT``; the backlog rolls over
to the next day. Failed sends are terminal until a human requeues them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import local_day_bounds_utc, local_today, utc_now
from libs.common.emails.core import EmailDeliveryError, SentEmail, send_email
from libs.common.logging import get_logger
from services.communications_service.models import EmailQueueItem, EmailQueueStatus
from services.communications_service.templates import render_template
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

EmailSender = Callable[..., Awaitable[SentEmail]]


@dataclass
class QueueRunResult:
    daily_limit: int
    sent_before: int
    remaining_before: int
    sent: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.sent) + len(self.failed)


@dataclass
class QueueStatus:
    pending: int
    sent: int
    failed: int
    sent_today: int
    daily_limit: int
    remaining_today: int


async def queue_email(
    db: AsyncSession,
    template_type: str,
    to_email: str,
    template_data: Optional[dict] = None,
    *,
    scheduled_for: Optional[date] = None,
    metadata: Optional[dict] = None,
) -> EmailQueueItem:
    """
    Render a template and persist it as a pending queue item.

    Raises:
        ValueError: unknown template type
    """
    rendered = render_template(template_type, template_data or {})
    item = EmailQueueItem(
        template_type=template_type,
        to_email=to_email,
        subject=rendered.subject,
        html_content=rendered.html,
        text_content=rendered.text,
        status=EmailQueueStatus.PENDING,
        scheduled_for=scheduled_for or local_today(),
        email_metadata=metadata or {},
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info(
        "Queued %s email %s for %s (scheduled %s)",
        template_type,
        item.id,
        to_email,
        item.scheduled_for,
    )
    return item


async def queue_batch_emails(
    db: AsyncSession, entries: list[dict]
) -> tuple[list[EmailQueueItem], list[str]]:
    """Queue several emails; unknown templates are reported, not raised."""
    queued: list[EmailQueueItem] = []
    errors: list[str] = []
    for entry in entries:
        try:
            queued.append(
                await queue_email(
                    db,
                    entry["template_type"],
                    entry["to_email"],
                    entry.get("template_data"),
                    scheduled_for=entry.get("scheduled_for"),
                    metadata=entry.get("metadata"),
                )
            )
        except ValueError as exc:
            errors.append(f"{entry.get('to_email')}: {exc}")
    return queued, errors


async def count_sent_today(db: AsyncSession, now: Optional[datetime] = None) -> int:
    start, end = local_day_bounds_utc(local_today(now))
    result = await db.execute(
        select(func.count(EmailQueueItem.id)).where(
            EmailQueueItem.status == EmailQueueStatus.SENT,
            EmailQueueItem.sent_at >= start,
            EmailQueueItem.sent_at < end,
        )
    )
    return result.scalar_one()


async def process_email_queue(
    db: AsyncSession,
    *,
    sender: EmailSender = send_email,
    daily_limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> QueueRunResult:
    """
    Send as many pending items as today's remaining allowance permits.

    The sent-today count is re-queried on every run, never cached, so
    concurrent runs may overshoot the cap by the size of their overlap.
    """
    limit = daily_limit if daily_limit is not None else get_settings().EMAIL_DAILY_LIMIT
    sent_before = await count_sent_today(db, now)
    remaining = limit - sent_before
    result = QueueRunResult(
        daily_limit=limit, sent_before=sent_before, remaining_before=max(remaining, 0)
    )

    if remaining <= 0:
        logger.info(
            "Daily email limit reached (%s/%s); leaving pending items for tomorrow",
            sent_before,
            limit,
        )
        return result

    query = (
        select(EmailQueueItem)
        .where(
            EmailQueueItem.status == EmailQueueStatus.PENDING,
            EmailQueueItem.scheduled_for <= local_today(now),
        )
        .order_by(EmailQueueItem.created_at.asc(), EmailQueueItem.id.asc())
        .limit(remaining)
    )
    items = (await db.execute(query)).scalars().all()
    if not items:
        logger.info("No pending emails to send")
        return result

    logger.info("Processing %s queued emails (%s remaining today)", len(items), remaining)

    for item in items:
        try:
            sent = await sender(
                item.to_email,
                item.subject,
                item.html_content,
                item.text_content,
                tags=[item.template_type] if item.template_type else None,
            )
        except EmailDeliveryError as exc:
            _mark_failed(item, exc.message)
            result.failed.append(item.id)
        except Exception as exc:
            logger.exception("Unexpected error sending email %s", item.id)
            _mark_failed(item, str(exc) or exc.__class__.__name__)
            result.failed.append(item.id)
        else:
            item.status = EmailQueueStatus.SENT
            item.sent_at = utc_now()
            item.provider_message_id = sent.message_id or None
            item.error_message = None
            result.sent.append(item.id)
            logger.info(
                "Sent email %s to %s (message id %s)",
                item.id,
                item.to_email,
                item.provider_message_id,
                extra={
                    "extra_fields": {
                        "email_id": str(item.id),
                        "provider_message_id": item.provider_message_id,
                    }
                },
            )
        await db.commit()

    logger.info(
        "Queue run finished: %s sent, %s failed", len(result.sent), len(result.failed)
    )
    return result


def _mark_failed(item: EmailQueueItem, message: str) -> None:
    item.status = EmailQueueStatus.FAILED
    item.error_message = message
    logger.error(
        "Failed to send email %s to %s: %s",
        item.id,
        item.to_email,
        message,
        extra={"extra_fields": {"email_id": str(item.id)}},
    )


async def get_queue_status(
    db: AsyncSession, *, daily_limit: Optional[int] = None
) -> QueueStatus:
    limit = daily_limit if daily_limit is not None else get_settings().EMAIL_DAILY_LIMIT
    rows = await db.execute(
        select(EmailQueueItem.status, func.count(EmailQueueItem.id)).group_by(
            EmailQueueItem.status
        )
    )
    counts = {status: count for status, count in rows.all()}
    sent_today = await count_sent_today(db)
    return QueueStatus(
        pending=counts.get(EmailQueueStatus.PENDING, 0),
        sent=counts.get(EmailQueueStatus.SENT, 0),
        failed=counts.get(EmailQueueStatus.FAILED, 0),
        sent_today=sent_today,
        daily_limit=limit,
        remaining_today=max(limit - sent_today, 0),
    )


async def requeue_email(
    db: AsyncSession, item_id: uuid.UUID
) -> Optional[EmailQueueItem]:
    """
    Return a failed item to ``pending`` for the next run.

    Returns None when the item does not exist. Items that are not failed
    are returned unchanged.
    """
    item = await db.get(EmailQueueItem, item_id)
    if item is None:
        return None
    if item.status != EmailQueueStatus.FAILED:
        logger.info("Email %s is %s; not requeued", item.id, item.status.value)
        return item

    item.status = EmailQueueStatus.PENDING
    item.error_message = None
    item.scheduled_for = local_today()
    await db.commit()
    await db.refresh(item)
    logger.info("Requeued email %s", item.id)
    return item
