"""
Provider delivery webhook ingestion.

Events are keyed by the provider message id. Each timestamp field is set at
most once, so redelivered or out-of-order events are harmless. Events for
unknown ids are logged and dropped; webhook delivery is at-least-once and may
reference rows that were pruned or not committed yet.
"""

import enum
import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from libs.common.datetime_utils import utc_now
from libs.common.emails.core import normalize_message_id
from libs.common.logging import get_logger
from services.communications_service.models import EmailQueueItem, EmailQueueStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MESSAGE_ID_KEYS = ("message-id", "messageId", "message_id")

DELIVERED_EVENTS = {"delivered"}
OPENED_EVENTS = {"opened", "unique_opened"}
CLICK_EVENTS = {"click"}
BOUNCE_EVENTS = {"bounce", "hardBounce", "softBounce"}
LOG_ONLY_EVENTS = {"sent", "request"}
FAILURE_MESSAGES = {
    "spam": "Marked as spam",
    "blocked": "Email blocked",
}
DEFAULT_BOUNCE_MESSAGE = "Email bounced"


class WebhookOutcome(str, enum.Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    LOGGED = "logged"
    UNKNOWN_EVENT = "unknown_event"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


@dataclass
class WebhookEventResult:
    event: str
    message_id: str
    outcome: WebhookOutcome
    email_id: Optional[str] = None


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Hex HMAC-SHA256 of the raw body, compared in constant time."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def extract_message_id(event: dict) -> str:
    for key in MESSAGE_ID_KEYS:
        value = event.get(key)
        if value:
            return normalize_message_id(str(value))
    return ""


async def find_queue_item(
    db: AsyncSession, message_id: str
) -> Optional[EmailQueueItem]:
    """
    Exact match on the stored id, then a partial match on its local part.

    Providers sometimes reformat the domain part between send and webhook.
    The most recently created row wins when the partial match is ambiguous.
    """
    result = await db.execute(
        select(EmailQueueItem).where(EmailQueueItem.provider_message_id == message_id)
    )
    item = result.scalars().first()
    if item is not None:
        return item

    local_part = message_id.split("@", 1)[0]
    if not local_part:
        return None
    result = await db.execute(
        select(EmailQueueItem)
        .where(
            EmailQueueItem.provider_message_id.icontains(local_part, autoescape=True)
        )
        .order_by(EmailQueueItem.created_at.desc())
        .limit(1)
    )
    item = result.scalars().first()
    if item is not None:
        logger.info(
            "Matched webhook message id %s to %s by local part",
            message_id,
            item.provider_message_id,
        )
    return item


def _set_once(item: EmailQueueItem, attr: str, value: datetime) -> bool:
    if getattr(item, attr) is not None:
        return False
    setattr(item, attr, value)
    return True


def _mark_failed(item: EmailQueueItem, message: str) -> bool:
    if item.status == EmailQueueStatus.FAILED and item.error_message:
        return False
    item.status = EmailQueueStatus.FAILED
    item.error_message = message
    return True


def _apply(item: EmailQueueItem, event_type: str, event: dict, now: datetime) -> bool:
    if event_type in DELIVERED_EVENTS:
        return _set_once(item, "delivered_at", now)
    if event_type in OPENED_EVENTS:
        # An open proves delivery; keeps delivered_at <= opened_at
        backfilled = _set_once(item, "delivered_at", now)
        return _set_once(item, "opened_at", now) or backfilled
    if event_type in CLICK_EVENTS:
        return _set_once(item, "clicked_at", now)
    if event_type in BOUNCE_EVENTS:
        if item.bounced_at is not None:
            return False
        item.bounced_at = now
        _mark_failed(item, event.get("reason") or DEFAULT_BOUNCE_MESSAGE)
        return True
    return _mark_failed(item, FAILURE_MESSAGES[event_type])


async def apply_webhook_event(
    db: AsyncSession, event: dict[str, Any], *, now: Optional[datetime] = None
) -> WebhookEventResult:
    """Apply one provider event to its queue item and commit."""
    event_type = str(event.get("event") or "")
    message_id = extract_message_id(event)

    if not event_type or not message_id:
        logger.warning("Ignoring webhook event without type or message id: %s", event)
        return WebhookEventResult(event_type, message_id, WebhookOutcome.INVALID)

    if event_type in LOG_ONLY_EVENTS:
        logger.info("Email %s event for %s", event_type, message_id)
        return WebhookEventResult(event_type, message_id, WebhookOutcome.LOGGED)

    known = (
        DELIVERED_EVENTS
        | OPENED_EVENTS
        | CLICK_EVENTS
        | BOUNCE_EVENTS
        | set(FAILURE_MESSAGES)
    )
    if event_type not in known:
        logger.info("Unhandled email event type %s for %s", event_type, message_id)
        return WebhookEventResult(event_type, message_id, WebhookOutcome.UNKNOWN_EVENT)

    item = await find_queue_item(db, message_id)
    if item is None:
        logger.warning(
            "No queued email for message id %s (event %s); dropping",
            message_id,
            event_type,
        )
        return WebhookEventResult(event_type, message_id, WebhookOutcome.NOT_FOUND)

    changed = _apply(item, event_type, event, now or utc_now())
    if changed:
        await db.commit()
        logger.info(
            "Email %s marked %s",
            item.id,
            event_type,
            extra={
                "extra_fields": {"email_id": str(item.id), "message_id": message_id}
            },
        )
        outcome = WebhookOutcome.UPDATED
    else:
        logger.info("Email %s already has %s; replay ignored", item.id, event_type)
        outcome = WebhookOutcome.UNCHANGED
    return WebhookEventResult(event_type, message_id, outcome, email_id=str(item.id))


async def ingest_webhook_events(
    db: AsyncSession,
    payload: Union[dict, list],
    *,
    now: Optional[datetime] = None,
) -> list[WebhookEventResult]:
    """Accept a single event object or a list of them."""
    events = payload if isinstance(payload, list) else [payload]
    results = []
    for event in events:
        if not isinstance(event, dict):
            logger.warning("Ignoring non-object webhook event: %r", event)
            continue
        results.append(await apply_webhook_event(db, event, now=now))
    return results
