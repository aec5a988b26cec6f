"""Integration tests for provider delivery webhook ingestion."""

from datetime import datetime, timedelta, timezone

import pytest

from libs.common.datetime_utils import utc_now
from services.communications_service.models import EmailQueueItem, EmailQueueStatus
from services.communications_service.webhooks import (
    WebhookOutcome,
    apply_webhook_event,
    ingest_webhook_events,
)
from tests.factories import EmailQueueItemFactory

T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


async def _sent_item(db, message_id: str = "abc123@provider") -> EmailQueueItem:
    item = EmailQueueItemFactory.create(
        status=EmailQueueStatus.SENT,
        sent_at=utc_now(),
        provider_message_id=message_id,
    )
    db.add(item)
    await db.commit()
    return item


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bounce_marks_item_failed(db_session):
    """A bounce sets bounced_at, fails the item and keeps the provider's reason."""
    item = await _sent_item(db_session)

    result = await apply_webhook_event(
        db_session,
        {"event": "bounce", "message-id": "<abc123@provider>", "reason": "mailbox full"},
        now=T0,
    )

    assert result.outcome == WebhookOutcome.UPDATED
    assert result.email_id == str(item.id)
    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.bounced_at == T0
    assert refreshed.status == EmailQueueStatus.FAILED
    assert refreshed.error_message == "mailbox full"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bounce_without_reason_uses_default(db_session):
    """Hard bounces without a reason still explain the failure."""
    item = await _sent_item(db_session)

    await apply_webhook_event(
        db_session, {"event": "hardBounce", "messageId": "abc123@provider"}, now=T0
    )

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.error_message == "Email bounced"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivered_replay_keeps_first_timestamp(db_session):
    """A redelivered event does not move delivered_at."""
    item = await _sent_item(db_session)
    event = {"event": "delivered", "message-id": "<abc123@provider>"}

    first = await apply_webhook_event(db_session, event, now=T0)
    second = await apply_webhook_event(db_session, event, now=T0 + timedelta(hours=1))

    assert first.outcome == WebhookOutcome.UPDATED
    assert second.outcome == WebhookOutcome.UNCHANGED
    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.delivered_at == T0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_open_backfills_delivery(db_session):
    """An open arriving before the delivered event implies delivery."""
    item = await _sent_item(db_session)

    await apply_webhook_event(
        db_session, {"event": "unique_opened", "message-id": "abc123@provider"}, now=T0
    )
    await apply_webhook_event(
        db_session,
        {"event": "delivered", "message-id": "abc123@provider"},
        now=T0 + timedelta(minutes=5),
    )

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.opened_at == T0
    assert refreshed.delivered_at == T0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_click_sets_clicked_at(db_session):
    """Clicks are recorded once."""
    item = await _sent_item(db_session)

    await apply_webhook_event(
        db_session, {"event": "click", "message_id": "abc123@provider"}, now=T0
    )

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.clicked_at == T0
    assert refreshed.status == EmailQueueStatus.SENT


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize(
    "event_type,message",
    [("spam", "Marked as spam"), ("blocked", "Email blocked")],
)
async def test_spam_and_blocked_fail_item(db_session, event_type, message):
    """Spam complaints and blocks fail the item with a fixed message."""
    item = await _sent_item(db_session)

    await apply_webhook_event(
        db_session, {"event": event_type, "message-id": "abc123@provider"}, now=T0
    )

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.status == EmailQueueStatus.FAILED
    assert refreshed.error_message == message


# ---------------------------------------------------------------------------
# Matching and dropping
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_local_part_fallback_match(db_session):
    """A reformatted domain still finds the item by its local part."""
    item = await _sent_item(db_session, "202603021500.xyz789@smtp-relay.mailin.fr")

    result = await apply_webhook_event(
        db_session,
        {"event": "delivered", "message-id": "<202603021500.xyz789@smtp-relay.brevo.com>"},
        now=T0,
    )

    assert result.outcome == WebhookOutcome.UPDATED
    assert result.email_id == str(item.id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_local_part_wildcards_match_literally(db_session):
    """Underscores and percent signs in the local part are not wildcards."""
    item = await _sent_item(db_session, "msg1abc@smtp-relay.mailin.fr")

    for message_id in ("<msg_abc@other>", "<%@other>"):
        result = await apply_webhook_event(
            db_session, {"event": "delivered", "message-id": message_id}, now=T0
        )
        assert result.outcome == WebhookOutcome.NOT_FOUND

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.delivered_at is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_message_id_is_dropped(db_session):
    """Events for ids we never stored change nothing."""
    item = await _sent_item(db_session)

    result = await apply_webhook_event(
        db_session, {"event": "delivered", "message-id": "<nobody@else>"}, now=T0
    )

    assert result.outcome == WebhookOutcome.NOT_FOUND
    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.delivered_at is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_log_only_and_unknown_events(db_session):
    """Request events are only logged; unfamiliar types are reported as such."""
    await _sent_item(db_session)

    results = await ingest_webhook_events(
        db_session,
        [
            {"event": "request", "message-id": "abc123@provider"},
            {"event": "proxy_open", "message-id": "abc123@provider"},
            {"event": "delivered"},
            "not-an-event",
        ],
        now=T0,
    )

    assert [r.outcome for r in results] == [
        WebhookOutcome.LOGGED,
        WebhookOutcome.UNKNOWN_EVENT,
        WebhookOutcome.INVALID,
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_single_event_payload(db_session):
    """A bare event object is ingested like a one-element list."""
    await _sent_item(db_session)

    results = await ingest_webhook_events(
        db_session, {"event": "delivered", "message-id": "abc123@provider"}, now=T0
    )

    assert len(results) == 1
    assert results[0].outcome == WebhookOutcome.UPDATED
