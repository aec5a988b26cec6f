"""Integration tests for the email dispatch queue."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from libs.common.datetime_utils import local_today, utc_now
from libs.common.emails.core import EmailDeliveryError, SentEmail
from services.communications_service.models import EmailQueueItem, EmailQueueStatus
from services.communications_service.queue import (
    get_queue_status,
    process_email_queue,
    queue_batch_emails,
    queue_email,
    requeue_email,
)
from tests.factories import EmailQueueItemFactory


def _sender(message_id: str = "<msg-1@smtp-relay.brevo.com>") -> AsyncMock:
    return AsyncMock(return_value=SentEmail(message_id=message_id.strip("<>")))


async def _count(db, status: EmailQueueStatus) -> int:
    result = await db.execute(
        select(func.count(EmailQueueItem.id)).where(EmailQueueItem.status == status)
    )
    return result.scalar_one()


async def _seed_pending(db, count: int) -> list[EmailQueueItem]:
    items = [
        EmailQueueItemFactory.create(created_at=utc_now() - timedelta(minutes=count - i))
        for i in range(count)
    ]
    db.add_all(items)
    await db.commit()
    return items


# ---------------------------------------------------------------------------
# Queueing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_queue_email_renders_and_stores_pending(db_session):
    """A queued template is stored rendered, pending, and scheduled for today."""
    item = await queue_email(
        db_session,
        "enrollment_confirmation",
        "maria@example.com",
        {"tutor_name": "Maria", "player_names": "Luis", "amount": "80.00"},
        metadata={"payment_id": "p-1", "email_type": "enrollment_confirmation"},
    )

    assert item.status == EmailQueueStatus.PENDING
    assert item.scheduled_for == local_today()
    assert "Maria" in item.html_content
    assert item.text_content
    assert item.email_metadata["payment_id"] == "p-1"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_queue_unknown_template_raises(db_session):
    """Unknown template types are rejected before anything is stored."""
    with pytest.raises(ValueError):
        await queue_email(db_session, "newsletter", "a@example.com", {})
    assert await _count(db_session, EmailQueueStatus.PENDING) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_queue_batch_reports_bad_entries(db_session):
    """A batch keeps the good entries and reports the bad ones."""
    queued, errors = await queue_batch_emails(
        db_session,
        [
            {"template_type": "payment_confirmation", "to_email": "a@example.com"},
            {"template_type": "nope", "to_email": "b@example.com"},
        ],
    )
    assert len(queued) == 1
    assert len(errors) == 1
    assert errors[0].startswith("b@example.com")


# ---------------------------------------------------------------------------
# Daily cap
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_daily_cap_sends_only_remaining_allowance(db_session):
    """Cap 10 with 7 sent today: a run over 20 pending sends 3 and leaves 17."""
    sent_today = [
        EmailQueueItemFactory.create(status=EmailQueueStatus.SENT, sent_at=utc_now())
        for _ in range(7)
    ]
    db_session.add_all(sent_today)
    await db_session.commit()
    await _seed_pending(db_session, 20)

    sender = _sender()
    result = await process_email_queue(db_session, sender=sender, daily_limit=10)

    assert result.sent_before == 7
    assert result.remaining_before == 3
    assert len(result.sent) == 3
    assert sender.await_count == 3
    assert await _count(db_session, EmailQueueStatus.SENT) == 10
    assert await _count(db_session, EmailQueueStatus.PENDING) == 17


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cap_reached_leaves_queue_untouched(db_session):
    """With no allowance left the provider is never called."""
    db_session.add_all(
        [
            EmailQueueItemFactory.create(status=EmailQueueStatus.SENT, sent_at=utc_now())
            for _ in range(2)
        ]
    )
    await db_session.commit()
    await _seed_pending(db_session, 3)

    sender = _sender()
    result = await process_email_queue(db_session, sender=sender, daily_limit=2)

    assert result.processed == 0
    sender.assert_not_awaited()
    assert await _count(db_session, EmailQueueStatus.PENDING) == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_yesterdays_sends_do_not_count(db_session):
    """Only sends within the current local day use up the allowance."""
    db_session.add_all(
        [
            EmailQueueItemFactory.create(
                status=EmailQueueStatus.SENT, sent_at=utc_now() - timedelta(days=2)
            )
            for _ in range(5)
        ]
    )
    await db_session.commit()
    await _seed_pending(db_session, 2)

    result = await process_email_queue(db_session, sender=_sender(), daily_limit=5)

    assert result.sent_before == 0
    assert len(result.sent) == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_oldest_pending_sent_first(db_session):
    """Items leave the queue in creation order."""
    items = await _seed_pending(db_session, 3)

    result = await process_email_queue(db_session, sender=_sender(), daily_limit=2)

    assert result.sent == [items[0].id, items[1].id]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_future_scheduled_items_wait(db_session):
    """Items scheduled for a later day are not sent yet."""
    later = EmailQueueItemFactory.create(scheduled_for=local_today() + timedelta(days=1))
    db_session.add(later)
    await db_session.commit()

    result = await process_email_queue(db_session, sender=_sender(), daily_limit=10)

    assert result.processed == 0


# ---------------------------------------------------------------------------
# Send outcomes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_success_records_message_id(db_session):
    """A sent item carries sent_at and the provider id without angle brackets."""
    (item,) = await _seed_pending(db_session, 1)

    await process_email_queue(
        db_session, sender=_sender("<abc123@provider>"), daily_limit=10
    )

    refreshed = await db_session.get(EmailQueueItem, item.id)
    assert refreshed.status == EmailQueueStatus.SENT
    assert refreshed.sent_at is not None
    assert refreshed.provider_message_id == "abc123@provider"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failure_is_recorded_and_run_continues(db_session):
    """A provider error marks that item failed; the next item is still sent."""
    first, second = await _seed_pending(db_session, 2)
    sender = AsyncMock(
        side_effect=[
            EmailDeliveryError("Brevo API error: 400", status_code=400),
            SentEmail(message_id="ok@provider"),
        ]
    )

    result = await process_email_queue(db_session, sender=sender, daily_limit=10)

    assert result.failed == [first.id]
    assert result.sent == [second.id]
    failed = await db_session.get(EmailQueueItem, first.id)
    assert failed.status == EmailQueueStatus.FAILED
    assert failed.error_message == "Brevo API error: 400"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failed_items_are_not_retried(db_session):
    """A later run does not pick up failed items."""
    await _seed_pending(db_session, 1)
    await process_email_queue(
        db_session,
        sender=AsyncMock(side_effect=RuntimeError("connection reset")),
        daily_limit=10,
    )

    sender = _sender()
    result = await process_email_queue(db_session, sender=sender, daily_limit=10)

    assert result.processed == 0
    sender.assert_not_awaited()
    assert await _count(db_session, EmailQueueStatus.FAILED) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_requeue_returns_failed_item_to_pending(db_session):
    """A human requeue makes the item eligible for the next run."""
    item = EmailQueueItemFactory.create(
        status=EmailQueueStatus.FAILED, error_message="mailbox full"
    )
    db_session.add(item)
    await db_session.commit()

    requeued = await requeue_email(db_session, item.id)

    assert requeued.status == EmailQueueStatus.PENDING
    assert requeued.error_message is None
    result = await process_email_queue(db_session, sender=_sender(), daily_limit=10)
    assert result.sent == [item.id]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_requeue_ignores_sent_items(db_session):
    """Sent items are not sent twice through requeue."""
    item = EmailQueueItemFactory.create(status=EmailQueueStatus.SENT, sent_at=utc_now())
    db_session.add(item)
    await db_session.commit()

    unchanged = await requeue_email(db_session, item.id)

    assert unchanged.status == EmailQueueStatus.SENT


@pytest.mark.asyncio
@pytest.mark.integration
async def test_queue_status_counts(db_session):
    """Status reports counts per state and today's remaining allowance."""
    db_session.add_all(
        [
            EmailQueueItemFactory.create(),
            EmailQueueItemFactory.create(status=EmailQueueStatus.SENT, sent_at=utc_now()),
            EmailQueueItemFactory.create(status=EmailQueueStatus.FAILED),
        ]
    )
    await db_session.commit()

    status = await get_queue_status(db_session, daily_limit=5)

    assert (status.pending, status.sent, status.failed) == (1, 1, 1)
    assert status.sent_today == 1
    assert status.remaining_today == 4
