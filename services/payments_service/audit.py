"""Payment audit trail.

Every fact recorded about a payment is written twice: as a typed
``PaymentEvent`` row (ordered by ``sequence``) and as a human-readable line
appended to ``Payment.notes``. The notes keep the
``Pending Player IDs: <id, id>`` marker that reconciliation and the admin
screens parse, so both views must always name the same set of ids.
"""

import re
import uuid
from typing import Any, Iterable, Optional

from libs.common.logging import get_logger
from services.payments_service.models import Payment, PaymentEvent, PaymentEventType
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PENDING_PLAYER_MARKER = "Pending Player IDs:"
_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
MARKER_PATTERN = re.compile(
    rf"{re.escape(PENDING_PLAYER_MARKER)}\s*({_UUID}(?:\s*,\s*{_UUID})*)"
)


def format_marker(pending_player_ids: Iterable[Any]) -> str:
    return f"{PENDING_PLAYER_MARKER} {', '.join(str(i) for i in pending_player_ids)}"


def has_marker(notes: Optional[str]) -> bool:
    return bool(notes) and PENDING_PLAYER_MARKER in notes


def parse_pending_player_ids(notes: Optional[str]) -> list[str]:
    """All pending-player ids named by every marker in ``notes``, in order."""
    if not notes:
        return []
    ids: list[str] = []
    for match in MARKER_PATTERN.finditer(notes):
        for raw in match.group(1).split(","):
            value = raw.strip().lower()
            if value and value not in ids:
                ids.append(value)
    return ids


def append_note(existing: Optional[str], entry: str) -> str:
    """Append a line to the narrative without touching prior content."""
    if not existing:
        return entry
    return f"{existing}\n{entry}"


async def _next_sequence(db: AsyncSession, payment_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.max(PaymentEvent.sequence)).where(
            PaymentEvent.payment_id == payment_id
        )
    )
    current = result.scalar_one_or_none()
    return (current or 0) + 1


async def record_event(
    db: AsyncSession,
    payment: Payment,
    *,
    event_type: PaymentEventType,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> PaymentEvent:
    """
    Append a typed event and the matching narrative line to ``payment``.

    The caller owns the commit. ``payment`` must already have an id.
    """
    event = PaymentEvent(
        payment_id=payment.id,
        sequence=await _next_sequence(db, payment.id),
        event_type=event_type,
        message=message,
        data=data or {},
    )
    db.add(event)
    payment.notes = append_note(payment.notes, message)
    db.add(payment)
    # Later events in the same unit of work must see this sequence number
    await db.flush()
    return event


async def record_pending_player_link(
    db: AsyncSession,
    payment: Payment,
    pending_player_ids: list[uuid.UUID],
    *,
    narrative: str = "",
    exact: bool = True,
    source: str,
) -> PaymentEvent:
    """Record that ``payment`` pays for ``pending_player_ids``."""
    message = format_marker(pending_player_ids)
    if narrative:
        message = f"{narrative} {message}"
    return await record_event(
        db,
        payment,
        event_type=PaymentEventType.PENDING_PLAYERS_LINKED,
        message=message,
        data={
            "pending_player_ids": [str(i) for i in pending_player_ids],
            "exact": exact,
            "source": source,
        },
    )


async def list_events(db: AsyncSession, payment_id: uuid.UUID) -> list[PaymentEvent]:
    result = await db.execute(
        select(PaymentEvent)
        .where(PaymentEvent.payment_id == payment_id)
        .order_by(PaymentEvent.sequence.asc())
    )
    return list(result.scalars().all())


async def linked_pending_player_ids(
    db: AsyncSession, payment_id: uuid.UUID
) -> list[str]:
    """Derived view: pending-player ids linked through the event log."""
    ids: list[str] = []
    for event in await list_events(db, payment_id):
        if event.event_type != PaymentEventType.PENDING_PLAYERS_LINKED:
            continue
        for value in event.data.get("pending_player_ids", []):
            if value not in ids:
                ids.append(value)
    return ids
