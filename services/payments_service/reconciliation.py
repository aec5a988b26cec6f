"""Payment Reconciliation Matcher.

Links an unlinked payment to the pending player(s) it most likely paid for,
when the gateway callback could not recover the enrollment form. The amount
is the signal: enrollment is charged per child, so a payment should be close
to an integer multiple of the unit price.

Match order:
1. a whole family group whose size times the unit price is within tolerance
2. a single family-less player when one unit price is within tolerance
3. fallback: the ``expected_count`` most recent candidates (inexact, flagged)

A fallback link is always flagged for manual review. "No match" (no unlinked
candidate in the window) is a normal result with a diagnostic, never an
exception.
"""

import enum
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from libs.common.config import get_settings
from libs.common.datetime_utils import local_today, utc_now
from libs.common.logging import get_logger
from services.payments_service.audit import (
    PENDING_PLAYER_MARKER,
    has_marker,
    parse_pending_player_ids,
    record_event,
    record_pending_player_link,
)
from services.payments_service.models import (
    AcademySetting,
    Payment,
    PaymentEventType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PendingPlayer,
)
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PRICE_SETTING_KEY = "price_enrollment"
AMOUNT_EPSILON = 1e-6


class MatchStrategy(str, enum.Enum):
    FAMILY = "family"
    INDIVIDUAL = "individual"
    FALLBACK = "fallback"


class ReconciliationOutcome(str, enum.Enum):
    LINKED = "linked"
    ALREADY_LINKED = "already_linked"
    NO_MATCH = "no_match"
    PAYMENT_NOT_FOUND = "payment_not_found"


@dataclass
class Candidate:
    id: uuid.UUID
    family_id: Optional[uuid.UUID]
    created_at: datetime


@dataclass
class MatchResult:
    pending_player_ids: list[uuid.UUID]
    strategy: MatchStrategy
    expected_count: Optional[int]

    @property
    def exact(self) -> bool:
        return self.strategy != MatchStrategy.FALLBACK


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    payment_id: Optional[uuid.UUID] = None
    pending_player_ids: list[uuid.UUID] = field(default_factory=list)
    exact: bool = False
    strategy: Optional[MatchStrategy] = None
    payment_created: bool = False
    diagnostic: str = ""


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def expected_player_count(amount: Optional[float], unit_price: float) -> Optional[int]:
    """Number of players ``amount`` pays for, or None when it cannot be computed."""
    if amount is None or not unit_price or unit_price <= 0:
        return None
    count = round_half_up(amount / unit_price)
    return count if count > 0 else None


def _within(expected: float, amount: float, tolerance: float) -> bool:
    return abs(expected - amount) <= tolerance + AMOUNT_EPSILON


def select_pending_players(
    candidates: Sequence[Candidate],
    amount: Optional[float],
    unit_price: float,
    tolerance: float = 1.0,
) -> Optional[MatchResult]:
    """
    Pick the pending players ``amount`` most likely paid for.

    ``candidates`` must already exclude players linked to another payment.
    Returned ids are in creation order.
    """
    if not candidates:
        return None

    newest_first = sorted(candidates, key=lambda c: c.created_at, reverse=True)
    expected_count = expected_player_count(amount, unit_price)

    if amount is not None:
        groups: "OrderedDict[uuid.UUID, list[Candidate]]" = OrderedDict()
        for candidate in newest_first:
            if candidate.family_id is not None:
                groups.setdefault(candidate.family_id, []).append(candidate)

        for members in groups.values():
            if _within(len(members) * unit_price, amount, tolerance):
                ordered = sorted(members, key=lambda c: c.created_at)
                return MatchResult(
                    pending_player_ids=[c.id for c in ordered],
                    strategy=MatchStrategy.FAMILY,
                    expected_count=expected_count,
                )

        if _within(unit_price, amount, tolerance):
            for candidate in newest_first:
                if candidate.family_id is None:
                    return MatchResult(
                        pending_player_ids=[candidate.id],
                        strategy=MatchStrategy.INDIVIDUAL,
                        expected_count=expected_count,
                    )

    # Fewer candidates than expected links every candidate there is
    chosen = newest_first[: expected_count or 1]
    return MatchResult(
        pending_player_ids=[c.id for c in sorted(chosen, key=lambda c: c.created_at)],
        strategy=MatchStrategy.FALLBACK,
        expected_count=expected_count,
    )


async def get_enrollment_price(db: AsyncSession) -> float:
    """Per-child enrollment fee: stored academy setting, else ENROLLMENT_PRICE."""
    result = await db.execute(
        select(AcademySetting.value).where(AcademySetting.key == PRICE_SETTING_KEY)
    )
    stored = result.scalar_one_or_none()
    if stored:
        try:
            return float(stored)
        except ValueError:
            logger.warning("Ignoring non-numeric %s setting: %r", PRICE_SETTING_KEY, stored)
    return get_settings().ENROLLMENT_PRICE


async def already_linked_pending_player_ids(db: AsyncSession) -> set[str]:
    """Every pending-player id named by a marker on any payment."""
    result = await db.execute(
        select(Payment.notes).where(Payment.notes.ilike(f"%{PENDING_PLAYER_MARKER}%"))
    )
    linked: set[str] = set()
    for notes in result.scalars().all():
        linked.update(parse_pending_player_ids(notes))
    return linked


async def find_payment_by_reference(
    db: AsyncSession, operation_reference: str
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(
            or_(
                Payment.operation_reference == operation_reference,
                Payment.notes.icontains(operation_reference, autoescape=True),
            )
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _find_unlinked_by_amount(
    db: AsyncSession, amount: float
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(
            Payment.player_id.is_(None),
            Payment.status == PaymentStatus.APPROVED,
            Payment.amount.between(amount - 0.005, amount + 0.005),
        )
        .order_by(Payment.created_at.desc())
        .limit(20)
    )
    for payment in result.scalars().all():
        if not has_marker(payment.notes):
            return payment
    return None


async def _synthesize_payment(
    db: AsyncSession,
    *,
    operation_reference: str,
    amount: float,
    method: PaymentMethod,
) -> Payment:
    """The gateway's confirmation is ground truth: record the missing payment."""
    payment = Payment(
        amount=amount,
        type=PaymentType.ENROLLMENT,
        method=method,
        status=PaymentStatus.APPROVED,
        operation_reference=operation_reference,
        payment_date=local_today(),
    )
    db.add(payment)
    await db.flush()
    await record_event(
        db,
        payment,
        event_type=PaymentEventType.CREATED,
        message=(
            f"Pago de matrícula procesado con {method.label}. "
            f"Operación: {operation_reference}. Monto: ${amount:.2f}. "
            "Registrado por conciliación."
        ),
        data={
            "channel": method.value,
            "amount": amount,
            "operation_reference": operation_reference,
            "source": "reconciliation",
        },
    )
    await db.commit()
    logger.info(
        "Synthesized payment %s for operation %s (%.2f)",
        payment.id,
        operation_reference,
        amount,
    )
    return payment


async def _load_candidates(db: AsyncSession, now: datetime) -> list[Candidate]:
    settings = get_settings()
    since = now - timedelta(minutes=settings.RECONCILIATION_WINDOW_MINUTES)
    result = await db.execute(
        select(PendingPlayer.id, PendingPlayer.family_id, PendingPlayer.created_at)
        .where(PendingPlayer.created_at >= since)
        .order_by(PendingPlayer.created_at.desc())
        .limit(settings.RECONCILIATION_MAX_CANDIDATES)
    )
    return [
        Candidate(id=row.id, family_id=row.family_id, created_at=row.created_at)
        for row in result.all()
    ]


async def reconcile_payment(
    db: AsyncSession,
    *,
    operation_reference: Optional[str] = None,
    amount: Optional[float] = None,
    payment_id: Optional[uuid.UUID] = None,
    method: PaymentMethod = PaymentMethod.PAGUELOFACIL,
    now: Optional[datetime] = None,
) -> ReconciliationResult:
    """
    Locate (or record) a payment and link it to the pending players it paid for.

    At least one of ``operation_reference``, ``amount`` or ``payment_id`` is required.
    """
    if not (operation_reference or amount is not None or payment_id):
        raise ValueError("operation_reference, amount or payment_id is required")

    settings = get_settings()
    now = now or utc_now()
    payment_created = False

    if payment_id:
        payment = await db.get(Payment, payment_id)
    elif operation_reference:
        payment = await find_payment_by_reference(db, operation_reference)
        if payment is None and amount is not None:
            payment = await _synthesize_payment(
                db,
                operation_reference=operation_reference,
                amount=amount,
                method=method,
            )
            payment_created = True
    else:
        payment = await _find_unlinked_by_amount(db, amount)

    if payment is None:
        diagnostic = (
            f"No payment found (reference={operation_reference}, amount={amount})"
        )
        logger.info("Reconciliation: %s", diagnostic)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.PAYMENT_NOT_FOUND, diagnostic=diagnostic
        )

    if has_marker(payment.notes):
        return ReconciliationResult(
            outcome=ReconciliationOutcome.ALREADY_LINKED,
            payment_id=payment.id,
            pending_player_ids=[
                uuid.UUID(i) for i in parse_pending_player_ids(payment.notes)
            ],
            exact=True,
            payment_created=payment_created,
            diagnostic="Payment already linked to pending players",
        )

    match_amount = amount if amount is not None else payment.amount
    unit_price = await get_enrollment_price(db)
    linked = await already_linked_pending_player_ids(db)
    candidates = [
        c for c in await _load_candidates(db, now) if str(c.id).lower() not in linked
    ]

    match = select_pending_players(
        candidates,
        match_amount,
        unit_price,
        settings.RECONCILIATION_AMOUNT_TOLERANCE,
    )
    if match is None:
        diagnostic = (
            f"No safe match for {match_amount:.2f} among {len(candidates)} "
            f"unlinked candidate(s) at {unit_price:.2f} per player"
        )
        logger.info("Reconciliation of payment %s: %s", payment.id, diagnostic)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.NO_MATCH,
            payment_id=payment.id,
            payment_created=payment_created,
            diagnostic=diagnostic,
        )

    if match.exact:
        narrative = f"Vinculado por conciliación ({match.strategy.value})."
    else:
        narrative = (
            "Vinculación aproximada por conciliación: ningún grupo coincide con el "
            f"monto ${match_amount:.2f}; se tomaron los {len(match.pending_player_ids)} "
            "jugadores más recientes. Revisar manualmente."
        )
        logger.warning(
            "Inexact reconciliation for payment %s: %s",
            payment.id,
            [str(i) for i in match.pending_player_ids],
        )

    await record_pending_player_link(
        db,
        payment,
        match.pending_player_ids,
        narrative=narrative,
        exact=match.exact,
        source="reconciliation",
    )
    await db.commit()
    logger.info(
        "Linked payment %s to pending players %s (%s)",
        payment.id,
        [str(i) for i in match.pending_player_ids],
        match.strategy.value,
        extra={
            "extra_fields": {
                "payment_id": str(payment.id),
                "operation_reference": payment.operation_reference,
                "exact": match.exact,
            }
        },
    )

    return ReconciliationResult(
        outcome=ReconciliationOutcome.LINKED,
        payment_id=payment.id,
        pending_player_ids=list(match.pending_player_ids),
        exact=match.exact,
        strategy=match.strategy,
        payment_created=payment_created,
        diagnostic="" if match.exact else "Inexact match, review manually",
    )
