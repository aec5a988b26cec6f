"""Enrollment Transaction Orchestrator.

Turns a confirmed gateway payment plus the buffered enrollment form into a
family (for batches of two or more players), one pending player per child and
one approved payment. Every write commits on its own, so the run is a saga:
each step records what it created and knows how to undo it. When a step
fails, the steps that ran are compensated in reverse order, each undo is
attempted independently, and the original error is re-raised.

Nothing here deduplicates by operation reference. Callers that can see a
gateway retry (the callback handlers) check for an existing payment first.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from libs.common.datetime_utils import local_today
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.payments_service.audit import record_event, record_pending_player_link
from services.payments_service.exceptions import EnrollmentValidationError
from services.payments_service.models import (
    Family,
    Payment,
    PaymentEvent,
    PaymentEventType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PendingPlayer,
)
from services.payments_service.schemas.enrollment import (
    EnrollmentForm,
    normalize_enrollment_payload,
)
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CHANNEL_FORM_METHOD = {
    PaymentMethod.PAGUELOFACIL: "PagueloFacil",
    PaymentMethod.YAPPY: "Yappy",
    PaymentMethod.TRANSFERENCIA: "Transferencia",
    PaymentMethod.ACH: "Transferencia",
    PaymentMethod.EFECTIVO: "Efectivo",
    PaymentMethod.CHEQUE: "Cheque",
}


@dataclass
class EnrollmentContext:
    """State shared by the saga steps of one orchestrator run."""

    form: EnrollmentForm
    amount: float
    channel: PaymentMethod
    operation_reference: Optional[str] = None
    family_id: Optional[uuid.UUID] = None
    family_created: bool = False
    pending_player_ids: list[uuid.UUID] = field(default_factory=list)
    payment_id: Optional[uuid.UUID] = None


@dataclass
class EnrollmentResult:
    payment_id: uuid.UUID
    pending_player_ids: list[uuid.UUID]
    family_id: Optional[uuid.UUID]
    family_created: bool


class SagaStep:
    """A single committed write plus the action that undoes it."""

    name = "step"

    async def execute(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        raise NotImplementedError

    async def compensate(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        raise NotImplementedError


async def _undo(db: AsyncSession, statement, description: str) -> bool:
    """Run one compensating delete in its own commit. Failures are logged only."""
    try:
        await db.execute(statement)
        await db.commit()
        logger.info("Compensation succeeded: %s", description)
        return True
    except Exception as exc:
        logger.error("Compensation failed: %s: %s", description, exc)
        await db.rollback()
        return False


class FindOrCreateFamilyStep(SagaStep):
    """Reuse the family registered under the tutor's cedula, or create one."""

    name = "family"

    async def execute(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        form = ctx.form
        if form.tutor_cedula:
            lookup = Family.tutor_cedula == form.tutor_cedula
        else:
            lookup = Family.tutor_name == form.tutor_name

        result = await db.execute(
            select(Family).where(lookup).order_by(Family.created_at.asc()).limit(1)
        )
        family = result.scalar_one_or_none()
        if family:
            ctx.family_id = family.id
            logger.info(
                "Reusing family %s for tutor cedula %s", family.id, form.tutor_cedula
            )
            return

        family = Family(
            name=f"Familia {form.tutor_name}",
            tutor_name=form.tutor_name,
            tutor_cedula=form.tutor_cedula,
            tutor_email=form.tutor_email,
            tutor_phone=form.tutor_phone,
            tutor_cedula_url=form.cedula_tutor_file,
        )
        db.add(family)
        await db.commit()
        ctx.family_id = family.id
        ctx.family_created = True
        logger.info("Created family %s for tutor cedula %s", family.id, form.tutor_cedula)

    async def compensate(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        # A reused family belongs to earlier enrollments
        if ctx.family_id and ctx.family_created:
            await _undo(
                db,
                delete(Family).where(Family.id == ctx.family_id),
                f"delete family {ctx.family_id}",
            )


class CreatePendingPlayersStep(SagaStep):
    """Insert one pending player per child, in form order."""

    name = "pending_players"

    async def execute(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        form = ctx.form
        for player in form.players:
            pending = PendingPlayer(
                first_name=player.first_name,
                last_name=player.last_name,
                birth_date=player.birth_date,
                gender=player.gender.value,
                cedula=player.cedula,
                category=player.category,
                cedula_front_url=player.cedula_front_file,
                cedula_back_url=player.cedula_back_file,
                family_id=ctx.family_id,
            )
            if ctx.family_id is None:
                pending.tutor_name = form.tutor_name
                pending.tutor_cedula = form.tutor_cedula
                pending.tutor_email = form.tutor_email
                pending.tutor_phone = form.tutor_phone
                pending.tutor_cedula_url = form.cedula_tutor_file
            db.add(pending)
            await db.commit()
            ctx.pending_player_ids.append(pending.id)
            logger.info("Created pending player %s (%s)", pending.id, pending.full_name)

    async def compensate(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        for player_id in reversed(ctx.pending_player_ids):
            await _undo(
                db,
                delete(PendingPlayer).where(PendingPlayer.id == player_id),
                f"delete pending player {player_id}",
            )


class CreatePaymentStep(SagaStep):
    """One approved payment for the whole batch, carrying the pending-player marker."""

    name = "payment"

    async def execute(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        form = ctx.form
        payment = Payment(
            amount=ctx.amount,
            type=PaymentType.ENROLLMENT,
            method=ctx.channel,
            status=PaymentStatus.APPROVED,
            operation_reference=ctx.operation_reference,
            payment_date=local_today(),
        )
        db.add(payment)
        await db.flush()
        ctx.payment_id = payment.id

        narrative = f"Pago de matrícula procesado con {ctx.channel.label}."
        if ctx.operation_reference:
            narrative += f" Operación: {ctx.operation_reference}."
        narrative += (
            f" Monto: ${ctx.amount:.2f}."
            f" Matrícula para {len(form.players)} jugador(es)."
            f" Tutor: {form.tutor_name} ({form.tutor_email})."
        )
        await record_event(
            db,
            payment,
            event_type=PaymentEventType.CREATED,
            message=narrative,
            data={
                "channel": ctx.channel.value,
                "amount": ctx.amount,
                "operation_reference": ctx.operation_reference,
                "family_id": str(ctx.family_id) if ctx.family_id else None,
            },
        )
        await record_pending_player_link(
            db, payment, ctx.pending_player_ids, source="enrollment"
        )
        await db.commit()
        logger.info(
            "Created payment %s (%.2f via %s) for %d pending player(s)",
            payment.id,
            ctx.amount,
            ctx.channel.value,
            len(ctx.pending_player_ids),
        )

    async def compensate(self, db: AsyncSession, ctx: EnrollmentContext) -> None:
        if ctx.payment_id is None:
            return
        await _undo(
            db,
            delete(PaymentEvent).where(PaymentEvent.payment_id == ctx.payment_id),
            f"delete events of payment {ctx.payment_id}",
        )
        await _undo(
            db,
            delete(Payment).where(Payment.id == ctx.payment_id),
            f"delete payment {ctx.payment_id}",
        )


async def run_saga(
    db: AsyncSession, steps: list[SagaStep], ctx: EnrollmentContext
) -> None:
    """
    Execute ``steps`` in order. On the first failure, roll back the session,
    compensate every step that ran (including the failing one, which may have
    committed part of its work) in reverse order, then re-raise.
    """
    started: list[SagaStep] = []
    for step in steps:
        started.append(step)
        try:
            await step.execute(db, ctx)
        except Exception as exc:
            logger.error("Enrollment step '%s' failed: %s", step.name, exc)
            await db.rollback()
            for done in reversed(started):
                try:
                    await done.compensate(db, ctx)
                except Exception as comp_exc:
                    logger.error(
                        "Compensation for step '%s' raised: %s", done.name, comp_exc
                    )
            raise


def validate_enrollment(
    enrollment_data: Union[EnrollmentForm, dict[str, Any]],
    channel: Optional[PaymentMethod] = None,
) -> EnrollmentForm:
    """Normalize and validate a raw payload. Raises EnrollmentValidationError."""
    if isinstance(enrollment_data, EnrollmentForm):
        return enrollment_data
    payload = normalize_enrollment_payload(
        enrollment_data, CHANNEL_FORM_METHOD.get(channel) if channel else None
    )
    try:
        return EnrollmentForm.model_validate(payload)
    except ValidationError as exc:
        raise EnrollmentValidationError(
            "Invalid enrollment data",
            errors=exc.errors(
                include_url=False, include_context=False, include_input=False
            ),
        ) from exc


async def create_enrollment_from_payment(
    db: AsyncSession,
    *,
    enrollment_data: Union[EnrollmentForm, dict[str, Any]],
    amount: float,
    channel: PaymentMethod,
    operation_reference: Optional[str] = None,
) -> EnrollmentResult:
    """
    Create family, pending players and an approved payment for a confirmed payment.

    Raises:
        EnrollmentValidationError: before any write when the payload is invalid
        Exception: whatever a write raised, after compensation has run
    """
    form = validate_enrollment(enrollment_data, channel)

    ctx = EnrollmentContext(
        form=form,
        amount=float(amount),
        channel=channel,
        operation_reference=operation_reference,
    )
    steps: list[SagaStep] = []
    if form.is_family:
        steps.append(FindOrCreateFamilyStep())
    steps.extend([CreatePendingPlayersStep(), CreatePaymentStep()])

    logger.info(
        "Creating enrollment for %d player(s), %.2f via %s (operation=%s)",
        len(form.players),
        ctx.amount,
        channel.value,
        operation_reference or "-",
    )
    await run_saga(db, steps, ctx)

    return EnrollmentResult(
        payment_id=ctx.payment_id,
        pending_player_ids=list(ctx.pending_player_ids),
        family_id=ctx.family_id,
        family_created=ctx.family_created,
    )
