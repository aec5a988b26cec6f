"""Gateway callback intake.

Flow for an approved enrollment payment:

    callback -> PaymentConfirmation -> duplicate check by operation reference
             -> buffered EnrollmentDraft found?  yes -> orchestrator -> queue email
                                                 no  -> reconciliation matcher

Idempotency lives here, not in the orchestrator: a gateway that retries its
callback finds the payment recorded under the same operation reference and
gets the earlier outcome back.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlencode

from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_aware, utc_now
from libs.common.emails.client import EmailClient, get_email_client
from libs.common.logging import get_logger
from services.payments_service.audit import parse_pending_player_ids
from services.payments_service.enrollment import (
    EnrollmentResult,
    create_enrollment_from_payment,
    validate_enrollment,
)
from services.payments_service.gateways import PaymentConfirmation
from services.payments_service.models import (
    EnrollmentDraft,
    Family,
    Payment,
    PendingPlayer,
)
from services.payments_service.reconciliation import (
    ReconciliationOutcome,
    reconcile_payment,
)
from services.payments_service.schemas.enrollment import EnrollmentForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ENROLLMENT_TYPE = "enrollment"


@dataclass
class CallbackOutcome:
    status: str  # enrolled | duplicate | reconciled | unmatched | declined | ignored | invalid | failed
    approved: bool
    payment_id: Optional[uuid.UUID] = None
    pending_player_ids: list[uuid.UUID] = field(default_factory=list)
    email_queue_id: Optional[str] = None
    message: str = ""
    redirect_url: str = ""


# =========================================================================
# Enrollment drafts
# =========================================================================


def _new_draft_token() -> str:
    return f"enrollment_{secrets.token_urlsafe(18)}"


async def create_enrollment_draft(
    db: AsyncSession, payload: dict[str, Any]
) -> EnrollmentDraft:
    """
    Validate and buffer an enrollment form until the gateway calls back.

    Raises:
        EnrollmentValidationError: the form is invalid
    """
    form = validate_enrollment(payload)
    settings = get_settings()
    draft = EnrollmentDraft(
        token=_new_draft_token(),
        payload=form.model_dump(mode="json", by_alias=True),
        expires_at=utc_now() + timedelta(seconds=settings.ENROLLMENT_DRAFT_TTL_SECONDS),
    )
    db.add(draft)
    await db.commit()
    await db.refresh(draft)
    logger.info("Stored enrollment draft %s (%d player(s))", draft.token, len(form.players))
    return draft


async def get_enrollment_draft(
    db: AsyncSession, token: str
) -> Optional[EnrollmentDraft]:
    result = await db.execute(
        select(EnrollmentDraft).where(EnrollmentDraft.token == token)
    )
    return result.scalar_one_or_none()


def draft_is_active(draft: EnrollmentDraft, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    return draft.consumed_at is None and ensure_aware(draft.expires_at) > now


# =========================================================================
# Callback processing
# =========================================================================


def build_redirect_url(confirmation: PaymentConfirmation) -> str:
    """Where the customer's browser lands after the gateway redirect."""
    base = get_settings().APP_URL.rstrip("/")
    channel = confirmation.channel.value
    if confirmation.approved:
        query = {channel: "success"}
        if confirmation.operation_reference:
            query["oper"] = confirmation.operation_reference
        if confirmation.amount is not None:
            query["monto"] = f"{confirmation.amount:.2f}"
        return f"{base}/enrollment/success?{urlencode(query)}"
    query = {channel: "failed", "razon": confirmation.reason or "Transacción denegada"}
    return f"{base}/enrollment?{urlencode(query)}"


async def find_payment_by_operation_reference(
    db: AsyncSession, operation_reference: str
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.operation_reference == operation_reference)
        .order_by(Payment.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _queue_enrollment_email(
    email_client: EmailClient,
    form: EnrollmentForm,
    confirmation: PaymentConfirmation,
    result: EnrollmentResult,
) -> Optional[str]:
    """Queue the tutor's confirmation. Failure is logged; the enrollment stays."""
    player_names = ", ".join(f"{p.first_name} {p.last_name}" for p in form.players)
    try:
        return await email_client.queue_template(
            template_type="enrollment_confirmation",
            to_email=form.tutor_email,
            template_data={
                "tutor_name": form.tutor_name,
                "player_names": player_names,
                "player_count": len(form.players),
                "amount": f"{confirmation.amount:.2f}",
                "channel": confirmation.channel.label,
                "operation_reference": confirmation.operation_reference or "",
            },
            metadata={
                "email_type": "enrollment_confirmation",
                "payment_id": str(result.payment_id),
                "family_id": str(result.family_id) if result.family_id else None,
                "player_id": str(result.pending_player_ids[0]),
            },
        )
    except Exception as exc:
        logger.error(
            "Could not queue enrollment confirmation for payment %s: %s",
            result.payment_id,
            exc,
        )
        return None


async def _queue_payment_email(
    db: AsyncSession,
    email_client: EmailClient,
    confirmation: PaymentConfirmation,
    payment_id: uuid.UUID,
    pending_player_ids: list[uuid.UUID],
) -> Optional[str]:
    """Thank the tutor of reconciled players, when we know who they are."""
    player = await db.get(PendingPlayer, pending_player_ids[0])
    if player is None:
        return None
    tutor_name, tutor_email = player.tutor_name, player.tutor_email
    if player.family_id:
        family = await db.get(Family, player.family_id)
        if family:
            tutor_name, tutor_email = family.tutor_name, family.tutor_email
    if not tutor_email:
        logger.info("No tutor email for pending player %s; skipping email", player.id)
        return None

    try:
        return await email_client.queue_template(
            template_type="payment_confirmation",
            to_email=tutor_email,
            template_data={
                "tutor_name": tutor_name or "",
                "amount": f"{confirmation.amount:.2f}",
                "channel": confirmation.channel.label,
                "operation_reference": confirmation.operation_reference or "",
            },
            metadata={
                "email_type": "payment_confirmation",
                "payment_id": str(payment_id),
                "family_id": str(player.family_id) if player.family_id else None,
                "player_id": str(player.id),
            },
        )
    except Exception as exc:
        logger.error(
            "Could not queue payment confirmation for payment %s: %s", payment_id, exc
        )
        return None


async def process_payment_confirmation(
    db: AsyncSession,
    confirmation: PaymentConfirmation,
    *,
    email_client: Optional[EmailClient] = None,
) -> CallbackOutcome:
    """Apply a normalized gateway callback to the ledger."""
    email_client = email_client or get_email_client()
    redirect_url = build_redirect_url(confirmation)
    reference = confirmation.operation_reference

    def outcome(status: str, **kwargs) -> CallbackOutcome:
        return CallbackOutcome(
            status=status,
            approved=confirmation.approved,
            redirect_url=redirect_url,
            **kwargs,
        )

    if not confirmation.approved:
        logger.info(
            "%s callback declined (operation=%s, reason=%s)",
            confirmation.channel.value,
            reference,
            confirmation.reason,
        )
        return outcome("declined", message=confirmation.reason or "Transacción denegada")

    if confirmation.payment_type not in ("", ENROLLMENT_TYPE):
        logger.info(
            "Ignoring %s callback of type %r (operation=%s)",
            confirmation.channel.value,
            confirmation.payment_type,
            reference,
        )
        return outcome("ignored", message=f"Unsupported payment type {confirmation.payment_type}")

    if confirmation.amount is None or confirmation.amount <= 0:
        logger.error("Approved %s callback without amount: %s", confirmation.channel.value, confirmation.raw)
        return outcome("invalid", message="Missing amount")

    if reference:
        existing = await find_payment_by_operation_reference(db, reference)
        if existing:
            logger.info(
                "Duplicate callback for operation %s (payment %s)", reference, existing.id
            )
            return outcome(
                "duplicate",
                payment_id=existing.id,
                pending_player_ids=[
                    uuid.UUID(i) for i in parse_pending_player_ids(existing.notes)
                ],
                message="Payment already recorded",
            )

    draft = None
    if confirmation.draft_token:
        draft = await get_enrollment_draft(db, confirmation.draft_token)
        if draft is not None and not draft_is_active(draft):
            logger.warning(
                "Enrollment draft %s expired or already used", confirmation.draft_token
            )
            draft = None

    if draft is not None:
        form = validate_enrollment(draft.payload, confirmation.channel)
        try:
            result = await create_enrollment_from_payment(
                db,
                enrollment_data=form,
                amount=confirmation.amount,
                channel=confirmation.channel,
                operation_reference=reference,
            )
        except Exception as exc:
            logger.error(
                "Enrollment from %s payment %s failed and was rolled back: %s",
                confirmation.channel.value,
                reference,
                exc,
            )
            return outcome("failed", message="Enrollment could not be created")

        draft.consumed_at = utc_now()
        draft.payment_id = result.payment_id
        db.add(draft)
        await db.commit()

        queue_id = await _queue_enrollment_email(email_client, form, confirmation, result)
        return outcome(
            "enrolled",
            payment_id=result.payment_id,
            pending_player_ids=result.pending_player_ids,
            email_queue_id=queue_id,
            message="Enrollment created",
        )

    if not reference:
        logger.error(
            "Approved %s callback has neither enrollment data nor operation reference",
            confirmation.channel.value,
        )
        return outcome("invalid", message="Missing operation reference")

    logger.warning(
        "No enrollment data for %s operation %s; running reconciliation",
        confirmation.channel.value,
        reference,
    )
    recon = await reconcile_payment(
        db,
        operation_reference=reference,
        amount=confirmation.amount,
        method=confirmation.channel,
    )
    if recon.outcome == ReconciliationOutcome.LINKED:
        queue_id = await _queue_payment_email(
            db, email_client, confirmation, recon.payment_id, recon.pending_player_ids
        )
        return outcome(
            "reconciled",
            payment_id=recon.payment_id,
            pending_player_ids=recon.pending_player_ids,
            email_queue_id=queue_id,
            message=recon.diagnostic or "Payment linked by reconciliation",
        )
    return outcome(
        "unmatched",
        payment_id=recon.payment_id,
        message=recon.diagnostic,
    )
