"""Admin endpoints: manual reconciliation and the payment audit trail."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.payments_service.audit import (
    linked_pending_player_ids,
    list_events,
    parse_pending_player_ids,
)
from services.payments_service.models import Payment
from services.payments_service.reconciliation import reconcile_payment
from services.payments_service.schemas import (
    PaymentAuditResponse,
    PaymentEventResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments/admin", tags=["payments-admin"])
logger = get_logger(__name__)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    payload: ReconcileRequest,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Link an unlinked payment to the pending players it paid for.

    Give an operation reference (searched in payment notes; a missing payment
    is recorded when an amount is also given), an amount, or a payment id.
    """
    if not (payload.operation_reference or payload.amount or payload.payment_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="operation_reference, amount or payment_id is required",
        )

    logger.info(
        "Admin %s requested reconciliation (reference=%s, amount=%s, payment=%s)",
        current_user.user_id,
        payload.operation_reference,
        payload.amount,
        payload.payment_id,
    )
    result = await reconcile_payment(
        db,
        operation_reference=payload.operation_reference,
        amount=payload.amount,
        payment_id=payload.payment_id,
        method=payload.method,
    )
    return ReconcileResponse(
        outcome=result.outcome.value,
        payment_id=result.payment_id,
        pending_player_ids=result.pending_player_ids,
        exact=result.exact,
        strategy=result.strategy.value if result.strategy else None,
        payment_created=result.payment_created,
        diagnostic=result.diagnostic,
    )


@router.get("/{payment_id}/audit", response_model=PaymentAuditResponse)
async def payment_audit(
    payment_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Payment notes, linked pending players and the ordered event log.

    Linked players are reported twice: parsed from the notes marker and
    derived from the event log. The two lists always agree.
    """
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    events = await list_events(db, payment.id)
    return PaymentAuditResponse(
        id=payment.id,
        amount=payment.amount,
        type=payment.type,
        method=payment.method,
        status=payment.status,
        operation_reference=payment.operation_reference,
        notes=payment.notes,
        pending_player_ids=parse_pending_player_ids(payment.notes),
        event_pending_player_ids=await linked_pending_player_ids(db, payment.id),
        events=[PaymentEventResponse.model_validate(e) for e in events],
    )
