"""Gateway callbacks (no auth: the gateways redirect or post here directly)."""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from libs.common.emails.client import EmailClient, get_email_client
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.payments_service.gateways import (
    PaymentConfirmation,
    normalize_paguelofacil_callback,
    normalize_yappy_callback,
)
from services.payments_service.intake import (
    CallbackOutcome,
    process_payment_confirmation,
)
from services.payments_service.schemas import CallbackResponse
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payment-callbacks"])
logger = get_logger(__name__)


async def _read_body(request: Request) -> dict:
    """Accept JSON or form-encoded bodies; anything unreadable counts as empty."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        raw = await request.body()
        try:
            data = json.loads(raw.decode("utf-8") or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring malformed JSON callback body")
            return {}
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return dict(form)


def _to_response(outcome: CallbackOutcome) -> CallbackResponse:
    return CallbackResponse(
        success=outcome.status in ("enrolled", "duplicate", "reconciled", "unmatched"),
        status=outcome.status,
        approved=outcome.approved,
        payment_id=outcome.payment_id,
        pending_player_ids=outcome.pending_player_ids,
        message=outcome.message,
        redirect_url=outcome.redirect_url,
    )


async def _process(
    db: AsyncSession, email_client: EmailClient, confirmation: PaymentConfirmation
) -> CallbackOutcome:
    logger.info(
        "%s callback: approved=%s operation=%s amount=%s type=%r",
        confirmation.channel.value,
        confirmation.approved,
        confirmation.operation_reference,
        confirmation.amount,
        confirmation.payment_type,
    )
    return await process_payment_confirmation(
        db, confirmation, email_client=email_client
    )


@router.get("/paguelofacil/callback")
async def paguelofacil_return(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    email_client: EmailClient = Depends(get_email_client),
):
    """
    RETURN_URL redirect from Paguelo Fácil. The customer's browser is sent on
    to the enrollment success or failure page.
    """
    params = dict(request.query_params)
    outcome = await _process(db, email_client, normalize_paguelofacil_callback(params))
    return RedirectResponse(outcome.redirect_url, status_code=303)


@router.post("/paguelofacil/callback", response_model=CallbackResponse)
async def paguelofacil_callback(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    email_client: EmailClient = Depends(get_email_client),
):
    """Server-to-server variant of the Paguelo Fácil callback."""
    params = {**dict(request.query_params), **await _read_body(request)}
    outcome = await _process(db, email_client, normalize_paguelofacil_callback(params))
    return _to_response(outcome)


@router.post("/yappy/callback", response_model=CallbackResponse)
async def yappy_callback(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    email_client: EmailClient = Depends(get_email_client),
):
    """Yappy IPN. Our draft token travels in ``metadata.token``."""
    body = await _read_body(request)
    outcome = await _process(db, email_client, normalize_yappy_callback(body))
    return _to_response(outcome)
