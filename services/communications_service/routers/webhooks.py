"""Provider delivery webhooks."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.communications_service.schemas import (
    WebhookEventResultResponse,
    WebhookIngestResponse,
)
from services.communications_service.webhooks import (
    ingest_webhook_events,
    verify_signature,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/email/webhooks", tags=["email-webhooks"])
logger = get_logger(__name__)


@router.post("/brevo", response_model=WebhookIngestResponse)
async def brevo_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """
    Record Brevo delivery events (single object or array).

    When BREVO_WEBHOOK_SECRET is configured, ``x-brevo-signature`` must be
    the hex HMAC-SHA256 of the raw body.
    """
    raw_body = await request.body()
    secret = get_settings().BREVO_WEBHOOK_SECRET
    if secret and not verify_signature(
        raw_body, request.headers.get("x-brevo-signature"), secret
    ):
        logger.error("Invalid Brevo webhook signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    try:
        payload = json.loads(raw_body or b"null")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, (dict, list)):
        raise HTTPException(status_code=400, detail="Expected an event or a list")

    results = await ingest_webhook_events(db, payload)
    return WebhookIngestResponse(
        processed=len(results),
        results=[
            WebhookEventResultResponse(
                event=r.event,
                message_id=r.message_id,
                outcome=r.outcome.value,
                email_id=r.email_id,
            )
            for r in results
        ],
    )
