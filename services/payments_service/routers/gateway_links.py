"""Checkout endpoints: open a payment on Paguelo Fácil or Yappy for a buffered enrollment."""

import time

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.rate_limit import payment_limit
from libs.db.session import get_async_db
from services.payments_service.exceptions import GatewayError
from services.payments_service.gateways import PagueloFacilClient, YappyClient
from services.payments_service.intake import draft_is_active, get_enrollment_draft
from services.payments_service.schemas import (
    PaymentLinkRequest,
    PaymentLinkResponse,
    YappyOrderRequest,
    YappyOrderResponse,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payment-links"])
settings = get_settings()
logger = get_logger(__name__)


def get_paguelofacil_client() -> PagueloFacilClient:
    try:
        return PagueloFacilClient()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


def get_yappy_client() -> YappyClient:
    try:
        return YappyClient()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


async def _require_active_draft(db: AsyncSession, token: str) -> None:
    draft = await get_enrollment_draft(db, token)
    if draft is None or not draft_is_active(draft):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Enrollment draft not found or expired",
        )


def _order_id(prefix: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}"


@router.post("/paguelofacil/link", response_model=PaymentLinkResponse)
@payment_limit
async def create_paguelofacil_link(
    request: Request,
    payload: PaymentLinkRequest,
    db: AsyncSession = Depends(get_async_db),
    client: PagueloFacilClient = Depends(get_paguelofacil_client),
):
    """Create a hosted Paguelo Fácil link whose callback carries the draft token."""
    await _require_active_draft(db, payload.draft_token)

    order_id = _order_id("enr-")
    return_url = (
        payload.return_url
        or f"{settings.PAYMENTS_SERVICE_URL.rstrip('/')}/payments/paguelofacil/callback"
    )
    try:
        link = await client.create_payment_link(
            amount=payload.amount,
            description=payload.description,
            order_id=order_id,
            return_url=return_url,
            custom_params={"type": "enrollment", "token": payload.draft_token},
        )
    except GatewayError as exc:
        logger.error("Paguelo Fácil link failed for draft %s: %s", payload.draft_token, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)

    return PaymentLinkResponse(payment_url=link.url, code=link.code, order_id=order_id)


@router.post("/yappy/order", response_model=YappyOrderResponse)
@payment_limit
async def create_yappy_order(
    request: Request,
    payload: YappyOrderRequest,
    db: AsyncSession = Depends(get_async_db),
    client: YappyClient = Depends(get_yappy_client),
):
    """Open a Yappy order for the web payment button."""
    await _require_active_draft(db, payload.draft_token)

    ipn_url = f"{settings.PAYMENTS_SERVICE_URL.rstrip('/')}/payments/yappy/callback"
    try:
        order = await client.create_order(
            order_id=_order_id("E"),
            amount=payload.amount,
            ipn_url=ipn_url,
        )
    except GatewayError as exc:
        logger.error("Yappy order failed for draft %s: %s", payload.draft_token, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)

    return YappyOrderResponse(
        order_id=order.order_id,
        transaction_id=order.transaction_id,
        token=order.token,
        document_name=order.document_name,
    )
