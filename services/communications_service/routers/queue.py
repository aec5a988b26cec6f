"""Email queue endpoints: enqueue, on-demand processing, status and requeue."""

import hmac
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from libs.auth.dependencies import require_admin, require_service_role
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from pydantic import ValidationError
from services.communications_service.queue import (
    get_queue_status,
    process_email_queue,
    queue_email,
    requeue_email,
)
from services.communications_service.schemas import (
    EmailQueueItemResponse,
    ProcessQueueResponse,
    QueueEmailRequest,
    QueueEmailResponse,
    QueueStatusResponse,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/email/queue", tags=["email-queue"])
logger = get_logger(__name__)
trigger_security = HTTPBearer()


async def require_queue_trigger(
    token: Annotated[HTTPAuthorizationCredentials, Depends(trigger_security)]
) -> str:
    """
    Accept the scheduler's shared CRON_SECRET or a service-role JWT.

    Returns a label for the caller, used in logs.
    """
    settings = get_settings()
    if settings.CRON_SECRET and hmac.compare_digest(
        token.credentials, settings.CRON_SECRET
    ):
        return "cron"

    try:
        payload = jwt.decode(
            token.credentials,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
        user = AuthUser(**payload)
    except (JWTError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_service:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service role required",
        )
    return user.user_id


@router.post(
    "", response_model=QueueEmailResponse, status_code=status.HTTP_201_CREATED
)
async def enqueue_email(
    payload: QueueEmailRequest,
    _: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Render a template and store it for the next processing run."""
    try:
        item = await queue_email(
            db,
            payload.template_type,
            payload.to_email,
            payload.template_data,
            scheduled_for=payload.scheduled_for,
            metadata=payload.metadata,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        )
    return QueueEmailResponse(
        id=item.id, status=item.status, scheduled_for=item.scheduled_for
    )


@router.post("/process", response_model=ProcessQueueResponse)
async def process_queue(
    caller: str = Depends(require_queue_trigger),
    db: AsyncSession = Depends(get_async_db),
):
    """Send pending emails up to today's remaining allowance."""
    logger.info("Queue processing triggered by %s", caller)
    result = await process_email_queue(db)
    return ProcessQueueResponse(
        daily_limit=result.daily_limit,
        sent_before=result.sent_before,
        remaining_before=result.remaining_before,
        sent=len(result.sent),
        failed=len(result.failed),
        sent_ids=result.sent,
        failed_ids=result.failed,
    )


@router.get("/status", response_model=QueueStatusResponse)
async def queue_status(
    _: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    queue = await get_queue_status(db)
    return QueueStatusResponse(**queue.__dict__)


@router.post("/{item_id}/requeue", response_model=EmailQueueItemResponse)
async def requeue(
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Send a failed email again on the next run."""
    item = await requeue_email(db, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Queued email not found")
    logger.info("Email %s requeue requested by %s", item_id, current_user.user_id)
    return item
