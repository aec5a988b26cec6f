"""Public enrollment endpoints: buffer the form before redirecting to a gateway."""

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_aware
from libs.common.logging import get_logger
from libs.common.rate_limit import enrollment_limit
from libs.db.session import get_async_db
from services.payments_service.exceptions import EnrollmentValidationError
from services.payments_service.intake import (
    create_enrollment_draft,
    draft_is_active,
    get_enrollment_draft,
)
from services.payments_service.schemas import (
    EnrollmentDraftDetail,
    EnrollmentDraftResponse,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/enrollment", tags=["enrollment"])
settings = get_settings()
logger = get_logger(__name__)


@router.post(
    "/drafts",
    response_model=EnrollmentDraftResponse,
    status_code=status.HTTP_201_CREATED,
)
@enrollment_limit
async def create_draft(
    request: Request,
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Validate and store an enrollment form for the duration of checkout.

    The returned token travels through the gateway (PARM_3 / Yappy metadata)
    and comes back on the callback.
    """
    try:
        draft = await create_enrollment_draft(db, payload)
    except EnrollmentValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.message, "errors": exc.errors},
        )

    return EnrollmentDraftResponse(
        token=draft.token,
        expires_in=settings.ENROLLMENT_DRAFT_TTL_SECONDS,
        expires_at=ensure_aware(draft.expires_at),
    )


@router.get("/drafts/{token}", response_model=EnrollmentDraftDetail)
async def read_draft(
    token: str,
    db: AsyncSession = Depends(get_async_db),
):
    """Return a buffered enrollment form while it is still usable."""
    draft = await get_enrollment_draft(db, token)
    if draft is None:
        raise HTTPException(status_code=404, detail="Enrollment draft not found")
    if not draft_is_active(draft):
        raise HTTPException(
            status_code=status.HTTP_410_GONE, detail="Enrollment draft expired"
        )
    return draft
