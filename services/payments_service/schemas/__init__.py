"""Payments Service schemas package."""

from services.payments_service.schemas.enrollment import (
    EnrollmentForm,
    EnrollmentPlayer,
    normalize_enrollment_payload,
)
from services.payments_service.schemas.payments import (
    CallbackResponse,
    EnrollmentDraftDetail,
    EnrollmentDraftResponse,
    PaymentAuditResponse,
    PaymentEventResponse,
    PaymentLinkRequest,
    PaymentLinkResponse,
    ReconcileRequest,
    ReconcileResponse,
    YappyOrderRequest,
    YappyOrderResponse,
)

__all__ = [
    "CallbackResponse",
    "EnrollmentDraftDetail",
    "EnrollmentDraftResponse",
    "EnrollmentForm",
    "EnrollmentPlayer",
    "PaymentAuditResponse",
    "PaymentEventResponse",
    "PaymentLinkRequest",
    "PaymentLinkResponse",
    "ReconcileRequest",
    "ReconcileResponse",
    "YappyOrderRequest",
    "YappyOrderResponse",
    "normalize_enrollment_payload",
]
