"""Payments Service models package."""

from services.payments_service.models.core import (
    AcademySetting,
    EnrollmentDraft,
    Family,
    Payment,
    PaymentEvent,
    PendingPlayer,
)
from services.payments_service.models.enums import (
    PaymentEventType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)

__all__ = [
    "AcademySetting",
    "EnrollmentDraft",
    "Family",
    "Payment",
    "PaymentEvent",
    "PaymentEventType",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "PendingPlayer",
]
