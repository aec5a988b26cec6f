"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    family = FamilyFactory.create(tutor_cedula="8-123-456")
    db_session.add(family)
    await db_session.commit()
"""

import uuid
from datetime import date, datetime, timedelta, timezone

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _minutes_ago(minutes: int) -> datetime:
    return _now() - timedelta(minutes=minutes)


def _unique_email() -> str:
    return f"tutor-{uuid.uuid4().hex[:8]}@test.com"


def enrollment_payload(**overrides) -> dict:
    """A raw enrollment form as the public site submits it (camelCase)."""
    payload = {
        "tutorName": "Maria Gonzalez",
        "tutorCedula": "8-123-456",
        "tutorEmail": "maria@example.com",
        "tutorPhone": "6612-3456",
        "paymentMethod": "Yappy",
        "players": [
            {
                "firstName": "Luis",
                "lastName": "Gonzalez",
                "birthDate": "2014-03-10",
                "gender": "Masculino",
                "cedula": "8-1001-2002",
            },
            {
                "firstName": "Sofia",
                "lastName": "Gonzalez",
                "birthDate": "2016-07-22",
                "gender": "Femenino",
            },
        ],
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Payments Service
# ---------------------------------------------------------------------------


class FamilyFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import Family

        defaults = {
            "id": _uuid(),
            "name": "Familia Test",
            "tutor_name": "Test Tutor",
            "tutor_cedula": f"8-{uuid.uuid4().int % 1000}-{uuid.uuid4().int % 10000}",
            "tutor_email": _unique_email(),
            "tutor_phone": "66123456",
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Family(**defaults)


class PendingPlayerFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import PendingPlayer

        defaults = {
            "id": _uuid(),
            "first_name": "Test",
            "last_name": "Player",
            "birth_date": date(2015, 1, 1),
            "gender": "Masculino",
            "category": "Pendiente",
            "family_id": None,
            "tutor_name": "Test Tutor",
            "tutor_email": _unique_email(),
            "created_at": _now(),
        }
        defaults.update(overrides)
        return PendingPlayer(**defaults)


class PaymentFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import (
            Payment,
            PaymentMethod,
            PaymentStatus,
            PaymentType,
        )

        defaults = {
            "id": _uuid(),
            "amount": 80.0,
            "type": PaymentType.ENROLLMENT,
            "method": PaymentMethod.PAGUELOFACIL,
            "status": PaymentStatus.APPROVED,
            "operation_reference": f"OP-{uuid.uuid4().hex[:8].upper()}",
            "payment_date": date.today(),
            "notes": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return Payment(**defaults)


class EnrollmentDraftFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import EnrollmentDraft

        defaults = {
            "id": _uuid(),
            "token": f"enrollment_{uuid.uuid4().hex}",
            "payload": enrollment_payload(),
            "expires_at": _now() + timedelta(hours=1),
            "consumed_at": None,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return EnrollmentDraft(**defaults)


# ---------------------------------------------------------------------------
# Communications Service
# ---------------------------------------------------------------------------


class EmailQueueItemFactory:
    @staticmethod
    def create(**overrides):
        from libs.common.datetime_utils import local_today
        from services.communications_service.models import (
            EmailQueueItem,
            EmailQueueStatus,
        )

        defaults = {
            "id": _uuid(),
            "template_type": "payment_confirmation",
            "to_email": _unique_email(),
            "subject": "Confirmación de Pago",
            "html_content": "<p>Gracias</p>",
            "text_content": "Gracias",
            "status": EmailQueueStatus.PENDING,
            "scheduled_for": local_today(),
            "email_metadata": {},
            "created_at": _now(),
            "updated_at": _now(),
        }
        defaults.update(overrides)
        return EmailQueueItem(**defaults)
