import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.payments_service.models.enums import (
    PaymentEventType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    enum_values,
)
from sqlalchemy import Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Family(Base):
    """Tutor household, only materialized for enrollments of two or more players."""

    __tablename__ = "families"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)

    tutor_name: Mapped[str] = mapped_column(String, nullable=False)
    # Looked up by exact match before insert
    tutor_cedula: Mapped[Optional[str]] = mapped_column(
        String(30), index=True, nullable=True
    )
    tutor_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tutor_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tutor_cedula_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Family {self.name} ({self.tutor_cedula})>"


class PendingPlayer(Base):
    """A child enrollment awaiting admin approval."""

    __tablename__ = "pending_players"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    cedula: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    category: Mapped[str] = mapped_column(
        String(50), default="Pendiente", nullable=False
    )
    cedula_front_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cedula_back_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    family_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("families.id"), index=True, nullable=True
    )

    # Only populated when the player has no family
    tutor_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tutor_cedula: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    tutor_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tutor_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tutor_cedula_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<PendingPlayer {self.full_name}>"


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Null means unlinked; promoted players live outside this service
    player_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, index=True, nullable=True
    )

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    type: Mapped[PaymentType] = mapped_column(
        SAEnum(
            PaymentType,
            name="payment_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentType.ENROLLMENT,
        nullable=False,
    )
    method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            name="payment_method_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    # Gateway operation id (Oper / transactionId). Not unique: the
    # orchestrator itself carries no idempotency key.
    operation_reference: Mapped[Optional[str]] = mapped_column(
        String(128), index=True, nullable=True
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    month_year: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)

    # Append-only narrative; carries the "Pending Player IDs:" marker
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Raw gateway payload ("metadata" is reserved on declarative classes)
    payment_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Payment {self.id} {self.amount} {self.status.value}>"


class PaymentEvent(Base):
    """Ordered, append-only structured log of what happened to a payment."""

    __tablename__ = "payment_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payments.id", ondelete="CASCADE"), index=True, nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[PaymentEventType] = mapped_column(
        SAEnum(
            PaymentEventType,
            name="payment_event_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class EnrollmentDraft(Base):
    """Enrollment form buffered between the checkout redirect and the gateway callback."""

    __tablename__ = "enrollment_drafts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class AcademySetting(Base):
    __tablename__ = "academy_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
