import uuid
from datetime import date, datetime
from typing import Optional

from libs.common.datetime_utils import local_today, utc_now
from libs.db.base import Base, JSONType
from services.communications_service.models.enums import EmailQueueStatus, enum_values
from sqlalchemy import Date, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class EmailQueueItem(Base):
    """
    One outbound email.

    pending -> sent | failed at dispatch time. After ``sent``, the delivery
    timestamps are written only by the provider webhook, each at most once.
    """

    __tablename__ = "email_queue"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    to_email: Mapped[str] = mapped_column(String, index=True, nullable=False)
    subject: Mapped[str] = mapped_column(String, nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[EmailQueueStatus] = mapped_column(
        SAEnum(
            EmailQueueStatus,
            name="email_queue_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=EmailQueueStatus.PENDING,
        nullable=False,
    )
    # Academy-local calendar date on or after which the item may be sent
    scheduled_for: Mapped[date] = mapped_column(
        Date, default=local_today, nullable=False
    )

    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    opened_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    clicked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    bounced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Stored without surrounding angle brackets
    provider_message_id: Mapped[Optional[str]] = mapped_column(
        String, index=True, nullable=True
    )
    # player_id / family_id / payment_id / email_type for correlation
    email_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("ix_email_queue_status_scheduled", "status", "scheduled_for"),
        Index("ix_email_queue_status_sent_at", "status", "sent_at"),
    )

    def __repr__(self):
        return f"<EmailQueueItem {self.id} {self.to_email} {self.status.value}>"
