import uuid
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.communications_service.models import EmailQueueStatus


class QueueEmailRequest(BaseModel):
    template_type: str
    to_email: EmailStr
    template_data: dict[str, Any] = Field(default_factory=dict)
    metadata: Optional[dict[str, Any]] = None
    scheduled_for: Optional[date] = None


class QueueEmailResponse(BaseModel):
    id: uuid.UUID
    status: EmailQueueStatus
    scheduled_for: date


class EmailQueueItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    template_type: Optional[str] = None
    to_email: str
    subject: str
    status: EmailQueueStatus
    scheduled_for: date
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    bounced_at: Optional[datetime] = None
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime


class ProcessQueueResponse(BaseModel):
    daily_limit: int
    sent_before: int
    remaining_before: int
    sent: int
    failed: int
    sent_ids: list[uuid.UUID] = Field(default_factory=list)
    failed_ids: list[uuid.UUID] = Field(default_factory=list)


class QueueStatusResponse(BaseModel):
    pending: int
    sent: int
    failed: int
    sent_today: int
    daily_limit: int
    remaining_today: int


class WebhookEventResultResponse(BaseModel):
    event: str
    message_id: str
    outcome: str
    email_id: Optional[str] = None


class WebhookIngestResponse(BaseModel):
    success: bool = True
    processed: int
    results: list[WebhookEventResultResponse]
