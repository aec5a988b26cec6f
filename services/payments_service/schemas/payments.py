import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.payments_service.models import (
    PaymentEventType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)


class EnrollmentDraftResponse(BaseModel):
    success: bool = True
    token: str
    expires_in: int
    expires_at: datetime


class EnrollmentDraftDetail(BaseModel):
    token: str
    payload: dict[str, Any]
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CallbackResponse(BaseModel):
    success: bool
    status: str
    approved: bool
    payment_id: Optional[uuid.UUID] = None
    pending_player_ids: list[uuid.UUID] = []
    message: str = ""
    redirect_url: str


class ReconcileRequest(BaseModel):
    operation_reference: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    payment_id: Optional[uuid.UUID] = None
    method: PaymentMethod = PaymentMethod.PAGUELOFACIL


class ReconcileResponse(BaseModel):
    outcome: str
    payment_id: Optional[uuid.UUID] = None
    pending_player_ids: list[uuid.UUID] = []
    exact: bool
    strategy: Optional[str] = None
    payment_created: bool
    diagnostic: str = ""


class PaymentEventResponse(BaseModel):
    sequence: int
    event_type: PaymentEventType
    message: str
    data: dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentAuditResponse(BaseModel):
    id: uuid.UUID
    amount: float
    type: PaymentType
    method: PaymentMethod
    status: PaymentStatus
    operation_reference: Optional[str] = None
    notes: Optional[str] = None
    pending_player_ids: list[str]
    event_pending_player_ids: list[str]
    events: list[PaymentEventResponse]


class PaymentLinkRequest(BaseModel):
    amount: float = Field(..., ge=1.0)
    description: str = Field(..., min_length=1)
    draft_token: str
    return_url: Optional[str] = None


class PaymentLinkResponse(BaseModel):
    success: bool = True
    payment_url: str
    code: Optional[str] = None
    order_id: str


class YappyOrderRequest(BaseModel):
    amount: float = Field(..., gt=0)
    draft_token: str


class YappyOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    transaction_id: str
    token: Optional[str] = None
    document_name: Optional[str] = None
