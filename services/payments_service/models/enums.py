"""Enum definitions for payments service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class PaymentMethod(str, enum.Enum):
    PAGUELOFACIL = "paguelofacil"
    YAPPY = "yappy"
    TRANSFERENCIA = "transferencia"
    ACH = "ach"
    EFECTIVO = "efectivo"
    CHEQUE = "cheque"

    @property
    def label(self) -> str:
        return PAYMENT_METHOD_LABELS[self]


PAYMENT_METHOD_LABELS = {
    PaymentMethod.PAGUELOFACIL: "Paguelo Fácil",
    PaymentMethod.YAPPY: "Yappy Comercial",
    PaymentMethod.TRANSFERENCIA: "Transferencia",
    PaymentMethod.ACH: "ACH",
    PaymentMethod.EFECTIVO: "Efectivo",
    PaymentMethod.CHEQUE: "Cheque",
}


class PaymentType(str, enum.Enum):
    ENROLLMENT = "enrollment"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class PaymentEventType(str, enum.Enum):
    CREATED = "created"
    PENDING_PLAYERS_LINKED = "pending_players_linked"
    NOTE = "note"
