"""Enrollment form schemas.

The public form submits camelCase keys; both camelCase and snake_case are
accepted. ``normalize_enrollment_payload`` runs before validation to repair
the common data-entry slips seen on real submissions.
"""

import re
from datetime import date
from enum import Enum
from typing import Any, Optional

from libs.common.datetime_utils import local_today
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

NAME_PATTERN = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+$")
TUTOR_CEDULA_PATTERN = re.compile(r"^[A-Za-z0-9\s\-]+$")
PLAYER_CEDULA_PATTERN = re.compile(r"^[\d-]+$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-\(\)\.]")

DEFAULT_CATEGORY = "Pendiente"
MIN_CEDULA_LENGTH = 7


class Gender(str, Enum):
    MASCULINO = "Masculino"
    FEMENINO = "Femenino"
    OTRO = "Otro"


class EnrollmentPaymentMethod(str, Enum):
    YAPPY = "Yappy"
    TRANSFERENCIA = "Transferencia"
    COMPROBANTE = "Comprobante"
    EFECTIVO = "Efectivo"
    CHEQUE = "Cheque"
    PAGUELOFACIL = "PagueloFacil"


def _check_name(value: str, label: str) -> str:
    value = value.strip()
    if not NAME_PATTERN.match(value):
        raise ValueError(f"{label} solo puede contener letras y espacios")
    return value


class EnrollmentPlayer(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    birth_date: date
    gender: Gender
    cedula: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    cedula_front_file: Optional[str] = None
    cedula_back_file: Optional[str] = None

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        return _check_name(v, "El nombre")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str) -> str:
        return _check_name(v, "El apellido")

    @field_validator("birth_date", mode="before")
    @classmethod
    def validate_birth_date_format(cls, v: Any) -> Any:
        if isinstance(v, str) and not re.fullmatch(r"\d{4}-\d{2}-\d{2}", v):
            raise ValueError("Fecha inválida. Use el formato YYYY-MM-DD")
        return v

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date_range(cls, v: date) -> date:
        today = local_today()
        try:
            oldest = today.replace(year=today.year - 100)
        except ValueError:
            # Feb 29 on a non-leap target year
            oldest = today.replace(year=today.year - 100, day=28)
        if v > today or v < oldest:
            raise ValueError(
                "La fecha de nacimiento no puede ser futura ni mayor a 100 años"
            )
        return v

    @field_validator("cedula")
    @classmethod
    def validate_cedula(cls, v: Optional[str]) -> Optional[str]:
        if not v or not v.strip():
            return None
        v = v.strip()
        if not PLAYER_CEDULA_PATTERN.match(v):
            raise ValueError("La cédula solo puede contener números y guiones")
        if len(v.replace("-", "")) < MIN_CEDULA_LENGTH:
            raise ValueError("La cédula debe tener al menos 7 dígitos")
        return v


class EnrollmentForm(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tutor_name: str = Field(min_length=2, max_length=100)
    tutor_cedula: str = Field(min_length=5, max_length=30)
    tutor_email: EmailStr
    tutor_phone: str = Field(min_length=7, max_length=15)
    players: list[EnrollmentPlayer] = Field(min_length=1)
    cedula_tutor_file: Optional[str] = None
    payment_method: EnrollmentPaymentMethod
    payment_proof_file: Optional[str] = None

    @field_validator("tutor_name")
    @classmethod
    def validate_tutor_name(cls, v: str) -> str:
        return _check_name(v, "El nombre")

    @field_validator("tutor_cedula")
    @classmethod
    def validate_tutor_cedula(cls, v: str) -> str:
        v = v.strip()
        if not TUTOR_CEDULA_PATTERN.match(v) or len(v) < 5:
            raise ValueError(
                "El documento puede contener letras, números, guiones y espacios"
            )
        return v

    @field_validator("tutor_email", mode="before")
    @classmethod
    def lowercase_email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("tutor_phone")
    @classmethod
    def validate_tutor_phone(cls, v: str) -> str:
        cleaned = PHONE_STRIP_PATTERN.sub("", v)
        if not cleaned.isdigit() or len(cleaned) < 7:
            raise ValueError("El teléfono solo puede contener números (mínimo 7 dígitos)")
        return cleaned

    @property
    def is_family(self) -> bool:
        return len(self.players) >= 2


def _pick(data: dict, camel: str, snake: str) -> tuple[str, Any]:
    """Return whichever spelling of a key the payload uses, camelCase when neither."""
    if snake in data and camel not in data:
        return snake, data[snake]
    return camel, data.get(camel)


def normalize_enrollment_payload(
    raw: dict[str, Any], payment_method: Optional[str] = None
) -> dict[str, Any]:
    """
    Repair a raw enrollment payload before validation.

    - tutor cedula trimmed and left-padded with zeros to 7 characters
    - tutor phone stripped of spaces, dashes, parentheses and dots
    - player cedula trimmed, blank player category defaulted to "Pendiente"
    - payment method filled from the confirming channel when missing
    """
    data = dict(raw)

    key, cedula = _pick(data, "tutorCedula", "tutor_cedula")
    if isinstance(cedula, str):
        cedula = cedula.strip()
        if 0 < len(cedula) < MIN_CEDULA_LENGTH:
            cedula = cedula.zfill(MIN_CEDULA_LENGTH)
        data[key] = cedula

    key, phone = _pick(data, "tutorPhone", "tutor_phone")
    if isinstance(phone, str):
        data[key] = PHONE_STRIP_PATTERN.sub("", phone)

    players = []
    for player in data.get("players") or []:
        if not isinstance(player, dict):
            players.append(player)
            continue
        player = dict(player)
        if isinstance(player.get("cedula"), str):
            player["cedula"] = player["cedula"].strip()
        if not (player.get("category") or "").strip():
            player["category"] = DEFAULT_CATEGORY
        players.append(player)
    data["players"] = players

    key, method = _pick(data, "paymentMethod", "payment_method")
    if not method and payment_method:
        data[key] = payment_method

    return data
