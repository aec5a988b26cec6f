"""
Enrollment and payment confirmation templates.

Renderers take the ``template_data`` dict sent by the Payments Service and
return a `RenderedEmail`. Missing keys render as empty strings rather than
failing, so a partially filled payload still produces a sendable email.
"""

from dataclasses import dataclass
from html import escape

from libs.common.config import get_settings
from services.communications_service.templates.base import (
    HEADER_GREEN,
    detail_box,
    sign_off,
    wrap_html,
)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _get(data: dict, key: str, default: str = "") -> str:
    value = data.get(key)
    return default if value is None else str(value)


def render_enrollment_confirmation(data: dict) -> RenderedEmail:
    """Sent once the enrollment saga has created the family, players and payment."""
    academy = get_settings().DEFAULT_FROM_NAME
    tutor_name = _get(data, "tutor_name", "Tutor")
    player_names = _get(data, "player_names")
    amount = _get(data, "amount")
    channel = _get(data, "channel")
    reference = _get(data, "operation_reference")

    subject = f"Confirmación de Matrícula - {academy}"

    text = f"""Hola {tutor_name},

Hemos recibido su pago de matrícula y la inscripción está en revisión.

Jugador(es): {player_names}
Monto: ${amount}
Método de pago: {channel}
Operación: {reference or 'N/A'}

Le contactaremos cuando la categoría de cada jugador sea asignada.

Saludos,
{academy}
"""

    body_html = (
        f"<p>Hola {escape(tutor_name)},</p>"
        "<p>Hemos recibido su pago de matrícula y la inscripción está en revisión.</p>"
        + detail_box(
            {
                "Jugador(es)": player_names,
                "Monto": f"${amount}" if amount else "",
                "Método de pago": channel,
                "Operación": reference,
            },
            accent_color=HEADER_GREEN,
        )
        + sign_off(
            "Le contactaremos cuando la categoría de cada jugador sea asignada."
        )
    )

    html = wrap_html(
        title="Matrícula recibida",
        subtitle="Gracias por inscribirse",
        body_html=body_html,
        header_color=HEADER_GREEN,
        preheader=f"Pago de matrícula de ${amount} recibido",
    )
    return RenderedEmail(subject=subject, html=html, text=text)


def render_payment_confirmation(data: dict) -> RenderedEmail:
    """Sent when an orphan gateway payment is reconciled to pending players."""
    academy = get_settings().DEFAULT_FROM_NAME
    tutor_name = _get(data, "tutor_name", "Tutor")
    amount = _get(data, "amount")
    channel = _get(data, "channel")
    reference = _get(data, "operation_reference")

    subject = f"Confirmación de Pago - {academy}"

    text = f"""Hola {tutor_name},

Gracias por su pago. Lo hemos registrado correctamente.

Monto: ${amount}
Método de pago: {channel}
Operación: {reference or 'N/A'}

Saludos,
{academy}
"""

    body_html = (
        f"<p>Hola {escape(tutor_name)},</p>"
        "<p>Gracias por su pago. Lo hemos registrado correctamente.</p>"
        + detail_box(
            {
                "Monto": f"${amount}" if amount else "",
                "Método de pago": channel,
                "Operación": reference,
            }
        )
        + sign_off()
    )

    html = wrap_html(
        title="Pago recibido",
        body_html=body_html,
        preheader=f"Pago de ${amount} registrado",
    )
    return RenderedEmail(subject=subject, html=html, text=text)
