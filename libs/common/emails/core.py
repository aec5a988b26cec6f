"""
Core email sending through the Brevo transactional API.

The queue needs the provider-assigned message id to correlate later
delivery webhooks, so sending goes through the HTTP API rather than SMTP.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class EmailDeliveryError(Exception):
    """The provider rejected the message or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SentEmail:
    """Provider acknowledgement for a single accepted message."""

    message_id: str


def normalize_message_id(raw: Optional[str]) -> str:
    """Strip whitespace and surrounding angle brackets from a provider id."""
    if not raw:
        return ""
    return raw.strip().lstrip("<").rstrip(">").strip()


async def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    body: Optional[str] = None,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> SentEmail:
    """
    Send an email using the Brevo ``/smtp/email`` endpoint.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_body: HTML body
        body: Optional plain text alternative
        from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
        from_name: Sender name (defaults to DEFAULT_FROM_NAME)
        tags: Optional Brevo tags for dashboard filtering

    Returns:
        SentEmail carrying the normalized provider message id

    Raises:
        EmailDeliveryError: if the API key is missing, the request fails,
            or the provider answers with a non-2xx status
    """
    settings = get_settings()

    if not settings.BREVO_API_KEY:
        logger.warning("BREVO_API_KEY not configured - email to %s not sent", to_email)
        raise EmailDeliveryError("BREVO_API_KEY not configured")

    payload: dict = {
        "sender": {
            "email": from_email or settings.DEFAULT_FROM_EMAIL,
            "name": from_name or settings.DEFAULT_FROM_NAME,
        },
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html_body,
    }
    if body:
        payload["textContent"] = body
    if tags:
        payload["tags"] = tags

    headers = {
        "api-key": settings.BREVO_API_KEY,
        "accept": "application/json",
        "content-type": "application/json",
    }

    logger.info("Sending email to %s: %s", to_email, subject)
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                f"{settings.BREVO_API_URL}/smtp/email",
                json=payload,
                headers=headers,
            )
    except httpx.RequestError as e:
        logger.error("Brevo request failed for %s: %s", to_email, e)
        raise EmailDeliveryError(f"Brevo request failed: {e}") from e

    if not response.is_success:
        try:
            detail = response.json().get("message") or response.text
        except ValueError:
            detail = response.text
        logger.error("Brevo API error %s for %s: %s", response.status_code, to_email, detail)
        raise EmailDeliveryError(
            f"Brevo API error: {detail}", status_code=response.status_code
        )

    message_id = normalize_message_id(response.json().get("messageId"))
    logger.info("Email sent to %s (message_id=%s)", to_email, message_id)
    return SentEmail(message_id=message_id)
