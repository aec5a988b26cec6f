"""Unit tests for email templates and provider helpers."""

import pytest

from libs.common.emails.core import EmailDeliveryError, normalize_message_id, send_email
from services.communications_service.templates import TEMPLATES, render_template
from services.communications_service.webhooks import verify_signature


@pytest.mark.unit
def test_enrollment_confirmation_renders_details():
    """Tutor name, players, amount and reference reach both bodies."""
    rendered = render_template(
        "enrollment_confirmation",
        {
            "tutor_name": "Maria Gonzalez",
            "player_names": "Luis Gonzalez, Sofia Gonzalez",
            "amount": "260.00",
            "channel": "Yappy Comercial",
            "operation_reference": "TX-9",
        },
    )
    assert rendered.subject.startswith("Confirmación de Matrícula")
    for text in ("Maria Gonzalez", "Luis Gonzalez, Sofia Gonzalez", "$260.00", "TX-9"):
        assert text in rendered.html
        assert text in rendered.text


@pytest.mark.unit
def test_template_values_are_escaped():
    """User-supplied values cannot inject markup."""
    rendered = render_template(
        "payment_confirmation", {"tutor_name": "<script>x</script>", "amount": "80.00"}
    )
    assert "<script>" not in rendered.html
    assert "&lt;script&gt;" in rendered.html


@pytest.mark.unit
def test_missing_values_still_render():
    """A sparse payload produces a sendable email."""
    rendered = render_template("payment_confirmation", {})
    assert rendered.subject
    assert "Tutor" in rendered.text


@pytest.mark.unit
def test_unknown_template_raises():
    """Only registered templates can be queued."""
    assert set(TEMPLATES) == {"enrollment_confirmation", "payment_confirmation"}
    with pytest.raises(ValueError):
        render_template("newsletter", {})


@pytest.mark.unit
def test_normalize_message_id():
    """Whitespace and angle brackets are stripped."""
    assert normalize_message_id(" <abc123@provider> ") == "abc123@provider"
    assert normalize_message_id("abc123@provider") == "abc123@provider"
    assert normalize_message_id(None) == ""


@pytest.mark.unit
def test_verify_signature():
    """Hex HMAC-SHA256 of the raw body, compared exactly."""
    import hashlib
    import hmac

    body = b'{"event":"delivered"}'
    good = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    assert verify_signature(body, good, "s3cret") is True
    assert verify_signature(body, good.upper(), "s3cret") is True
    assert verify_signature(body, "deadbeef", "s3cret") is False
    assert verify_signature(body, None, "s3cret") is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_send_email_without_api_key_fails(monkeypatch):
    """Sending without provider credentials is a delivery error, not a silent skip."""
    from libs.common.config import get_settings

    monkeypatch.setattr(get_settings(), "BREVO_API_KEY", "")
    with pytest.raises(EmailDeliveryError):
        await send_email("tutor@example.com", "Hola", "<p>Hola</p>")
