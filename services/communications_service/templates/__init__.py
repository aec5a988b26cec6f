"""Email templates keyed by template_type."""

from typing import Callable

from services.communications_service.templates.enrollment import (
    RenderedEmail,
    render_enrollment_confirmation,
    render_payment_confirmation,
)

TEMPLATES: dict[str, Callable[[dict], RenderedEmail]] = {
    "enrollment_confirmation": render_enrollment_confirmation,
    "payment_confirmation": render_payment_confirmation,
}


def render_template(template_type: str, data: dict) -> RenderedEmail:
    """Render a registered template. Raises ValueError for unknown types."""
    renderer = TEMPLATES.get(template_type)
    if renderer is None:
        raise ValueError(f"Unknown email template: {template_type}")
    return renderer(data or {})


__all__ = ["RenderedEmail", "TEMPLATES", "render_template"]
