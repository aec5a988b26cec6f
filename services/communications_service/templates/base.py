"""
Shared layout for academy emails.

Every rendered template goes through `wrap_html()` so queued emails share
one header and footer. The academy name, logo and site URL come from
settings. Styles are inline because several webmail clients strip
``<style>`` blocks.

Usage:
    from services.communications_service.templates.base import wrap_html, detail_box

    html = wrap_html(
        title="Matrícula recibida",
        body_html="<p>Hola Ana, ...</p>" + detail_box({...}),
        header_color=HEADER_GREEN,
    )
"""

from html import escape

from libs.common.config import get_settings

HEADER_BLUE = "#1d4ed8"
HEADER_GREEN = "#059669"

_TEXT_STYLE = "font-family: Arial, Helvetica, sans-serif; color: #334155;"


def wrap_html(
    title: str,
    body_html: str,
    subtitle: str = "",
    header_color: str = HEADER_BLUE,
    preheader: str = "",
) -> str:
    """Wrap inner content in the academy layout.

    Args:
        title: Heading shown in the coloured header.
        body_html: Already-formatted HTML for the body cell.
        subtitle: Optional line under the title.
        header_color: Background colour of the header cell.
        preheader: Hidden inbox preview text.
    """
    settings = get_settings()
    academy = escape(settings.DEFAULT_FROM_NAME)
    title = escape(title)

    preheader_html = (
        f'<div style="display:none;max-height:0;overflow:hidden;">{escape(preheader)}</div>'
        if preheader
        else ""
    )
    logo_html = (
        f'<img src="{escape(settings.LOGO_URL)}" alt="{academy}" height="44" '
        'style="display:block;margin-bottom:12px;" />'
        if settings.LOGO_URL
        else ""
    )
    subtitle_html = (
        f'<p style="margin:6px 0 0;font-size:14px;">{escape(subtitle)}</p>'
        if subtitle
        else ""
    )
    site = escape(settings.APP_URL)

    return f"""\
<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1.0" />
<title>{title}</title>
</head>
<body style="margin:0;padding:0;background:#f1f5f9;">
{preheader_html}
<table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background:#f1f5f9;padding:24px 8px;">
<tr><td align="center">
<table role="presentation" width="600" cellpadding="0" cellspacing="0" style="max-width:600px;background:#ffffff;{_TEXT_STYLE}">
<tr><td style="background:{header_color};color:#ffffff;padding:28px;">
{logo_html}<h1 style="margin:0;font-size:22px;">{title}</h1>{subtitle_html}
</td></tr>
<tr><td style="padding:28px;font-size:15px;line-height:1.6;">
{body_html}
</td></tr>
<tr><td style="padding:18px 28px;background:#f8fafc;text-align:center;font-size:12px;color:#94a3b8;">
<strong>{academy}</strong><br/><a href="{site}" style="color:{HEADER_BLUE};">{site}</a>
</td></tr>
</table>
</td></tr>
</table>
</body>
</html>"""


def detail_box(items: dict[str, str], accent_color: str = HEADER_BLUE) -> str:
    """Label/value rows in a bordered box. Empty values are skipped; values are escaped."""
    rows = "".join(
        f'<tr><td style="padding:4px 12px 4px 0;color:#64748b;">{escape(label)}</td>'
        f'<td style="padding:4px 0;font-weight:bold;">{escape(str(value))}</td></tr>'
        for label, value in items.items()
        if value
    )
    return (
        f'<table role="presentation" style="margin:16px 0;padding:12px 16px;'
        f'border-left:4px solid {accent_color};background:#f8fafc;">{rows}</table>'
    )


def sign_off(extra_message: str = "") -> str:
    academy = escape(get_settings().DEFAULT_FROM_NAME)
    closing = f"<p>Saludos,<br/>{academy}</p>"
    if extra_message:
        return f"<p>{escape(extra_message)}</p>{closing}"
    return closing
