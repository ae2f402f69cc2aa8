"""
The "link not recognized" page.

Served for both unknown and blocked links so visitors cannot tell an
unpublished or expired campaign from a typo.
"""

from html import escape

_COPY = {
    "en": {
        "lang": "en",
        "title": "Link not available",
        "body": "This link is not recognized or is no longer active.",
        "cta": "Go to the home page",
    },
    "es": {
        "lang": "es",
        "title": "Enlace no disponible",
        "body": "Este enlace no es reconocido o ya no está activo.",
        "cta": "Ir a la página principal",
    },
}

_TEMPLATE = """<!DOCTYPE html>
<html lang="{lang}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="robots" content="noindex">
<title>{title}</title>
</head>
<body style="font-family: sans-serif; text-align: center; padding: 48px 16px;">
<h1>{title}</h1>
<p>{body}</p>
<p><a href="{home_url}">{cta}</a></p>
</body>
</html>
"""


def render_error_page(home_url: str, locale: str = "en") -> str:
    copy = _COPY.get(locale, _COPY["en"])
    return _TEMPLATE.format(home_url=escape(home_url, quote=True), **copy)
