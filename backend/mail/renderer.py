"""Rendering for renewal reminder emails."""
from __future__ import annotations

import re
from datetime import datetime
from html import escape
from typing import Any, Dict, Tuple

_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")

_SUBJECT = "Your subscription ends in {{ days_left }} days"
_TEXT_BODY = (
    "Your subscription covering {{ seats }} seat(s) ends on {{ ends_on }}.\n"
    "Renew before that date to keep your athletes active: {{ renewal_url }}\n"
)
_HTML_BODY = (
    "<p>Your subscription covering {{ seats }} seat(s) ends on <strong>{{ ends_on }}</strong>.</p>"
    '<p><a href="{{ renewal_url }}">Renew now</a> to keep your athletes active.</p>'
)


def _render(source: str, context: Dict[str, Any], *, html: bool = False) -> str:
    def _replace(match: re.Match[str]) -> str:
        value = context.get(match.group(1), "")
        text = "" if value is None else str(value)
        return escape(text) if html else text

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def render_renewal_reminder(
    *,
    days_left: int,
    seats: int,
    ends_at: datetime,
    renewal_url: str,
) -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for a renewal reminder."""

    context = {
        "days_left": days_left,
        "seats": seats,
        "ends_on": ends_at.date().isoformat(),
        "renewal_url": renewal_url,
    }
    subject = _render(_SUBJECT, context)
    text_body = _render(_TEXT_BODY, context)
    html_body = _render(_HTML_BODY, context, html=True)
    return subject.strip(), text_body.strip(), html_body.strip()


__all__ = ["render_renewal_reminder"]
