"""
Message templating for triggered rules

Placeholders look like {field} or {nested.field}. Values come from the event
payload and are HTML-escaped, since payload content is user-controlled and
alert messages are rendered in HTML (email, dashboards).
"""
import json
import re
from typing import Any, Dict

from alert_engine.extractor import extract_field_value, is_missing

PLACEHOLDER_PATTERN = re.compile(r'\{(\w+(?:\.\w+)*)\}', re.ASCII)

HTML_ESCAPES = {
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#x27;',
    '/': '&#x2F;',
}

_ESCAPE_TABLE = str.maketrans(HTML_ESCAPES)


def escape_html(text: str) -> str:
    """Escape & < > " ' / for safe inclusion in HTML."""
    return text.translate(_ESCAPE_TABLE)


def truncate_escaped(text: str, limit: int) -> str:
    """Cut escaped text to at most limit characters without splitting an entity."""
    if len(text) <= limit:
        return text

    cut = text[:limit]
    amp = cut.rfind('&')
    if amp != -1:
        tail = cut[amp:]
        if ';' not in tail and any(entity.startswith(tail) for entity in HTML_ESCAPES.values()):
            cut = cut[:amp]
    return cut


def stringify(value: Any) -> str:
    """Render a payload value the way it reads in a JSON document."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate_message(template: str, data: Dict[str, Any]) -> str:
    """
    Substitute {field} placeholders with escaped payload values.

    Args:
        template: Message or title template
        data: Event payload

    Returns:
        Rendered text. Placeholders whose value is missing or null are kept
        verbatim so the gap is visible in the alert.

    Example:
        interpolate_message('Hello {user.name}', {'user': {'name': '<b>'}})
        # 'Hello &lt;b&gt;'
    """
    if not template:
        return template or ''

    def replace(match: re.Match) -> str:
        value = extract_field_value(data, match.group(1))
        if is_missing(value):
            return match.group(0)
        return escape_html(stringify(value))

    return PLACEHOLDER_PATTERN.sub(replace, template)
