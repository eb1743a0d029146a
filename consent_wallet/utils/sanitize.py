"""
Markup Sanitization Utilities

Cleans markup captured from third-party pages before it is stored or shown.
"""

import html

import bleach

from consent_wallet.constants.heuristics import DETECTED_ELEMENT_MAX_LENGTH

# Tags kept in a detected element snapshot; everything else is stripped
SNAPSHOT_TAGS = [
    'a', 'button', 'div', 'span', 'p', 'form', 'input', 'label',
    'section', 'aside', 'footer', 'header', 'strong', 'em', 'br',
]

SNAPSHOT_ATTRS = {
    '*': ['class', 'id', 'role'],
    'a': ['href', 'title'],
    'input': ['type', 'value', 'name'],
}

ALLOWED_PROTOCOLS = ['http', 'https', 'mailto']


def sanitize_snapshot(markup: str | None, max_length: int = DETECTED_ELEMENT_MAX_LENGTH) -> str:
    """
    Truncate and clean the markup of a detected element.

    Scripts, event handler attributes and unknown tags are removed; the
    result is at most ``max_length`` characters.
    """
    if not markup:
        return ""

    cleaned = bleach.clean(
        markup[:max_length],
        tags=SNAPSHOT_TAGS,
        attributes=SNAPSHOT_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )
    return cleaned[:max_length]


def strip_tags(text: str | None) -> str:
    """Remove all markup from text shown in notifications (plain text, not HTML)."""
    if text is None:
        return ""
    # bleach entity-escapes the text it keeps
    return html.unescape(bleach.clean(text, tags=[], strip=True))
