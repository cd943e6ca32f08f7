"""Content sanitization for user-generated input.

Strips markup and dangerous URL schemes from text before it reaches the
tutoring pipeline or is echoed back to browsers.
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

MAX_CHAT_MESSAGE_CHARS = 5000
MAX_TOPIC_CHARS = 200
MAX_FILENAME_CHARS = 255

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_OBJECT_RE = re.compile(r"<object\b[^<]*(?:(?!</object>)<[^<]*)*</object>", re.IGNORECASE)
_EMBED_RE = re.compile(r"<embed[^>]*>", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"""on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE)
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

_SAFE_URL_SCHEMES = {"http", "https", "mailto"}

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}


def sanitize_html(html: str) -> str:
    """Remove script/iframe/object/embed elements, inline handlers and javascript: URLs."""
    for pattern in (_SCRIPT_RE, _IFRAME_RE, _OBJECT_RE, _EMBED_RE, _EVENT_HANDLER_RE, _JS_PROTOCOL_RE):
        html = pattern.sub("", html)
    return html


def sanitize_plain_text(text: str) -> str:
    """Remove all tags and stray angle brackets."""
    text = _TAG_RE.sub("", text)
    return text.replace("<", "").replace(">", "").strip()


def sanitize_markdown(markdown: str) -> str:
    """Keep markdown formatting but drop executable content."""
    for pattern in (_SCRIPT_RE, _IFRAME_RE, _EVENT_HANDLER_RE, _JS_PROTOCOL_RE):
        markdown = pattern.sub("", markdown)
    return markdown


def sanitize_url(url: str) -> str | None:
    """Return the normalized URL if it uses http(s) or mailto, else None."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in _SAFE_URL_SCHEMES:
        return None
    if parts.scheme.lower() in {"http", "https"} and not parts.netloc:
        return None
    return urlunsplit(parts)


def sanitize_filename(filename: str) -> str:
    """Replace unsafe characters and defuse path traversal."""
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
    cleaned = re.sub(r"\.{2,}", ".", cleaned)
    cleaned = cleaned.lstrip(".")
    return cleaned[:MAX_FILENAME_CHARS]


def sanitize_sql_input(value: str) -> str:
    """Strip quote, semicolon and backslash characters.

    Parameterized queries remain the real defence; this is for values that
    end up in free-text search filters.
    """
    return re.sub(r"""['";\\]""", "", value)


def sanitize_json(json_string: str) -> str | None:
    """Round-trip JSON through the parser; None if it does not parse."""
    try:
        return json.dumps(json.loads(json_string), separators=(",", ":"))
    except (json.JSONDecodeError, TypeError):
        return None


def escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


def remove_null_bytes(text: str) -> str:
    return text.replace("\0", "")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize_chat_message(message: str) -> str:
    """Plain text, single-spaced, capped at 5000 characters."""
    sanitized = normalize_whitespace(sanitize_plain_text(remove_null_bytes(message)))
    return sanitized[:MAX_CHAT_MESSAGE_CHARS]


def sanitize_topic_name(topic: str) -> str:
    sanitized = normalize_whitespace(sanitize_plain_text(remove_null_bytes(topic)))
    return sanitized[:MAX_TOPIC_CHARS]


def sanitize_profile_data(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize the free-text profile fields, leaving the rest untouched."""
    sanitized = dict(data)
    for key in ("full_name", "learning_goals"):
        value = data.get(key)
        sanitized[key] = sanitize_plain_text(value) if value else None
    return sanitized
