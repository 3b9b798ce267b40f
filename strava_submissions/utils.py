"""General utility helpers shared across modules."""

from __future__ import annotations

import re

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9_\-]")
_WHITESPACE = re.compile(r"\s+")


def mask_tail(value: str | None, visible: int = 4) -> str:
    """Return ``value`` with all but the trailing ``visible`` chars masked."""

    if not value:
        return ""
    visible = max(0, visible)
    if visible == 0:
        return "*" * len(value)
    hidden_length = max(len(value) - visible, 0)
    if hidden_length == 0:
        return value
    return ("*" * hidden_length) + value[-visible:]


def collapse_whitespace(value: str | None) -> str:
    """Collapse runs of whitespace to single spaces and trim."""

    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def sanitize_for_filename(value: str | None, max_length: int = 64) -> str:
    """Turn an email or name into a short lowercase filename slug."""

    if not value:
        return "unknown"
    slug = str(value).lower().replace("@", "_at_").replace(".", "_")
    slug = _WHITESPACE.sub("_", slug)
    slug = _UNSAFE_FILENAME_CHARS.sub("", slug)[:max_length]
    return slug or "unknown"
