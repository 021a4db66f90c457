"""Small value normalizers shared by the parser, extractor and fingerprinting."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

_WS_RE = re.compile(r"\s+")


def normalize_string(value: Any, fallback: str = "") -> str:
    """Return the stripped string, or *fallback* for non-strings and blanks."""
    if not isinstance(value, str):
        return fallback
    trimmed = value.strip()
    return trimmed if trimmed else fallback


def collapse_whitespace(value: str) -> str:
    return _WS_RE.sub(" ", (value or "").replace("\u200b", " ")).strip()


def normalize_url(value: Any) -> Optional[str]:
    """Return the stripped URL if it is absolute http(s), else None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return None
    return candidate


def normalize_string_list(values: Any, max_items: int = 40) -> list[str]:
    """Lower-case, strip and dedupe *values*, keeping first-seen order."""
    if not isinstance(values, (list, tuple)):
        return []
    unique: dict[str, None] = {}
    for value in values:
        normalized = normalize_string(str(value).lower())
        if not normalized:
            continue
        unique.setdefault(normalized, None)
        if len(unique) >= max_items:
            break
    return list(unique)


def truncate(text: Optional[str], max_chars: int) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}..."


def clamp_confidence(value: Any) -> Optional[float]:
    """Clamp a numeric confidence into [0, 1]; non-numbers become None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(1.0, float(value)))


def sender_display_name(sender: str) -> str:
    """``"Acme Careers <jobs@acme.io>"`` → ``"Acme Careers"``."""
    return normalize_string(sender.split("<")[0].strip().strip('"'), sender)


def first_non_empty(values: Iterable[Optional[str]]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None
