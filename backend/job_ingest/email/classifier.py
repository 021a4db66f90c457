"""Keyword-based relevance filter deciding whether an email is job related."""

from __future__ import annotations

from typing import Iterable

import structlog

from job_ingest.email.parser import NormalizedEmail

logger = structlog.get_logger(__name__)

# Used when an identity has no keywords configured
DEFAULT_KEYWORDS: list[str] = ["indeed", "linkedin", "glassdoor"]

SCOPE_SUBJECT = "subject"
SCOPE_SUBJECT_OR_BODY = "subject_or_body"


def normalize_keywords(keywords: Iterable[object] | None) -> list[str]:
    """Trim, lower-case and dedupe keywords; fall back to ``DEFAULT_KEYWORDS``."""
    cleaned: dict[str, None] = {}
    for keyword in keywords or []:
        value = str(keyword).strip().lower()
        if value:
            cleaned.setdefault(value, None)
    return list(cleaned) or list(DEFAULT_KEYWORDS)


def is_relevant(email: NormalizedEmail, keywords: list[str], match_scope: str) -> bool:
    """Return True if any keyword occurs in the subject (or body, when allowed).

    Args:
        email: The normalized message.
        keywords: Lower-cased keywords, see :func:`normalize_keywords`.
        match_scope: ``"subject"`` or ``"subject_or_body"``. The body is only
            scanned when the subject check fails.
    """
    subject = email.subject.lower()
    if any(kw in subject for kw in keywords):
        logger.debug("relevance_subject_match", subject=email.subject[:80])
        return True
    if match_scope != SCOPE_SUBJECT_OR_BODY:
        return False

    body = email.text_body.lower()
    matched = any(kw in body for kw in keywords)
    if matched:
        logger.debug("relevance_body_match", subject=email.subject[:80])
    return matched
