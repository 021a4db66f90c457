"""Opportunity extraction: one email in, one or more job candidates out.

The extractor never raises. Whenever the model is disabled, fails, or returns
nothing usable, it falls back to a single candidate built from the email
itself so that every relevant email yields at least one opportunity.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from job_ingest.config import AppConfig
from job_ingest.email.parser import NormalizedEmail, html_to_text
from job_ingest.extraction.candidates import (
    ExtractedOpportunity,
    ExtractionResponse,
    OpportunityCandidate,
)
from job_ingest.extraction.json_schemas import EXTRACTION_SCHEMA
from job_ingest.extraction.llm import GenerationError, GenerationProvider, generate_with_timeout
from job_ingest.extraction.outcome import Outcome
from job_ingest.normalize import (
    clamp_confidence,
    collapse_whitespace,
    normalize_string,
    normalize_string_list,
    normalize_url,
    sender_display_name,
    truncate,
)

logger = structlog.get_logger(__name__)

FALLBACK_CONFIDENCE = 0.35
MAX_EXTRACTED_SKILLS = 50

_INSTRUCTIONS = (
    "Extract ALL distinct job opportunities from this email payload.\n"
    "One email can contain multiple jobs. Return one array item per distinct job.\n"
    "Prefer explicit apply links, then posting links. Keep skill names concise.\n"
    "If a field is missing, omit it or return an empty string."
)


def build_extraction_prompt(email: NormalizedEmail, config: AppConfig) -> str:
    payload = {
        "subject": email.subject,
        "from": email.sender,
        "received_at": email.received_at.isoformat() if email.received_at else None,
        "text_body": truncate(email.text_body, config.max_email_text_chars),
        "html_body_text": truncate(
            collapse_whitespace(html_to_text(email.html_body)) if email.html_body else "",
            config.max_email_text_chars,
        ),
        "links": [
            {"url": link.url, "text": link.text}
            for link in email.links[: config.max_links_per_email]
        ],
    }
    return f"{_INSTRUCTIONS}\n\nEMAIL_PAYLOAD_JSON:\n{json.dumps(payload, indent=2)}"


def build_fallback_candidate(
    email: NormalizedEmail, config: AppConfig, **raw_extra: Any
) -> OpportunityCandidate:
    """Single low-confidence candidate built straight from the email."""
    first_link = email.links[0].url if email.links else None
    raw: dict[str, Any] = {"fallback": True, "email_id": email.message_id}
    raw.update(raw_extra)
    return OpportunityCandidate(
        job_title=email.subject,
        company=sender_display_name(email.sender),
        location="Unknown",
        description=truncate(email.text_body or email.subject, config.max_description_chars),
        posting_url=first_link,
        apply_url=first_link,
        confidence=FALLBACK_CONFIDENCE,
        raw=raw,
    )


def _is_usable(item: ExtractedOpportunity) -> bool:
    return bool(
        normalize_string(item.job_title)
        or normalize_string(item.description)
        or normalize_url(item.apply_url)
        or normalize_url(item.posting_url)
    )


def _to_candidate(
    item: ExtractedOpportunity, email: NormalizedEmail, config: AppConfig
) -> OpportunityCandidate:
    return OpportunityCandidate(
        job_title=normalize_string(item.job_title, email.subject),
        company=normalize_string(item.company, sender_display_name(email.sender)),
        location=normalize_string(item.location, "Unknown"),
        description=truncate(
            normalize_string(item.description, email.text_body or email.subject),
            config.max_description_chars,
        ),
        required_skills=tuple(normalize_string_list(item.required_skills, MAX_EXTRACTED_SKILLS)),
        posting_url=normalize_url(item.posting_url),
        apply_url=normalize_url(item.apply_url),
        confidence=clamp_confidence(item.confidence),
        raw=item.model_dump(),
    )


def extract_opportunities(
    email: NormalizedEmail,
    provider: Optional[GenerationProvider],
    config: AppConfig,
) -> Outcome[list[OpportunityCandidate]]:
    """Ask the model for every opportunity in *email*; degrade to a fallback."""
    if provider is None:
        fallback = build_fallback_candidate(email, config, reason="llm_disabled")
        return Outcome.degraded([fallback], "llm_disabled")

    prompt = build_extraction_prompt(email, config)
    try:
        result = generate_with_timeout(
            provider, prompt, EXTRACTION_SCHEMA, timeout_sec=config.llm_timeout_sec
        )
        response = ExtractionResponse.model_validate(result.parsed)
    except (GenerationError, ValidationError) as exc:
        logger.warning(
            "extraction_failed", message_id=email.message_id, error=str(exc)[:300]
        )
        fallback = build_fallback_candidate(email, config, extraction_error=str(exc))
        return Outcome.degraded([fallback], f"extraction_error: {exc}")

    candidates = [_to_candidate(item, email, config) for item in response.opportunities if _is_usable(item)]
    if not candidates:
        logger.info("extraction_empty", message_id=email.message_id)
        fallback = build_fallback_candidate(email, config, extraction_response=result.text)
        return Outcome.degraded([fallback], "no_opportunities_extracted")

    logger.info(
        "extraction_done",
        message_id=email.message_id,
        opportunities=len(candidates),
        model=provider.model,
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
    )
    return Outcome.ok(candidates)
