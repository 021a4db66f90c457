"""URL-context enrichment of extracted opportunities."""

from __future__ import annotations

import dataclasses
import json
from typing import Iterable, Optional

import structlog
from pydantic import ValidationError

from job_ingest.config import AppConfig
from job_ingest.email.parser import Link, dedupe_links
from job_ingest.extraction.candidates import EnrichmentResponse, OpportunityCandidate
from job_ingest.extraction.json_schemas import ENRICHMENT_SCHEMA
from job_ingest.extraction.llm import (
    URL_CONTEXT_TOOL,
    GenerationError,
    GenerationProvider,
    generate_with_timeout,
)
from job_ingest.extraction.outcome import Outcome
from job_ingest.normalize import (
    clamp_confidence,
    first_non_empty,
    normalize_string,
    normalize_string_list,
    normalize_url,
    truncate,
)

logger = structlog.get_logger(__name__)

STATUS_SKIPPED = "skipped"
STATUS_SKIPPED_NO_URLS = "skipped_no_urls"
STATUS_ENRICHED = "enriched"
STATUS_ERROR = "error"

MAX_ENRICHED_SKILLS = 60


def candidate_urls(
    candidate: OpportunityCandidate, links: Iterable[Link], max_links: int
) -> list[str]:
    """Apply URL, posting URL, then email links; deduplicated and capped."""
    ordered = [
        Link(url=candidate.apply_url or "", text="apply_url"),
        Link(url=candidate.posting_url or "", text="posting_url"),
        *links,
    ]
    return [link.url for link in dedupe_links(ordered, max_links=max_links)]


def build_enrichment_prompt(candidate: OpportunityCandidate, urls: list[str]) -> str:
    return "\n".join(
        [
            "Given this candidate job opportunity and URL list, use URL context to enrich the role.",
            "Return the best posting_url, apply_url, clean job_title/company/location, "
            "detailed description, and required_skills.",
            "",
            "CANDIDATE_JOB_JSON:",
            json.dumps(candidate.prompt_payload(), indent=2),
            "",
            "URLS:",
            json.dumps(urls, indent=2),
        ]
    )


def merge_enrichment(
    candidate: OpportunityCandidate,
    enriched: EnrichmentResponse,
    config: AppConfig,
    metadata: object = None,
) -> OpportunityCandidate:
    """Overlay non-empty enriched values onto *candidate*."""
    skills = normalize_string_list(
        list(candidate.required_skills) + normalize_string_list(enriched.required_skills, MAX_ENRICHED_SKILLS),
        MAX_ENRICHED_SKILLS,
    )
    enriched_posting = normalize_url(enriched.posting_url)
    enriched_apply = normalize_url(enriched.apply_url)
    confidence = clamp_confidence(enriched.confidence)

    return dataclasses.replace(
        candidate,
        job_title=normalize_string(enriched.job_title, candidate.job_title),
        company=normalize_string(enriched.company, candidate.company),
        location=normalize_string(enriched.location, candidate.location),
        description=truncate(
            normalize_string(enriched.description, candidate.description),
            config.max_description_chars,
        ),
        required_skills=tuple(skills),
        posting_url=enriched_posting or candidate.posting_url,
        apply_url=first_non_empty(
            [enriched_apply, candidate.apply_url, enriched_posting, candidate.posting_url]
        ),
        confidence=confidence if confidence is not None else candidate.confidence,
        enrichment_status=STATUS_ENRICHED,
        enrichment_error=None,
        url_context_metadata=metadata,
    )


def enrich_opportunity(
    candidate: OpportunityCandidate,
    links: Iterable[Link],
    provider: Optional[GenerationProvider],
    config: AppConfig,
) -> Outcome[OpportunityCandidate]:
    """Refine *candidate* using the pages behind its URLs. Never raises."""
    if provider is None:
        return Outcome.ok(dataclasses.replace(candidate, enrichment_status=STATUS_SKIPPED))

    urls = candidate_urls(candidate, links, config.max_links_per_email)
    if not urls:
        return Outcome.ok(dataclasses.replace(candidate, enrichment_status=STATUS_SKIPPED_NO_URLS))

    prompt = build_enrichment_prompt(candidate, urls)
    try:
        result = generate_with_timeout(
            provider,
            prompt,
            ENRICHMENT_SCHEMA,
            tools=[URL_CONTEXT_TOOL],
            timeout_sec=config.llm_timeout_sec,
        )
        enriched = EnrichmentResponse.model_validate(result.parsed)
    except (GenerationError, ValidationError) as exc:
        logger.warning("enrichment_failed", title=candidate.job_title[:80], error=str(exc)[:300])
        failed = dataclasses.replace(
            candidate, enrichment_status=STATUS_ERROR, enrichment_error=str(exc)
        )
        return Outcome.degraded(failed, f"enrichment_error: {exc}")

    logger.debug(
        "enrichment_done",
        title=candidate.job_title[:80],
        urls=len(urls),
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
    )
    return Outcome.ok(merge_enrichment(candidate, enriched, config, result.metadata))
