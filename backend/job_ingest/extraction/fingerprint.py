"""Stable fingerprints used to deduplicate opportunities within one email."""

from __future__ import annotations

import hashlib

from job_ingest.extraction.candidates import OpportunityCandidate
from job_ingest.normalize import normalize_string, normalize_url

DESCRIPTION_KEY_CHARS = 320


def build_job_fingerprint(message_id: str, candidate: OpportunityCandidate) -> str:
    """SHA-256 over the message id, title, company and best URL.

    When the candidate has no URL, the start of its description stands in.
    ``raw`` and the enrichment provenance fields are ignored.
    """
    locator = (
        normalize_url(candidate.apply_url)
        or normalize_url(candidate.posting_url)
        or normalize_string(candidate.description).lower()[:DESCRIPTION_KEY_CHARS]
    )
    key = "|".join(
        [
            message_id,
            normalize_string(candidate.job_title).lower(),
            normalize_string(candidate.company).lower(),
            locator,
        ]
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
