"""Opportunity candidate types and the pydantic models validating LLM output."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


@dataclass(frozen=True)
class OpportunityCandidate:
    """A job opportunity found in an email, before it is persisted."""

    job_title: str
    company: str
    location: str
    description: str
    required_skills: tuple[str, ...] = ()
    posting_url: Optional[str] = None
    apply_url: Optional[str] = None
    confidence: Optional[float] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)
    enrichment_status: Optional[str] = None
    enrichment_error: Optional[str] = None
    url_context_metadata: Optional[Any] = None

    def prompt_payload(self) -> dict[str, Any]:
        """JSON-safe view sent back to the model during enrichment."""
        data = asdict(self)
        data["required_skills"] = list(self.required_skills)
        for key in ("raw", "enrichment_status", "enrichment_error", "url_context_metadata"):
            data.pop(key)
        return data


# ── LLM response models ───────────────────────────────────

_TEXT_FIELDS = ("job_title", "company", "location", "description", "posting_url", "apply_url")


class ExtractedOpportunity(BaseModel):
    """One opportunity as returned by the model; every field is optional."""

    model_config = ConfigDict(extra="allow")

    job_title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    required_skills: list[Any] = Field(default_factory=list)
    posting_url: Optional[str] = None
    apply_url: Optional[str] = None
    confidence: Any = None

    @model_validator(mode="before")
    @classmethod
    def coerce_fields(cls, data: Any) -> Any:
        """Numbers become strings; any other non-string text value becomes None."""
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in _TEXT_FIELDS:
            value = cleaned.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                cleaned[key] = str(value)
            elif value is not None and not isinstance(value, str):
                cleaned[key] = None
        if not isinstance(cleaned.get("required_skills"), list):
            cleaned["required_skills"] = []
        return cleaned


class ExtractionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    opportunities: list[ExtractedOpportunity] = Field(default_factory=list)

    @field_validator("opportunities", mode="before")
    @classmethod
    def drop_non_objects(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class EnrichmentResponse(ExtractedOpportunity):
    pass
