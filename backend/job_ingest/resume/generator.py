"""Tailored resume generation from a base profile and an opportunity."""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from job_ingest.config import AppConfig
from job_ingest.extraction.candidates import OpportunityCandidate
from job_ingest.extraction.json_schemas import RESUME_SCHEMA
from job_ingest.extraction.llm import GenerationError, GenerationProvider, generate_with_timeout
from job_ingest.extraction.outcome import Outcome

logger = structlog.get_logger(__name__)


# ── Document model ────────────────────────────────────────


class _ResumeSection(BaseModel):
    """Lenient base: nulls fall back to defaults, scalars become strings."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def coerce_scalars(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            cleaned[key] = value
        return cleaned


def _string_items(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


class ExperienceEntry(_ResumeSection):
    title: str = ""
    company: str = ""
    location: str = ""
    period: str = ""
    points: list[str] = Field(default_factory=list)

    @field_validator("points", mode="before")
    @classmethod
    def clean_points(cls, value: Any) -> list[str]:
        return _string_items(value)


class EducationEntry(_ResumeSection):
    degree: str = ""
    school: str = ""
    year: str = ""
    location: str = ""


class CertificationEntry(_ResumeSection):
    name: str = ""
    issuer: str = ""
    year: str = ""


class ProjectEntry(_ResumeSection):
    name: str = ""
    description: str = ""
    link: str = ""


class ResumeDocument(_ResumeSection):
    """Structured resume content rendered to PDF and stored as ``resume_json``."""

    name: str = "Candidate"
    contact: str = ""
    summary: str = ""
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    certifications: list[CertificationEntry] = Field(default_factory=list)
    projects: list[ProjectEntry] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def clean_skills(cls, value: Any) -> list[str]:
        return _string_items(value)


# ── Deterministic fallback ────────────────────────────────


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _period(item: dict[str, Any]) -> str:
    explicit = _text(item.get("period") or item.get("dates"))
    if explicit:
        return explicit
    start = _text(item.get("start_date") or item.get("start"))
    end = _text(item.get("end_date") or item.get("end"))
    return " - ".join(part for part in (start, end) if part)


def _entries(values: Any) -> list[dict[str, Any]]:
    return [v for v in values if isinstance(v, dict)] if isinstance(values, list) else []


def resume_from_profile(profile: dict[str, Any]) -> ResumeDocument:
    """Build a resume straight from the base profile without any rewriting."""
    info = profile.get("personal_info") if isinstance(profile.get("personal_info"), dict) else {}
    contact = " | ".join(
        part
        for part in (
            _text(info.get("phone")),
            _text(info.get("email")),
            _text(info.get("linkedin")),
            _text(info.get("location")),
        )
        if part
    )

    experience = []
    for item in _entries(profile.get("experience")):
        points = item.get("points") or item.get("highlights") or item.get("bullets")
        if not points and _text(item.get("description")):
            points = [_text(item.get("description"))]
        experience.append(
            ExperienceEntry(
                title=_text(item.get("title") or item.get("role")),
                company=_text(item.get("company")),
                location=_text(item.get("location")),
                period=_period(item),
                points=_string_items(points),
            )
        )

    education = [
        EducationEntry(
            degree=_text(item.get("degree")),
            school=_text(item.get("school") or item.get("institution")),
            year=_text(item.get("year") or item.get("graduation_year")),
            location=_text(item.get("location")),
        )
        for item in _entries(profile.get("education"))
    ]
    certifications = [
        CertificationEntry(
            name=_text(item.get("name")),
            issuer=_text(item.get("issuer")),
            year=_text(item.get("year")),
        )
        for item in _entries(profile.get("certifications"))
    ]
    projects = [
        ProjectEntry(
            name=_text(item.get("name")),
            description=_text(item.get("description")),
            link=_text(item.get("link") or item.get("url")),
        )
        for item in _entries(profile.get("projects"))
    ]

    return ResumeDocument(
        name=_text(info.get("name")) or "Candidate",
        contact=contact,
        summary=_text(profile.get("summary")),
        experience=experience,
        education=education,
        skills=_string_items(profile.get("skills")),
        certifications=certifications,
        projects=projects,
    )


# ── LLM tailoring ─────────────────────────────────────────

_STYLE_GUIDE = (
    "Use a 'Professional' style: clean, balanced whitespace, professional summary at top, "
    "clear section headings, standard corporate formatting. Focus on leadership and clarity."
)


def build_resume_prompt(profile: dict[str, Any], opportunity: OpportunityCandidate) -> str:
    return "\n".join(
        [
            "You are an expert resume writer.",
            "",
            "MY PROFILE:",
            json.dumps(profile, indent=2, default=str),
            "",
            "JOB DESCRIPTION (extracted text):",
            f"Title: {opportunity.job_title}",
            f"Company: {opportunity.company}",
            f"Description: {opportunity.description}",
            f"Skills: {', '.join(opportunity.required_skills)}",
            "",
            "TASK:",
            "Write a tailored resume for this job description based on my profile.",
            _STYLE_GUIDE,
            "",
            "RULES:",
            "- Do not invent facts. Rephrase existing profile data to match the job keywords.",
            "- If a field is not present in the profile, return an empty string. "
            'Never write "N/A", "Unknown", "Ongoing" or "Present" as a placeholder.',
            "- If only the year or only the issuer of a certification is known, give just that one.",
            "- Bullet points follow Action Verb + Context + Result.",
        ]
    )


def tailor_resume(
    profile: dict[str, Any],
    opportunity: OpportunityCandidate,
    provider: Optional[GenerationProvider],
    config: AppConfig,
) -> Outcome[ResumeDocument]:
    """Tailor *profile* to *opportunity*; degrade to the untailored profile."""
    if provider is None:
        return Outcome.degraded(resume_from_profile(profile), "LLM disabled; using base profile")

    try:
        result = generate_with_timeout(
            provider,
            build_resume_prompt(profile, opportunity),
            RESUME_SCHEMA,
            timeout_sec=config.llm_timeout_sec,
        )
        document = ResumeDocument.model_validate(result.parsed)
    except (GenerationError, ValidationError) as exc:
        logger.warning("resume_generation_failed", title=opportunity.job_title[:80], error=str(exc)[:300])
        return Outcome.degraded(resume_from_profile(profile), f"Resume generation failed: {exc}")

    return Outcome.ok(document)
