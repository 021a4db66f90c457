"""JSON schemas sent with structured-generation requests."""

from __future__ import annotations

from typing import Any

_OPPORTUNITY_PROPERTIES: dict[str, Any] = {
    "job_title": {"type": "string"},
    "company": {"type": "string"},
    "location": {"type": "string"},
    "description": {"type": "string"},
    "required_skills": {"type": "array", "items": {"type": "string"}},
    "posting_url": {"type": "string"},
    "apply_url": {"type": "string"},
    "confidence": {"type": "number"},
}

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "opportunities": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": _OPPORTUNITY_PROPERTIES,
                "required": ["job_title"],
            },
        },
    },
    "required": ["opportunities"],
}

ENRICHMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": _OPPORTUNITY_PROPERTIES,
}

RESUME_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "contact": {"type": "string"},
        "summary": {"type": "string"},
        "experience": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "company": {"type": "string"},
                    "location": {"type": "string"},
                    "period": {"type": "string"},
                    "points": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["title", "company"],
            },
        },
        "education": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "degree": {"type": "string"},
                    "school": {"type": "string"},
                    "year": {"type": "string"},
                    "location": {"type": "string"},
                },
            },
        },
        "skills": {"type": "array", "items": {"type": "string"}},
        "certifications": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "issuer": {"type": "string"},
                    "year": {"type": "string"},
                },
            },
        },
        "projects": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "link": {"type": "string"},
                },
            },
        },
    },
    "required": ["name", "contact"],
}
