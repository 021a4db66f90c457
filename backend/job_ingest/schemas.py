"""Pydantic schemas for API request/response validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Sync schemas ──────────────────────────────────────────


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncStatusOut(CamelModel):
    running: bool = False
    integrations_found: int = 0
    emails_scanned: int = 0
    emails_keyword_matched: int = 0
    opportunities_extracted: int = 0
    jobs_inserted: int = 0
    duplicate_jobs: int = 0
    resumes_generated: int = 0
    resumes_failed: int = 0
    total_to_process: int = 0
    current_email_index: int = 0
    errors: List[str] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    timed_out: bool = False


class PollRequest(CamelModel):
    sync_all: bool = False


class HealthOut(BaseModel):
    ok: bool = True
    running: bool


# ── Integration schemas ───────────────────────────────────


class IntegrationCreate(BaseModel):
    """Request body for registering a mailbox identity."""

    imap_host: str = Field(..., min_length=1, max_length=255)
    imap_port: int = Field(993, ge=1, le=65535)
    imap_user: str = Field(..., min_length=1, max_length=300)
    imap_password: str = Field(..., min_length=1)
    job_keywords: Optional[List[str]] = None
    keyword_match_scope: str = Field("subject", pattern="^(subject|subject_or_body)$")
    max_emails_per_sync: Optional[int] = Field(10, gt=0)
    llm_provider: str = Field("openrouter", pattern="^(openrouter|gemini|openai|disabled)$")
    llm_model: str = Field("qwen/qwen3-coder", min_length=1, max_length=120)


class IntegrationUpdate(BaseModel):
    """Request body for updating a mailbox identity (all fields optional)."""

    imap_host: Optional[str] = Field(None, min_length=1, max_length=255)
    imap_port: Optional[int] = Field(None, ge=1, le=65535)
    imap_user: Optional[str] = Field(None, min_length=1, max_length=300)
    imap_password: Optional[str] = Field(None, min_length=1)
    job_keywords: Optional[List[str]] = None
    keyword_match_scope: Optional[str] = Field(None, pattern="^(subject|subject_or_body)$")
    max_emails_per_sync: Optional[int] = Field(None, gt=0)
    llm_provider: Optional[str] = Field(None, pattern="^(openrouter|gemini|openai|disabled)$")
    llm_model: Optional[str] = Field(None, min_length=1, max_length=120)


class IntegrationOut(BaseModel):
    id: int
    imap_host: Optional[str]
    imap_port: int
    imap_user: Optional[str]
    has_password: bool = False
    job_keywords: List[str]
    keyword_match_scope: str
    max_emails_per_sync: Optional[int]
    llm_provider: str
    llm_model: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ProfileIn(BaseModel):
    profile_json: dict[str, Any]


class ProfileOut(BaseModel):
    identity_id: int
    profile_json: dict[str, Any]
    is_default: bool = False


# ── Job schemas ───────────────────────────────────────────


class ResumeOut(BaseModel):
    id: int
    job_id: int
    resume_json: dict[str, Any]
    resume_pdf_url: Optional[str]
    generation_error: Optional[str]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class JobOut(BaseModel):
    id: int
    identity_id: int
    email_id: str
    job_title: Optional[str]
    company: Optional[str]
    location: Optional[str]
    job_link: Optional[str]
    posting_url: Optional[str]
    apply_url: Optional[str]
    extracted_skills: List[str] = []
    status: str
    parse_status: str
    parse_error: Optional[str]
    source_subject: Optional[str]
    source_from: Optional[str]
    source_received_at: Optional[datetime]
    extraction_confidence: Optional[float]
    created_at: Optional[datetime]
    applied_at: Optional[datetime]

    model_config = {"from_attributes": True}


class JobDetailOut(JobOut):
    """Job with description, provenance and its most recent resume."""

    description: Optional[str]
    source_links: List[dict[str, str]] = []
    extraction_model: Optional[str]
    extraction_raw: Optional[dict[str, Any]]
    latest_resume: Optional[ResumeOut] = None


class JobListOut(BaseModel):
    items: List[JobOut]
    total: int
    page: int
    page_size: int
