"""SQLAlchemy ORM models for all database tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from job_ingest.email.classifier import DEFAULT_KEYWORDS

JOB_STATUSES = ("prepared", "applied", "interview", "rejected")
PARSE_STATUSES = ("parsed", "partial", "failed", "skipped")
MATCH_SCOPES = ("subject", "subject_or_body")
LLM_PROVIDERS = ("openrouter", "gemini", "openai", "disabled")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_keywords() -> list[str]:
    return list(DEFAULT_KEYWORDS)


class Base(DeclarativeBase):
    """Shared declarative base for all models."""


class MailboxIdentity(Base):
    """One monitored inbox and its ingestion settings."""

    __tablename__ = "mailbox_identities"
    __table_args__ = (
        CheckConstraint(
            "keyword_match_scope IN ('subject', 'subject_or_body')",
            name="ck_keyword_match_scope",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    imap_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    imap_port: Mapped[int] = mapped_column(Integer, nullable=False, default=993)
    imap_user: Mapped[str | None] = mapped_column(String(300), nullable=True)
    imap_password_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    encryption_iv: Mapped[str | None] = mapped_column(String(64), nullable=True)
    job_keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=_default_keywords)
    keyword_match_scope: Mapped[str] = mapped_column(String(20), nullable=False, default="subject")
    max_emails_per_sync: Mapped[int | None] = mapped_column(Integer, nullable=True, default=10)
    llm_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="openrouter")
    llm_model: Mapped[str] = mapped_column(String(120), nullable=False, default="qwen/qwen3-coder")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    base_profile: Mapped[BaseProfile | None] = relationship(
        back_populates="identity", cascade="all, delete-orphan", uselist=False
    )

    def __repr__(self) -> str:
        return f"<MailboxIdentity id={self.id} host={self.imap_host!r} user={self.imap_user!r}>"


class BaseProfile(Base):
    """Source-of-truth candidate profile used for resume tailoring."""

    __tablename__ = "base_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("mailbox_identities.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    profile_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    identity: Mapped[MailboxIdentity] = relationship(back_populates="base_profile")


class Job(Base):
    """One persisted job opportunity extracted from an email."""

    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint(
            "identity_id", "email_id", "job_fingerprint", name="uq_identity_email_fingerprint"
        ),
        CheckConstraint(
            "status IN ('prepared', 'applied', 'interview', 'rejected')", name="ck_job_status"
        ),
        CheckConstraint(
            "parse_status IN ('parsed', 'partial', 'failed', 'skipped')", name="ck_parse_status"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mailbox_identities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email_id: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    job_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    job_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    company: Mapped[str | None] = mapped_column(String(300), nullable=True)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    posting_url: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    apply_url: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    extracted_skills: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="prepared", index=True)
    parse_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="parsed", index=True
    )
    parse_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_from: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    source_message_uid: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    source_links: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)
    extraction_model: Mapped[str | None] = mapped_column(String(120), nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    extraction_raw: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resumes: Mapped[list[Resume]] = relationship(
        back_populates="job", cascade="all, delete-orphan", order_by="Resume.created_at"
    )

    def __repr__(self) -> str:
        return (
            f"<Job id={self.id} company={self.company!r} "
            f"title={self.job_title!r} status={self.status!r}>"
        )


class Resume(Base):
    """A tailored resume generated for a job; consumers use the newest one."""

    __tablename__ = "resumes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    identity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    resume_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    resume_pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    job: Mapped[Job] = relationship(back_populates="resumes")

    def __repr__(self) -> str:
        return f"<Resume id={self.id} job_id={self.job_id} url={self.resume_pdf_url!r}>"
