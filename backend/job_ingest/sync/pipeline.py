"""Sync pipeline: mailbox identities in, jobs and tailored resumes out.

For every configured identity the pipeline fetches pending messages in one
short IMAP session, processes them offline, and flags the messages that
produced a persisted (or already known) job in a second session.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from job_ingest.config import AppConfig, ConfigurationError
from job_ingest.crypto import decrypt
from job_ingest.email.classifier import is_relevant, normalize_keywords
from job_ingest.email.client import (
    UNLIMITED,
    MailboxAuthError,
    MailboxConnection,
    MailboxGateway,
    RawMessage,
)
from job_ingest.email.parser import MalformedMessage, NormalizedEmail, normalize_message
from job_ingest.extraction.candidates import OpportunityCandidate
from job_ingest.extraction.enricher import STATUS_ERROR, enrich_opportunity
from job_ingest.extraction.extractor import extract_opportunities
from job_ingest.extraction.fingerprint import build_job_fingerprint
from job_ingest.extraction.llm import GenerationProvider, create_generation_provider
from job_ingest.extraction.outcome import Outcome
from job_ingest.models import Job, MailboxIdentity, Resume
from job_ingest.normalize import (
    normalize_string,
    normalize_string_list,
    sender_display_name,
    truncate,
)
from job_ingest.repository import (
    count_jobs_for_message,
    find_job,
    get_base_profile,
    insert_job,
    insert_resume,
    list_mailbox_identities,
)
from job_ingest.resume.generator import tailor_resume
from job_ingest.resume.renderer import render_resume_pdf
from job_ingest.resume.storage import ArtifactStore
from job_ingest.sync.state import SyncRunState

logger = structlog.get_logger(__name__)

AUTH_FAILED_MESSAGE = (
    "IMAP authentication failed. If using Gmail, make sure you are using a Google App Password."
)

ProviderFactory = Callable[[AppConfig, str, str], Optional[GenerationProvider]]


def _is_configured(identity: MailboxIdentity) -> bool:
    return bool(identity.imap_host and identity.imap_user and identity.imap_password_encrypted)


def effective_max_emails(identity: MailboxIdentity, config: AppConfig, sync_all: bool) -> int:
    if sync_all:
        return UNLIMITED
    if identity.max_emails_per_sync and identity.max_emails_per_sync > 0:
        return identity.max_emails_per_sync
    return config.default_max_emails_per_sync


class IdentitySync:
    """Processes one mailbox identity inside a sync run."""

    def __init__(
        self,
        *,
        config: AppConfig,
        session: Session,
        state: SyncRunState,
        identity: MailboxIdentity,
        provider: Optional[GenerationProvider],
        mailbox: MailboxGateway,
        artifact_store: ArtifactStore,
        should_cancel: Callable[[], bool],
    ) -> None:
        self.config = config
        self.session = session
        self.state = state
        self.identity = identity
        self.provider = provider
        self.mailbox = mailbox
        self.artifact_store = artifact_store
        self.should_cancel = should_cancel
        self.keywords = normalize_keywords(identity.job_keywords)
        self.profile: dict[str, Any] = {}

    def run(self, secret: str, sync_all: bool) -> None:
        identity = self.identity
        connection = MailboxConnection(
            host=identity.imap_host or "",
            port=identity.imap_port or 993,
            username=identity.imap_user or "",
            password=decrypt(identity.imap_password_encrypted or "", identity.encryption_iv or "", secret),
        )
        self.profile = get_base_profile(self.session, identity.id)

        max_count = effective_max_emails(identity, self.config, sync_all)
        messages = self.mailbox.fetch_pending(connection, max_count)
        self.state.increment("emails_scanned", len(messages))
        self.state.increment("total_to_process", len(messages))
        logger.info("identity_messages_fetched", count=len(messages), max_count=max_count)

        uids_to_mark: list[int] = []
        for raw in messages:
            if self.should_cancel():
                logger.warning("sync_cancelled", remaining=len(messages) - len(uids_to_mark))
                break
            self.state.increment("current_email_index")
            try:
                if self.process_message(raw):
                    uids_to_mark.append(raw.uid)
            except MalformedMessage as exc:
                self.state.add_error(f"Failed to parse message UID {raw.uid}: {exc}")
            except Exception as exc:
                self.session.rollback()
                logger.error("message_processing_error", uid=raw.uid, error=str(exc))
                self.state.add_error(f"Failed to process message UID {raw.uid}: {exc}")

        if uids_to_mark:
            try:
                self.mailbox.mark_processed(connection, uids_to_mark)
            except Exception as exc:
                self.state.add_error(f"Failed to mark messages as read: {exc}")

        logger.info("identity_sync_done", marked=len(uids_to_mark))

    # ── per message ───────────────────────────────────────

    def process_message(self, raw: RawMessage) -> bool:
        """Return True when the message should be flagged as processed."""
        email = normalize_message(raw, max_links=self.config.max_links_per_email)

        existing = count_jobs_for_message(self.session, self.identity.id, email.message_id)
        if existing > 0:
            logger.info("message_already_ingested", message_id=email.message_id, jobs=existing)
            self.state.increment("duplicate_jobs", existing)
            return True

        if not is_relevant(email, self.keywords, self.identity.keyword_match_scope):
            return False
        self.state.increment("emails_keyword_matched")

        extracted = extract_opportunities(email, self.provider, self.config)
        self.state.increment("opportunities_extracted", len(extracted.value))

        persisted = False
        for candidate in extracted.value:
            if self.process_candidate(email, candidate, extracted):
                persisted = True
        return persisted

    # ── per candidate ─────────────────────────────────────

    def process_candidate(
        self,
        email: NormalizedEmail,
        extracted: OpportunityCandidate,
        extraction: Outcome[list[OpportunityCandidate]],
    ) -> bool:
        enriched = enrich_opportunity(extracted, email.links, self.provider, self.config).value
        fingerprint = build_job_fingerprint(email.message_id, enriched)

        if find_job(self.session, self.identity.id, email.message_id, fingerprint) is not None:
            self.state.increment("duplicate_jobs")
            return True

        job = self.build_job(email, extracted, enriched, fingerprint, extraction)
        title = job.job_title
        try:
            job = insert_job(self.session, job)
        except IntegrityError as exc:
            self.session.rollback()
            self.state.add_error(f'Job insert failed for "{title}": {exc.orig}')
            return False
        self.state.increment("jobs_inserted")

        self.generate_resume(job, enriched)
        return True

    def build_job(
        self,
        email: NormalizedEmail,
        extracted: OpportunityCandidate,
        enriched: OpportunityCandidate,
        fingerprint: str,
        extraction: Outcome[list[OpportunityCandidate]],
    ) -> Job:
        primary_url = (
            enriched.apply_url
            or enriched.posting_url
            or (email.links[0].url if email.links else None)
        )
        enrichment_failed = enriched.enrichment_status == STATUS_ERROR
        extraction_error = extracted.raw.get("extraction_error")
        parse_error = enriched.enrichment_error or extraction_error

        return Job(
            identity_id=self.identity.id,
            email_id=email.message_id,
            job_fingerprint=fingerprint,
            job_title=normalize_string(enriched.job_title, email.subject),
            company=normalize_string(enriched.company, sender_display_name(email.sender)),
            location=normalize_string(enriched.location, "Unknown"),
            description=truncate(
                normalize_string(enriched.description, email.text_body or email.subject),
                self.config.max_description_chars,
            ),
            job_link=primary_url or f"imap://{self.identity.imap_host}/INBOX/{email.uid}",
            posting_url=enriched.posting_url or primary_url,
            apply_url=enriched.apply_url or primary_url,
            extracted_skills=normalize_string_list(list(enriched.required_skills), 60),
            status="prepared",
            parse_status="partial" if enrichment_failed or extraction_error else "parsed",
            parse_error=parse_error,
            source_subject=email.subject,
            source_from=email.sender,
            source_received_at=email.received_at,
            source_message_uid=email.uid,
            source_links=[{"url": link.url, "text": link.text} for link in email.links],
            extraction_model=self.provider.model if self.provider else None,
            extraction_confidence=enriched.confidence,
            extraction_raw={
                "extraction": extracted.raw or None,
                "extraction_degraded": extraction.degraded_reason,
                "enrichment_status": enriched.enrichment_status,
                "enrichment_error": enriched.enrichment_error,
                "url_context_metadata": enriched.url_context_metadata,
            },
        )

    def generate_resume(self, job: Job, opportunity: OpportunityCandidate) -> None:
        title = job.job_title
        tailored = tailor_resume(self.profile, opportunity, self.provider, self.config)
        try:
            pdf_bytes = render_resume_pdf(tailored.value)
            path = f"{self.identity.id}/{job.id}/resume-{int(time.time() * 1000)}.pdf"
            url = self.artifact_store.upload(path, pdf_bytes, "application/pdf")
            insert_resume(
                self.session,
                Resume(
                    job_id=job.id,
                    identity_id=self.identity.id,
                    resume_json=tailored.value.model_dump(),
                    resume_pdf_url=url,
                    generation_error=tailored.degraded_reason,
                ),
            )
        except Exception as exc:
            self.session.rollback()
            self.state.increment("resumes_failed")
            self.state.add_error(f'Resume generation failed for "{title}": {exc}')
            return
        self.state.increment("resumes_generated")


def run_sync(
    config: AppConfig,
    session_factory: Callable[[], Session],
    state: SyncRunState,
    *,
    mailbox: MailboxGateway,
    artifact_store: ArtifactStore,
    provider_factory: ProviderFactory = create_generation_provider,
    sync_all: bool = False,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> None:
    """Run one sync over every configured mailbox identity.

    Identities are processed one at a time; a failure in one is recorded in
    ``state.errors`` and the next identity proceeds. Configuration problems
    abort the run before any mailbox is touched. ``state.finish()`` is always
    called on exit.
    """
    cancelled = should_cancel or (lambda: False)
    session = session_factory()
    try:
        identities = [i for i in list_mailbox_identities(session) if _is_configured(i)]
        state.update(integrations_found=len(identities))
        if not identities:
            logger.info("sync_no_identities")
            return

        try:
            secret = config.require_secret_key()
            providers = {
                identity.id: provider_factory(config, identity.llm_provider, identity.llm_model)
                for identity in identities
            }
        except ConfigurationError as exc:
            state.add_error(str(exc))
            return

        logger.info("sync_starting", identities=len(identities), sync_all=sync_all)
        for identity in identities:
            if cancelled():
                break
            with structlog.contextvars.bound_contextvars(identity_id=identity.id):
                worker = IdentitySync(
                    config=config,
                    session=session,
                    state=state,
                    identity=identity,
                    provider=providers[identity.id],
                    mailbox=mailbox,
                    artifact_store=artifact_store,
                    should_cancel=cancelled,
                )
                try:
                    worker.run(secret, sync_all)
                except MailboxAuthError:
                    state.add_error(AUTH_FAILED_MESSAGE)
                except Exception as exc:
                    session.rollback()
                    logger.error("identity_sync_error", error=str(exc))
                    state.add_error(str(exc) or type(exc).__name__)
    except Exception as exc:
        logger.error("sync_critical_error", error=str(exc))
        state.add_error(str(exc) or type(exc).__name__)
    finally:
        session.close()
        state.finish()
        summary = state.snapshot()
        logger.info(
            "sync_complete",
            scanned=summary.emails_scanned,
            matched=summary.emails_keyword_matched,
            inserted=summary.jobs_inserted,
            duplicates=summary.duplicate_jobs,
            resumes=summary.resumes_generated,
            errors=len(summary.errors),
        )
