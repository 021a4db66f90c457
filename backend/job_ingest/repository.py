"""Database access used by the sync pipeline and the read APIs."""

from __future__ import annotations

import copy
from typing import Any, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from job_ingest.models import BaseProfile, Job, MailboxIdentity, Resume

logger = structlog.get_logger(__name__)

DEFAULT_PROFILE: dict[str, Any] = {
    "personal_info": {
        "name": "Candidate",
        "email": "candidate@example.com",
        "phone": "",
    },
    "skills": [],
    "experience": [],
    "education": [],
}


def list_mailbox_identities(session: Session) -> list[MailboxIdentity]:
    return session.query(MailboxIdentity).order_by(MailboxIdentity.id).all()


def get_base_profile(session: Session, identity_id: int) -> dict[str, Any]:
    """Return the identity's profile JSON, or a copy of ``DEFAULT_PROFILE``."""
    row = session.query(BaseProfile).filter(BaseProfile.identity_id == identity_id).first()
    if row is not None and isinstance(row.profile_json, dict) and row.profile_json:
        return row.profile_json
    logger.info("base_profile_default", identity_id=identity_id)
    return copy.deepcopy(DEFAULT_PROFILE)


def upsert_base_profile(session: Session, identity_id: int, profile: dict[str, Any]) -> BaseProfile:
    row = session.query(BaseProfile).filter(BaseProfile.identity_id == identity_id).first()
    if row is None:
        row = BaseProfile(identity_id=identity_id, profile_json=profile)
        session.add(row)
    else:
        row.profile_json = profile
    session.flush()
    return row


def find_job(
    session: Session, identity_id: int, message_id: str, fingerprint: str
) -> Optional[Job]:
    return (
        session.query(Job)
        .filter(
            Job.identity_id == identity_id,
            Job.email_id == message_id,
            Job.job_fingerprint == fingerprint,
        )
        .first()
    )


def count_jobs_for_message(session: Session, identity_id: int, message_id: str) -> int:
    count = (
        session.query(func.count(Job.id))
        .filter(Job.identity_id == identity_id, Job.email_id == message_id)
        .scalar()
    )
    return int(count or 0)


def insert_job(session: Session, job: Job) -> Job:
    """Add and commit *job*.

    Raises:
        sqlalchemy.exc.IntegrityError: on a uniqueness or check violation.
            The caller is responsible for rolling back.
    """
    session.add(job)
    session.commit()
    session.refresh(job)
    logger.info("job_inserted", job_id=job.id, identity_id=job.identity_id, title=job.job_title)
    return job


def insert_resume(session: Session, resume: Resume) -> Resume:
    session.add(resume)
    session.commit()
    session.refresh(resume)
    return resume


def latest_resume(session: Session, job_id: int) -> Optional[Resume]:
    return (
        session.query(Resume)
        .filter(Resume.job_id == job_id)
        .order_by(Resume.created_at.desc(), Resume.id.desc())
        .first()
    )
