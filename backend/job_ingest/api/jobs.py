"""Read endpoints for ingested jobs and their resumes."""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from job_ingest.database import get_db
from job_ingest.models import Job
from job_ingest.repository import latest_resume
from job_ingest.schemas import JobDetailOut, JobListOut, JobOut, ResumeOut

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=JobListOut)
def list_jobs(
    status: Optional[str] = Query(
        None, pattern="^(prepared|applied|interview|rejected)$", description="Filter by status"
    ),
    identity_id: Optional[int] = Query(None, description="Filter by mailbox identity"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db),
) -> JobListOut:
    """List jobs, newest first."""
    query = db.query(Job)
    if status:
        query = query.filter(Job.status == status)
    if identity_id is not None:
        query = query.filter(Job.identity_id == identity_id)

    total = query.count()
    offset = (page - 1) * page_size
    items = query.order_by(Job.created_at.desc(), Job.id.desc()).offset(offset).limit(page_size).all()

    return JobListOut(
        items=[JobOut.model_validate(job) for job in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{job_id}", response_model=JobDetailOut)
def get_job(job_id: int, db: Session = Depends(get_db)) -> JobDetailOut:
    """Get a single job with its most recent resume."""
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    detail = JobDetailOut.model_validate(job)
    resume = latest_resume(db, job.id)
    if resume is not None:
        detail.latest_resume = ResumeOut.model_validate(resume)
    return detail
