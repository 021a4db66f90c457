"""Mailbox identity (integration) settings and base profiles."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from job_ingest.config import AppConfig, ConfigurationError, get_config
from job_ingest.crypto import encrypt
from job_ingest.database import get_db
from job_ingest.email.classifier import normalize_keywords
from job_ingest.models import BaseProfile, MailboxIdentity
from job_ingest.repository import DEFAULT_PROFILE, upsert_base_profile
from job_ingest.schemas import (
    IntegrationCreate,
    IntegrationOut,
    IntegrationUpdate,
    ProfileIn,
    ProfileOut,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/integrations", tags=["integrations"])


def _to_out(identity: MailboxIdentity) -> IntegrationOut:
    out = IntegrationOut.model_validate(identity)
    out.has_password = bool(identity.imap_password_encrypted)
    return out


def _get_identity(db: Session, identity_id: int) -> MailboxIdentity:
    identity = db.query(MailboxIdentity).filter(MailboxIdentity.id == identity_id).first()
    if not identity:
        raise HTTPException(status_code=404, detail="Integration not found")
    return identity


def _encrypt_password(password: str, config: AppConfig) -> tuple[str, str]:
    try:
        secret = config.require_secret_key()
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return encrypt(password, secret)


@router.get("", response_model=list[IntegrationOut])
def list_integrations(db: Session = Depends(get_db)) -> list[IntegrationOut]:
    """List mailbox identities; the stored password is never returned."""
    identities = db.query(MailboxIdentity).order_by(MailboxIdentity.id).all()
    return [_to_out(identity) for identity in identities]


@router.post("", response_model=IntegrationOut, status_code=201)
def create_integration(
    body: IntegrationCreate,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> IntegrationOut:
    ciphertext, iv = _encrypt_password(body.imap_password, config)
    identity = MailboxIdentity(
        imap_host=body.imap_host.strip(),
        imap_port=body.imap_port,
        imap_user=body.imap_user.strip(),
        imap_password_encrypted=ciphertext,
        encryption_iv=iv,
        job_keywords=normalize_keywords(body.job_keywords),
        keyword_match_scope=body.keyword_match_scope,
        max_emails_per_sync=body.max_emails_per_sync,
        llm_provider=body.llm_provider,
        llm_model=body.llm_model.strip(),
    )
    db.add(identity)
    db.flush()
    db.refresh(identity)
    logger.info("integration_created", identity_id=identity.id, host=identity.imap_host)
    return _to_out(identity)


@router.put("/{identity_id}", response_model=IntegrationOut)
def update_integration(
    identity_id: int,
    body: IntegrationUpdate,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> IntegrationOut:
    """Partially update an identity; a new password is re-encrypted."""
    identity = _get_identity(db, identity_id)
    changes = body.model_dump(exclude_unset=True)

    password = changes.pop("imap_password", None)
    if password:
        identity.imap_password_encrypted, identity.encryption_iv = _encrypt_password(password, config)
    if "job_keywords" in changes:
        changes["job_keywords"] = normalize_keywords(changes["job_keywords"])

    for field, value in changes.items():
        if value is None and field != "max_emails_per_sync":
            continue
        if isinstance(value, str):
            value = value.strip()
        setattr(identity, field, value)

    db.flush()
    db.refresh(identity)
    logger.info("integration_updated", identity_id=identity.id, fields=sorted(changes))
    return _to_out(identity)


@router.get("/{identity_id}/profile", response_model=ProfileOut)
def get_profile(identity_id: int, db: Session = Depends(get_db)) -> ProfileOut:
    _get_identity(db, identity_id)
    row = db.query(BaseProfile).filter(BaseProfile.identity_id == identity_id).first()
    if row is None:
        return ProfileOut(identity_id=identity_id, profile_json=DEFAULT_PROFILE, is_default=True)
    return ProfileOut(identity_id=identity_id, profile_json=row.profile_json)


@router.put("/{identity_id}/profile", response_model=ProfileOut)
def put_profile(identity_id: int, body: ProfileIn, db: Session = Depends(get_db)) -> ProfileOut:
    _get_identity(db, identity_id)
    row = upsert_base_profile(db, identity_id, body.profile_json)
    logger.info("base_profile_saved", identity_id=identity_id)
    return ProfileOut(identity_id=identity_id, profile_json=row.profile_json)
