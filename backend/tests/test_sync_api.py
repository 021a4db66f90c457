"""HTTP surface and single-flight controller tests using FastAPI's TestClient."""

from __future__ import annotations

import threading
from email.message import EmailMessage
from typing import Any, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from job_ingest.api.sync import CONFLICT_MESSAGE
from job_ingest.config import AppConfig
from job_ingest.crypto import encrypt
from job_ingest.database import create_db_engine
from job_ingest.email.classifier import DEFAULT_KEYWORDS
from job_ingest.email.client import MailboxConnection, RawMessage
from job_ingest.main import create_app
from job_ingest.models import Job, MailboxIdentity, Resume
from job_ingest.resume.storage import LocalArtifactStore
from job_ingest.sync.controller import AlreadyRunning, SyncController


class BlockingMailbox:
    """Holds ``fetch_pending`` open until the test releases it."""

    def __init__(self, messages: Optional[list[RawMessage]] = None) -> None:
        self.messages = messages or []
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_pending(self, connection: MailboxConnection, max_count: int) -> list[RawMessage]:
        self.entered.set()
        self.release.wait(timeout=10)
        return list(self.messages)

    def mark_processed(self, connection: MailboxConnection, uids: Sequence[int]) -> None:
        pass


class MarkBlockingMailbox(BlockingMailbox):
    """Returns messages at once and holds the run open while marking them."""

    def fetch_pending(self, connection: MailboxConnection, max_count: int) -> list[RawMessage]:
        return list(self.messages)

    def mark_processed(self, connection: MailboxConnection, uids: Sequence[int]) -> None:
        self.entered.set()
        self.release.wait(timeout=10)


def _message(uid: int) -> RawMessage:
    msg = EmailMessage()
    msg["Subject"] = "New jobs on LinkedIn"
    msg["From"] = "LinkedIn Jobs <jobs@linkedin.com>"
    msg["Message-ID"] = f"<alert-{uid}@linkedin.com>"
    msg.set_content("Backend Engineer at Acme https://acme.io/jobs/1")
    return RawMessage(uid=uid, envelope={}, source=msg.as_bytes())


def _config(tmp_path, **overrides: Any) -> AppConfig:
    values: dict[str, Any] = dict(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        artifact_dir=str(tmp_path / "artifacts"),
        imap_secret_key="api-secret",
        llm_enabled=False,
        poll_timeout_sec=30,
        log_level="WARNING",
    )
    values.update(overrides)
    return AppConfig(**values)


def _session_factory(config: AppConfig) -> sessionmaker[Session]:
    return sessionmaker(bind=create_db_engine(config.database_url), autocommit=False, autoflush=False)


def _controller(config: AppConfig, mailbox: Any) -> SyncController:
    return SyncController(
        config,
        _session_factory(config),
        mailbox=mailbox,
        artifact_store=LocalArtifactStore(config.artifact_path, config.public_base_url),
        provider_factory=lambda _config, _name, _model: None,
    )


def _add_identity(factory: sessionmaker[Session]) -> int:
    ciphertext, iv = encrypt("app-password", "api-secret")
    with factory() as session:
        identity = MailboxIdentity(
            imap_host="imap.example.com",
            imap_user="me@example.com",
            imap_password_encrypted=ciphertext,
            encryption_iv=iv,
        )
        session.add(identity)
        session.commit()
        return identity.id


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return _config(tmp_path)


@pytest.fixture
def mailbox() -> BlockingMailbox:
    box = BlockingMailbox()
    box.release.set()
    return box


@pytest.fixture
def controller(config, mailbox) -> SyncController:
    return _controller(config, mailbox)


@pytest.fixture
def client(config, controller):
    with TestClient(create_app(config, controller)) as test_client:
        yield test_client
    controller.wait(timeout=10)


# ── Sync surface ──────────────────────────────────────────


class TestSyncEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "running": False}

    def test_status_uses_camel_case(self, client):
        body = client.get("/status").json()

        assert body["running"] is False
        assert body["emailsScanned"] == 0
        assert body["jobsInserted"] == 0
        assert body["timedOut"] is False
        assert body["errors"] == []
        assert "emails_scanned" not in body

    def test_poll_starts_a_run(self, client, controller):
        response = client.post("/poll", json={})

        assert response.status_code == 202
        body = response.json()
        assert body["message"] == "Sync started (latest emails per integration)"
        assert body["stats"]["running"] is True
        assert controller.wait(timeout=10)
        assert client.get("/status").json()["finishedAt"] is not None

    def test_poll_sync_all(self, client, controller):
        response = client.post("/poll", json={"syncAll": True})
        assert response.status_code == 202
        assert "all pending emails" in response.json()["message"]
        controller.wait(timeout=10)

    def test_invalid_body_uses_defaults(self, client, controller):
        response = client.post(
            "/poll", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 202
        assert "latest emails" in response.json()["message"]
        controller.wait(timeout=10)

    def test_second_poll_is_rejected_while_running(self, tmp_path):
        config = _config(tmp_path)
        mailbox = BlockingMailbox()
        controller = _controller(config, mailbox)
        _add_identity(_session_factory(config))

        with TestClient(create_app(config, controller)) as client:
            assert client.post("/poll").status_code == 202
            assert mailbox.entered.wait(timeout=10)

            rejected = client.post("/poll", json={"syncAll": True})
            assert rejected.status_code == 409
            assert rejected.json()["error"] == CONFLICT_MESSAGE
            assert rejected.json()["stats"]["running"] is True
            assert client.get("/health").json()["running"] is True

            mailbox.release.set()
            assert controller.wait(timeout=10)

        status = controller.snapshot()
        assert status.running is False
        assert status.integrations_found == 1
        assert status.errors == []

    def test_rejected_poll_leaves_counters_untouched(self, tmp_path):
        config = _config(tmp_path)
        mailbox = MarkBlockingMailbox([_message(1)])
        controller = _controller(config, mailbox)
        _add_identity(_session_factory(config))

        with TestClient(create_app(config, controller)) as client:
            assert client.post("/poll").status_code == 202
            assert mailbox.entered.wait(timeout=10)

            before = client.get("/status").json()
            assert before["running"] is True
            assert before["emailsScanned"] == 1
            assert before["jobsInserted"] == 1

            rejected = client.post("/poll", json={"syncAll": True})
            assert rejected.status_code == 409
            assert rejected.json()["stats"] == before
            assert client.get("/status").json() == before

            mailbox.release.set()
            assert controller.wait(timeout=10)

        assert controller.snapshot().jobs_inserted == 1


# ── Controller ────────────────────────────────────────────


class TestSyncController:
    def test_start_raises_while_running(self, tmp_path):
        config = _config(tmp_path)
        mailbox = BlockingMailbox()
        _add_identity(_session_factory(config))
        controller = _controller(config, mailbox)

        controller.start()
        assert mailbox.entered.wait(timeout=10)
        with pytest.raises(AlreadyRunning) as excinfo:
            controller.start()
        assert excinfo.value.snapshot.running is True

        mailbox.release.set()
        assert controller.wait(timeout=10)
        assert controller.running is False

    def test_timeout_flags_run_and_stops_it(self, tmp_path):
        config = _config(tmp_path, poll_timeout_sec=1)
        mailbox = BlockingMailbox()
        _add_identity(_session_factory(config))
        controller = _controller(config, mailbox)

        controller.start()
        assert mailbox.entered.wait(timeout=10)
        # Still blocked in the mailbox after the deadline passes.
        threading.Event().wait(1.5)
        assert controller.snapshot().timed_out is True
        assert controller.running is True

        mailbox.release.set()
        assert controller.wait(timeout=10)
        status = controller.snapshot()
        assert status.running is False
        assert status.errors == ["Sync timed out after 1 seconds"]

    def test_start_waits_for_a_finished_run_to_release_the_lock(self, tmp_path):
        config = _config(tmp_path)
        controller = _controller(config, BlockingMailbox())
        # A worker that already called finish() but still holds the lock
        controller._lock.acquire()
        releaser = threading.Timer(0.2, controller._lock.release)
        releaser.start()

        snapshot = controller.start()

        assert snapshot.running is True
        assert controller.wait(timeout=10)
        releaser.join()

    def test_lock_is_released_after_a_run(self, tmp_path):
        config = _config(tmp_path)
        box = BlockingMailbox()
        box.release.set()
        controller = _controller(config, box)

        controller.start()
        assert controller.wait(timeout=10)
        controller.start()
        assert controller.wait(timeout=10)


# ── Integrations ──────────────────────────────────────────


INTEGRATION = {
    "imap_host": "imap.gmail.com",
    "imap_user": "me@gmail.com",
    "imap_password": "app-password",
    "job_keywords": [" Hiring ", "hiring", "Interview"],
}


class TestIntegrations:
    def test_create_and_list_hide_secrets(self, client):
        created = client.post("/api/integrations", json=INTEGRATION)

        assert created.status_code == 201
        body = created.json()
        assert body["has_password"] is True
        assert body["job_keywords"] == ["hiring", "interview"]
        assert "imap_password" not in body
        assert "imap_password_encrypted" not in body

        listed = client.get("/api/integrations").json()
        assert [item["imap_user"] for item in listed] == ["me@gmail.com"]

    def test_keywords_default_to_the_relevance_filter_list(self, config, client):
        body = {key: value for key, value in INTEGRATION.items() if key != "job_keywords"}
        created = client.post("/api/integrations", json=body).json()
        assert created["job_keywords"] == DEFAULT_KEYWORDS

        factory = _session_factory(config)
        identity_id = _add_identity(factory)
        with factory() as session:
            assert session.get(MailboxIdentity, identity_id).job_keywords == DEFAULT_KEYWORDS

    def test_create_without_secret_is_rejected(self, tmp_path, mailbox):
        config = _config(tmp_path, imap_secret_key="")
        with TestClient(create_app(config, _controller(config, mailbox))) as client:
            response = client.post("/api/integrations", json=INTEGRATION)
        assert response.status_code == 400
        assert response.json()["detail"] == "IMAP_SECRET_KEY is not set"

    def test_invalid_scope_is_rejected(self, client):
        response = client.post(
            "/api/integrations", json={**INTEGRATION, "keyword_match_scope": "body"}
        )
        assert response.status_code == 422

    def test_partial_update(self, client):
        identity_id = client.post("/api/integrations", json=INTEGRATION).json()["id"]

        response = client.put(
            f"/api/integrations/{identity_id}",
            json={"max_emails_per_sync": 25, "llm_provider": "disabled"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["max_emails_per_sync"] == 25
        assert body["llm_provider"] == "disabled"
        assert body["imap_user"] == "me@gmail.com"

    def test_update_unknown_integration(self, client):
        assert client.put("/api/integrations/999", json={}).status_code == 404

    def test_profile_defaults_then_saves(self, client):
        identity_id = client.post("/api/integrations", json=INTEGRATION).json()["id"]

        default = client.get(f"/api/integrations/{identity_id}/profile").json()
        assert default["is_default"] is True
        assert default["profile_json"]["personal_info"]["name"] == "Candidate"

        profile = {"personal_info": {"name": "Dana Reyes"}, "skills": ["python"]}
        saved = client.put(f"/api/integrations/{identity_id}/profile", json={"profile_json": profile})
        assert saved.status_code == 200

        fetched = client.get(f"/api/integrations/{identity_id}/profile").json()
        assert fetched["is_default"] is False
        assert fetched["profile_json"] == profile


# ── Jobs ──────────────────────────────────────────────────


class TestJobs:
    @pytest.fixture
    def job_id(self, config, client) -> int:
        factory = _session_factory(config)
        identity_id = _add_identity(factory)
        with factory() as session:
            job = Job(
                identity_id=identity_id,
                email_id="msg-1@acme.io",
                job_fingerprint="f" * 64,
                job_title="Backend Engineer",
                company="Acme",
                apply_url="https://acme.io/apply",
            )
            session.add(job)
            session.flush()
            session.add_all(
                [
                    Resume(job_id=job.id, identity_id=identity_id, resume_json={"name": "old"}),
                    Resume(
                        job_id=job.id,
                        identity_id=identity_id,
                        resume_json={"name": "new"},
                        resume_pdf_url="http://test/artifacts/1/1/resume.pdf",
                    ),
                ]
            )
            session.commit()
            return job.id

    def test_list(self, client, job_id):
        body = client.get("/api/jobs").json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == job_id
        assert body["items"][0]["status"] == "prepared"

    def test_filter_by_status(self, client, job_id):
        assert client.get("/api/jobs", params={"status": "applied"}).json()["total"] == 0
        assert client.get("/api/jobs", params={"status": "bogus"}).status_code == 422

    def test_detail_includes_latest_resume(self, client, job_id):
        body = client.get(f"/api/jobs/{job_id}").json()
        assert body["apply_url"] == "https://acme.io/apply"
        assert body["latest_resume"]["resume_json"] == {"name": "new"}

    def test_missing_job(self, client):
        assert client.get("/api/jobs/404").status_code == 404
