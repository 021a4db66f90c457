"""Single-flight controller that runs syncs on a background thread."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy.orm import Session

from job_ingest.config import AppConfig
from job_ingest.email.client import MailboxGateway
from job_ingest.extraction.llm import create_generation_provider
from job_ingest.resume.storage import ArtifactStore
from job_ingest.schemas import SyncStatusOut
from job_ingest.sync.pipeline import ProviderFactory, run_sync
from job_ingest.sync.state import SyncRunState

logger = structlog.get_logger(__name__)

# How long start() waits for a worker that already reported finish()
RELEASE_GRACE_SEC = 1.0


class AlreadyRunning(RuntimeError):
    """Raised by :meth:`SyncController.start` while a run is in progress."""

    def __init__(self, snapshot: SyncStatusOut) -> None:
        super().__init__("A sync is already in progress")
        self.snapshot = snapshot


@dataclass
class RunHandle:
    thread: threading.Thread
    cancel_event: threading.Event
    timer: threading.Timer


class SyncController:
    """Owns the run-status record and guarantees at most one active run."""

    def __init__(
        self,
        config: AppConfig,
        session_factory: Callable[[], Session],
        mailbox: MailboxGateway,
        artifact_store: ArtifactStore,
        provider_factory: ProviderFactory = create_generation_provider,
    ) -> None:
        self.config = config
        self.session_factory = session_factory
        self.mailbox = mailbox
        self.artifact_store = artifact_store
        self.provider_factory = provider_factory
        self.state = SyncRunState()
        self._lock = threading.Lock()
        self._active: Optional[RunHandle] = None

    @property
    def running(self) -> bool:
        return self.state.running

    def snapshot(self) -> SyncStatusOut:
        return self.state.snapshot()

    def start(self, sync_all: bool = False) -> SyncStatusOut:
        """Start a run in the background and return the initial snapshot.

        Raises:
            AlreadyRunning: another run holds the lock; counters are untouched.
        """
        if not self._lock.acquire(blocking=False):
            # A finished worker may not have released the lock yet
            if self.state.running or not self._lock.acquire(timeout=RELEASE_GRACE_SEC):
                raise AlreadyRunning(self.state.snapshot())

        try:
            self.state.begin()
            cancel_event = threading.Event()
            timer = threading.Timer(self.config.poll_timeout_sec, self._on_timeout, args=(cancel_event,))
            timer.daemon = True
            thread = threading.Thread(
                target=self._run, args=(sync_all, cancel_event), name="sync-run", daemon=True
            )
            self._active = RunHandle(thread=thread, cancel_event=cancel_event, timer=timer)
            timer.start()
            thread.start()
        except BaseException:
            self._active = None
            self.state.finish()
            self._lock.release()
            raise

        logger.info("sync_triggered", sync_all=sync_all, timeout_sec=self.config.poll_timeout_sec)
        return self.state.snapshot()

    def _on_timeout(self, cancel_event: threading.Event) -> None:
        if cancel_event.is_set() or not self.state.running:
            return
        logger.warning("sync_timed_out", timeout_sec=self.config.poll_timeout_sec)
        self.state.mark_timed_out(self.config.poll_timeout_sec)
        cancel_event.set()

    def _run(self, sync_all: bool, cancel_event: threading.Event) -> None:
        try:
            run_sync(
                self.config,
                self.session_factory,
                self.state,
                mailbox=self.mailbox,
                artifact_store=self.artifact_store,
                provider_factory=self.provider_factory,
                sync_all=sync_all,
                should_cancel=cancel_event.is_set,
            )
        except Exception as exc:
            logger.error("background_sync_error", error=str(exc))
            self.state.add_error(str(exc) or type(exc).__name__)
        finally:
            handle = self._active
            if handle is not None:
                handle.timer.cancel()
            if self.state.running:
                self.state.finish()
            self._active = None
            self._lock.release()

    def cancel(self) -> None:
        """Ask the active run to stop at the next message boundary."""
        handle = self._active
        if handle is not None:
            logger.info("sync_cancellation_requested")
            handle.cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the active run exits; True if nothing is running afterwards."""
        handle = self._active
        if handle is not None:
            handle.thread.join(timeout)
        return not self.state.running
