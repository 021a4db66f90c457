"""In-memory progress record of one sync run."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Optional

import structlog

from job_ingest.schemas import SyncStatusOut

logger = structlog.get_logger(__name__)


@dataclass
class SyncRunState:
    """Counters and errors of the current (or last finished) run.

    Written only by the run thread; status readers go through :meth:`snapshot`.
    """

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
    errors: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    timed_out: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def begin(self) -> None:
        """Reset every counter and mark the run as started."""
        fresh = SyncRunState()
        with self._lock:
            for f in fields(self):
                if f.name != "_lock":
                    setattr(self, f.name, getattr(fresh, f.name))
            self.running = True
            self.started_at = datetime.now(timezone.utc)

    def finish(self) -> None:
        with self._lock:
            self.running = False
            self.finished_at = datetime.now(timezone.utc)

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def update(self, **values: object) -> None:
        with self._lock:
            for name, value in values.items():
                setattr(self, name, value)

    def add_error(self, message: str) -> None:
        logger.warning("sync_error_recorded", error=message[:300])
        with self._lock:
            self.errors.append(message)

    def mark_timed_out(self, timeout_sec: int) -> None:
        self.add_error(f"Sync timed out after {timeout_sec} seconds")
        with self._lock:
            self.timed_out = True

    def snapshot(self) -> SyncStatusOut:
        """Immutable copy safe to hand to another thread."""
        with self._lock:
            values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "_lock"}
            values["errors"] = list(self.errors)
        return SyncStatusOut(**values)
