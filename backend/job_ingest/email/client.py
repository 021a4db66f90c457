"""IMAP mailbox access as two short, independently scoped sessions.

Fetching and flagging deliberately use separate connections: processing the
fetched messages (LLM calls, rendering, uploads) takes far longer than an
IMAP session should sit idle.
"""

from __future__ import annotations

import imaplib
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

import structlog

from job_ingest.config import AppConfig

logger = structlog.get_logger(__name__)

# max_count sentinel meaning "every candidate message"
UNLIMITED = 0


class MailboxError(RuntimeError):
    """The mailbox could not be reached or a protocol command failed."""


class MailboxAuthError(MailboxError):
    """The IMAP server rejected the credentials."""


@dataclass(frozen=True)
class MailboxConnection:
    """Connection parameters for one mailbox identity (password already decrypted)."""

    host: str
    port: int
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class RawMessage:
    """A fetched message before parsing; never persisted."""

    uid: int
    envelope: dict[str, Any]
    source: bytes = field(repr=False)


class IMAPClient:
    """IMAP connection wrapper with timeout and context-manager support.

    Usage::

        with IMAPClient(connection, folder="INBOX", readonly=True) as client:
            for uid in client.search_uids("ALL"):
                raw = client.fetch_source(uid)
    """

    def __init__(
        self,
        connection: MailboxConnection,
        folder: str = "INBOX",
        timeout_sec: int = 60,
        readonly: bool = True,
    ) -> None:
        self._connection = connection
        self._folder = folder
        self._timeout_sec = timeout_sec
        self._readonly = readonly
        self._mail: imaplib.IMAP4_SSL | None = None

    # ── Context manager ───────────────────────────────────
    def __enter__(self) -> "IMAPClient":
        try:
            self.connect()
        except BaseException:
            self.disconnect()
            raise
        return self

    def __exit__(self, *exc: object) -> None:
        self.disconnect()

    # ── Connection ────────────────────────────────────────
    def connect(self) -> None:
        """Open the connection, log in and select (lock) the folder."""
        conn = self._connection
        logger.info("imap_connecting", host=conn.host, port=conn.port)
        try:
            self._mail = imaplib.IMAP4_SSL(conn.host, conn.port, timeout=self._timeout_sec)
        except OSError as exc:
            raise MailboxError(f"Cannot connect to {conn.host}:{conn.port}: {exc}") from exc

        logger.info("imap_logging_in", username=conn.username)
        try:
            self._mail.login(conn.username, conn.password)
        except imaplib.IMAP4.error as exc:
            raise MailboxAuthError(str(exc)) from exc

        status, _ = self._mail.select(self._folder, readonly=self._readonly)
        if status != "OK":
            raise MailboxError(f"Cannot select folder: {self._folder}")
        logger.debug("imap_folder_selected", folder=self._folder, readonly=self._readonly)

    def disconnect(self) -> None:
        """Close the IMAP connection; logout problems are logged, not raised."""
        if self._mail is None:
            return
        try:
            self._mail.logout()
            logger.debug("imap_disconnected")
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.debug("imap_logout_failed", error=str(exc))
        finally:
            self._mail = None

    def _ensure_connected(self) -> imaplib.IMAP4_SSL:
        if self._mail is None:
            raise RuntimeError("IMAP client not connected: call connect() first")
        return self._mail

    # ── Commands ──────────────────────────────────────────
    def search_uids(self, criteria: str = "ALL") -> List[int]:
        """Return all UIDs matching *criteria*, oldest first."""
        mail = self._ensure_connected()
        status, data = mail.uid("SEARCH", None, criteria)
        if status != "OK":
            raise MailboxError("IMAP UID SEARCH failed")
        uid_tokens = (data[0] or b"").split()
        return sorted(int(t) for t in uid_tokens)

    def fetch_source(self, uid: int) -> Optional[RawMessage]:
        """Fetch the full RFC 822 source of *uid* without setting ``\\Seen``."""
        mail = self._ensure_connected()
        status, fetched = mail.uid("FETCH", str(uid), "(BODY.PEEK[])")
        if status != "OK" or not fetched or fetched[0] is None:
            logger.warning("imap_fetch_failed", uid=uid)
            return None

        raw_data = fetched[0]
        if not isinstance(raw_data, tuple) or len(raw_data) < 2 or not raw_data[1]:
            logger.warning("imap_empty_payload", uid=uid)
            return None

        header_info = raw_data[0]
        if isinstance(header_info, bytes):
            header_info = header_info.decode("utf-8", errors="replace")
        source = raw_data[1] if isinstance(raw_data[1], bytes) else bytes(raw_data[1])
        return RawMessage(uid=uid, envelope={"fetch_response": str(header_info)}, source=source)

    def add_seen_flag(self, uids: Sequence[int]) -> None:
        mail = self._ensure_connected()
        uid_set = ",".join(str(uid) for uid in uids)
        status, _ = mail.uid("STORE", uid_set, "+FLAGS", "(\\Seen)")
        if status != "OK":
            raise MailboxError(f"IMAP UID STORE failed for {uid_set}")


class MailboxGateway(Protocol):
    """What the sync pipeline needs from a mailbox."""

    def fetch_pending(self, connection: MailboxConnection, max_count: int) -> list[RawMessage]: ...

    def mark_processed(self, connection: MailboxConnection, uids: Sequence[int]) -> None: ...


class ImapMailbox:
    """Production :class:`MailboxGateway` backed by :class:`IMAPClient`."""

    def __init__(self, config: AppConfig) -> None:
        self._folder = config.imap_folder
        self._criteria = config.imap_search_criteria
        self._timeout_sec = config.imap_timeout_sec

    def fetch_pending(self, connection: MailboxConnection, max_count: int) -> list[RawMessage]:
        """Fetch the newest *max_count* messages (all when ``UNLIMITED``) in one session."""
        fetched: list[RawMessage] = []
        with IMAPClient(
            connection, folder=self._folder, timeout_sec=self._timeout_sec, readonly=True
        ) as client:
            all_uids = client.search_uids(self._criteria)
            uids = all_uids[-max_count:] if max_count > UNLIMITED else all_uids
            logger.info(
                "imap_uids_selected",
                total_in_mailbox=len(all_uids),
                selected=len(uids),
                limit=max_count or "unlimited",
            )
            for uid in uids:
                raw = client.fetch_source(uid)
                if raw is not None:
                    fetched.append(raw)
        logger.info("imap_fetch_done", fetched=len(fetched))
        return fetched

    def mark_processed(self, connection: MailboxConnection, uids: Sequence[int]) -> None:
        """Flag *uids* as seen in a second, independent session."""
        if not uids:
            return
        with IMAPClient(
            connection, folder=self._folder, timeout_sec=self._timeout_sec, readonly=False
        ) as client:
            client.add_seen_flag(uids)
        logger.info("imap_marked_processed", count=len(uids))
