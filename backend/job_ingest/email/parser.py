"""Email MIME parsing and link harvesting."""

from __future__ import annotations

import email as email_lib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import List, Optional

from bs4 import BeautifulSoup

from job_ingest.email.client import RawMessage
from job_ingest.normalize import collapse_whitespace, normalize_string, normalize_url


class MalformedMessage(ValueError):
    """The raw payload could not be parsed into an email."""


@dataclass(frozen=True)
class Link:
    url: str
    text: str = ""


@dataclass(frozen=True)
class NormalizedEmail:
    """Canonical view of one fetched message."""

    uid: int
    message_id: str
    subject: str
    sender: str
    received_at: Optional[datetime]
    text_body: str
    html_body: str = field(default="", repr=False)
    links: tuple[Link, ...] = ()


# ── Noise detection tokens ────────────────────────────────
_NOISE_TOKENS = [
    "color:",
    "font-",
    "px",
    "{",
    "}",
    "margin",
    "padding",
    "z-index",
    "mso-",
    "a:visited",
]


def is_noise_text(text: str, threshold: int = 3) -> bool:
    """Return True if *text* looks like CSS / HTML junk rather than real content."""
    lowered = text.lower()
    hits = sum(1 for tok in _NOISE_TOKENS if tok in lowered)
    return hits >= threshold


# ── MIME helpers ──────────────────────────────────────────


def decode_mime_text(value: Optional[str]) -> str:
    """Decode a MIME-encoded header value to a plain string."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value))).strip()
    except (UnicodeDecodeError, LookupError, ValueError):
        return str(value).strip()


def parse_date(date_raw: str) -> Optional[datetime]:
    """Parse a raw email date into a timezone-aware datetime, or None."""
    if not date_raw:
        return None
    try:
        dt = parsedate_to_datetime(date_raw)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def html_to_text(html: str) -> str:
    """Strip HTML tags and return readable text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def _decode_part(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def extract_bodies(msg: Message) -> tuple[str, str]:
    """Return ``(text_body, html_body)`` for *msg*.

    The text body prefers ``text/plain`` parts unless they are mostly CSS
    leftovers, in which case the HTML is converted to text instead.
    """
    plain_parts: List[str] = []
    html_parts: List[str] = []

    parts = msg.walk() if msg.is_multipart() else [msg]
    for part in parts:
        if part.is_multipart():
            continue
        cdisp = str(part.get("Content-Disposition", "")).lower()
        if "attachment" in cdisp:
            continue
        ctype = part.get_content_type()
        if ctype == "text/html":
            html_parts.append(_decode_part(part))
        elif ctype == "text/plain":
            plain_parts.append(_decode_part(part))

    plain_text = "\n".join(p for p in plain_parts if p).strip()
    html_body = "\n".join(p for p in html_parts if p)

    if plain_text and not is_noise_text(plain_text):
        return plain_text, html_body
    if html_body:
        return html_to_text(html_body), html_body
    return plain_text, html_body


# ── Link extraction ───────────────────────────────────────

_BARE_URL_RE = re.compile(r"\bhttps?://[^\s<>\"')\]]+", re.IGNORECASE)


def extract_links_from_html(html: str) -> List[Link]:
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    links: List[Link] = []
    for anchor in soup.find_all("a", href=True):
        url = normalize_url(anchor["href"])
        if not url:
            continue
        links.append(Link(url=url, text=collapse_whitespace(anchor.get_text(" "))))
    return links


def extract_links_from_text(text: str) -> List[Link]:
    if not text:
        return []
    links: List[Link] = []
    for match in _BARE_URL_RE.finditer(text):
        url = normalize_url(match.group(0))
        if url:
            links.append(Link(url=url))
    return links


def dedupe_links(links: List[Link], max_links: int) -> List[Link]:
    """Keep the first occurrence of each exact URL, at most *max_links* of them."""
    by_url: dict[str, Link] = {}
    for link in links:
        if len(by_url) >= max_links:
            break
        url = normalize_url(link.url)
        if url and url not in by_url:
            by_url[url] = Link(url=url, text=normalize_string(link.text))
    return list(by_url.values())


# ── Top-level parser ─────────────────────────────────────


def _extract_message_id(msg: Message) -> Optional[str]:
    """Extract and normalize the Message-ID header."""
    raw = msg.get("Message-ID", "") or msg.get("Message-Id", "")
    if not raw:
        return None
    cleaned = str(raw).strip().strip("<>").strip()
    return cleaned if cleaned else None


def normalize_message(raw: RawMessage, max_links: int = 20) -> NormalizedEmail:
    """Parse a fetched :class:`RawMessage` into a :class:`NormalizedEmail`.

    Raises:
        MalformedMessage: when the payload is empty or has no parseable headers.
    """
    if not isinstance(raw.source, (bytes, bytearray)) or not raw.source.strip():
        raise MalformedMessage(f"UID {raw.uid} has an empty payload")

    msg = email_lib.message_from_bytes(bytes(raw.source))
    if not msg.keys():
        raise MalformedMessage(f"UID {raw.uid} has no parseable headers")

    subject = normalize_string(decode_mime_text(msg.get("Subject", "")), "(No Subject)")
    sender = normalize_string(decode_mime_text(msg.get("From", "")), "(Unknown)")
    received_at = parse_date(decode_mime_text(msg.get("Date", "")))
    message_id = _extract_message_id(msg) or f"imap-{raw.uid}"
    text_body, html_body = extract_bodies(msg)

    links = dedupe_links(
        extract_links_from_html(html_body) + extract_links_from_text(text_body),
        max_links=max_links,
    )

    return NormalizedEmail(
        uid=raw.uid,
        message_id=message_id,
        subject=subject,
        sender=sender,
        received_at=received_at,
        text_body=text_body,
        html_body=html_body,
        links=tuple(links),
    )
