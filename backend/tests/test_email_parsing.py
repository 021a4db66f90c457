"""Tests for message normalization and keyword relevance filtering."""

from __future__ import annotations

from email.message import EmailMessage

import pytest

from job_ingest.email.classifier import (
    DEFAULT_KEYWORDS,
    SCOPE_SUBJECT,
    SCOPE_SUBJECT_OR_BODY,
    is_relevant,
    normalize_keywords,
)
from job_ingest.email.client import RawMessage
from job_ingest.email.parser import (
    Link,
    MalformedMessage,
    dedupe_links,
    extract_links_from_text,
    normalize_message,
)


def _raw(
    uid: int = 7,
    subject: str | None = "Backend Engineer at Acme",
    sender: str = "Acme Careers <jobs@acme.io>",
    text: str | None = "We are hiring. Apply at https://acme.io/jobs/42",
    html: str | None = None,
    message_id: str | None = "<abc123@acme.io>",
) -> RawMessage:
    msg = EmailMessage()
    if subject is not None:
        msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = "candidate@example.com"
    msg["Date"] = "Tue, 17 Feb 2026 09:30:00 +0000"
    if message_id:
        msg["Message-ID"] = message_id
    if text is not None:
        msg.set_content(text)
    if html is not None:
        if text is None:
            msg.set_content(html, subtype="html")
        else:
            msg.add_alternative(html, subtype="html")
    return RawMessage(uid=uid, envelope={}, source=msg.as_bytes())


class TestNormalizeMessage:
    def test_headers_and_message_id(self):
        email = normalize_message(_raw())

        assert email.uid == 7
        assert email.message_id == "abc123@acme.io"
        assert email.subject == "Backend Engineer at Acme"
        assert email.sender == "Acme Careers <jobs@acme.io>"
        assert email.received_at is not None
        assert email.received_at.tzinfo is not None

    def test_missing_message_id_uses_uid(self):
        email = normalize_message(_raw(uid=99, message_id=None))
        assert email.message_id == "imap-99"

    def test_missing_subject_defaults(self):
        email = normalize_message(_raw(subject=None))
        assert email.subject == "(No Subject)"

    def test_links_from_text(self):
        email = normalize_message(_raw())
        assert [link.url for link in email.links] == ["https://acme.io/jobs/42"]

    def test_html_only_message_converted_to_text(self):
        html = (
            "<html><body><p>Two roles open.</p>"
            '<a href="https://acme.io/jobs/1">Platform Engineer</a>'
            '<a href="mailto:hr@acme.io">Email us</a>'
            '<a href="https://acme.io/jobs/1">Platform Engineer again</a>'
            "</body></html>"
        )
        email = normalize_message(_raw(text=None, html=html))

        assert "Two roles open." in email.text_body
        assert email.links == (Link(url="https://acme.io/jobs/1", text="Platform Engineer"),)

    def test_links_are_capped(self):
        body = " ".join(f"https://acme.io/jobs/{i}" for i in range(30))
        email = normalize_message(_raw(text=body), max_links=5)
        assert len(email.links) == 5
        assert email.links[0].url == "https://acme.io/jobs/0"

    def test_empty_payload_is_malformed(self):
        with pytest.raises(MalformedMessage):
            normalize_message(RawMessage(uid=1, envelope={}, source=b""))

    def test_headerless_payload_is_malformed(self):
        with pytest.raises(MalformedMessage):
            normalize_message(RawMessage(uid=1, envelope={}, source=b"\r\n\r\njust a body"))


class TestLinkHelpers:
    def test_only_http_urls_survive(self):
        links = extract_links_from_text("see https://a.io/x and ftp://b.io/y and http://c.io")
        assert [link.url for link in links] == ["https://a.io/x", "http://c.io"]

    def test_dedupe_keeps_first_occurrence(self):
        links = dedupe_links(
            [Link("https://a.io", "first"), Link("https://a.io", "second"), Link("nope")],
            max_links=10,
        )
        assert links == [Link("https://a.io", "first")]


class TestRelevance:
    def test_normalize_keywords_trims_and_dedupes(self):
        assert normalize_keywords([" Hiring ", "hiring", "", "JOB"]) == ["hiring", "job"]

    def test_empty_keywords_fall_back_to_defaults(self):
        assert normalize_keywords([]) == DEFAULT_KEYWORDS
        assert normalize_keywords(None) == DEFAULT_KEYWORDS

    def test_subject_match_is_case_insensitive(self):
        email = normalize_message(_raw(subject="We are HIRING engineers"))
        assert is_relevant(email, ["hiring"], SCOPE_SUBJECT)

    def test_body_ignored_for_subject_scope(self):
        email = normalize_message(_raw(subject="Weekly digest", text="New hiring news inside"))
        assert not is_relevant(email, ["hiring"], SCOPE_SUBJECT)

    def test_body_checked_for_subject_or_body_scope(self):
        email = normalize_message(_raw(subject="Weekly digest", text="New hiring news inside"))
        assert is_relevant(email, ["hiring"], SCOPE_SUBJECT_OR_BODY)
