"""Resume PDF rendering with reportlab.

Layout is a single column on US-letter pages. A cursor measured from the top
of the page tracks the current baseline. Short blocks are kept on one page;
every line is checked against the bottom margin and starts a new page when it
would not fit.
"""

from __future__ import annotations

import re
from io import BytesIO
from typing import Optional

from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from job_ingest.resume.generator import ResumeDocument

MARGIN = 40
TOP = 50
LINE_HEIGHT = 1.4
BODY_SIZE = 11

_FONTS = {
    "normal": "Helvetica",
    "bold": "Helvetica-Bold",
    "italic": "Helvetica-Oblique",
}

_PLACEHOLDER_RE = re.compile(r"^(n/?a|unknown|none|ongoing|present)$", re.IGNORECASE)


def clean_value(value: Optional[str]) -> str:
    """Strip *value* and drop placeholder words such as ``N/A`` or ``Unknown``."""
    text = (value or "").strip()
    return "" if _PLACEHOLDER_RE.match(text) else text


def sanitize(text: str) -> str:
    """Remove bullets and characters the standard Helvetica encoding lacks."""
    text = str(text).replace("•", "")
    return "".join(ch if ord(ch) < 256 else " " for ch in text).strip()


class ResumePdfRenderer:
    """Draws one :class:`ResumeDocument` onto a fresh PDF canvas."""

    def __init__(self) -> None:
        self._buffer = BytesIO()
        self.page_width, self.page_height = LETTER
        self.content_width = self.page_width - MARGIN * 2
        self._canvas = canvas.Canvas(self._buffer, pagesize=LETTER)
        self.y = float(TOP)
        self.page_count = 1

    # ── primitives ────────────────────────────────────────

    def ensure_space(self, height: float) -> None:
        if self.y + height > self.page_height - MARGIN:
            self._canvas.showPage()
            self.y = float(TOP)
            self.page_count += 1

    def _draw(self, text: str, x: float, style: str, size: float, align: str = "left") -> None:
        font = _FONTS[style]
        self._canvas.setFont(font, size)
        self._canvas.setFillColorRGB(0, 0, 0)
        baseline = self.page_height - self.y
        if align == "center":
            self._canvas.drawCentredString(x, baseline, text)
        elif align == "right":
            self._canvas.drawRightString(x, baseline, text)
        else:
            self._canvas.drawString(x, baseline, text)

    def _split(self, text: str, style: str, size: float, width: float) -> list[str]:
        return simpleSplit(text, _FONTS[style], size, width) if text else []

    def _width(self, text: str, style: str, size: float) -> float:
        return stringWidth(text, _FONTS[style], size)

    def _dot(self, x: float, radius: float, size: float) -> None:
        self._canvas.setFillColorRGB(0, 0, 0)
        self._canvas.circle(x, self.page_height - self.y + size / 3, radius, stroke=0, fill=1)

    def _draw_lines(self, lines: list[str], x: float, style: str, size: float, align: str = "left") -> None:
        """Draw *lines* top-down, breaking to a new page before any line that does not fit."""
        line_height = size * LINE_HEIGHT
        for line in lines:
            self.ensure_space(line_height)
            self._draw(line, x, style, size, align)
            self.y += line_height

    def _keep_together(self, height: float) -> None:
        # Blocks taller than a page break line by line instead
        self.ensure_space(min(height, self.page_height - MARGIN - TOP))

    def text_block(
        self,
        text: Optional[str],
        size: float = BODY_SIZE,
        style: str = "normal",
        align: str = "left",
        bottom_spacing: float = 0,
    ) -> None:
        clean = sanitize(text or "")
        if not clean:
            return
        lines = self._split(clean, style, size, self.content_width)
        self._keep_together(len(lines) * size * LINE_HEIGHT)
        x = {"center": self.page_width / 2, "right": self.page_width - MARGIN}.get(align, MARGIN)
        self._draw_lines(lines, x, style, size, align)
        self.y += bottom_spacing

    def section_header(self, title: str) -> None:
        self.ensure_space(30)
        self.y += 10
        self._draw(title.upper(), MARGIN, "bold", 12)
        self.y += 6
        baseline = self.page_height - self.y
        self._canvas.setLineWidth(1)
        self._canvas.line(MARGIN, baseline, self.page_width - MARGIN, baseline)
        self.y += 15

    def bullet(self, text: str) -> None:
        indent = 12
        clean = sanitize(text)
        if not clean:
            return
        lines = self._split(clean, "normal", BODY_SIZE, self.content_width - indent)
        self._keep_together(len(lines) * BODY_SIZE * LINE_HEIGHT)
        self.ensure_space(BODY_SIZE * LINE_HEIGHT)
        self._dot(MARGIN + 3, 2, BODY_SIZE)
        self._draw_lines(lines, MARGIN + indent, "normal", BODY_SIZE)
        self.y += 4

    def _row(self, left: str, right: str, left_style: str) -> None:
        """Left-aligned text with a right-aligned companion on the same line."""
        right = sanitize(right)
        right_width = self._width(right, "normal", BODY_SIZE) if right else 0
        available = self.content_width - right_width - (20 if right else 0)
        lines = self._split(sanitize(left), left_style, BODY_SIZE, available)
        self.ensure_space(BODY_SIZE * LINE_HEIGHT)
        start, page = self.y, self.page_count
        if right:
            self._draw(right, self.page_width - MARGIN, "normal", BODY_SIZE, align="right")
        self._draw_lines(lines, MARGIN, left_style, BODY_SIZE)
        if self.page_count == page:
            self.y = max(self.y, start + 14)

    # ── sections ──────────────────────────────────────────

    def _skills(self, skills: list[str]) -> None:
        items = [s for s in (sanitize(skill) for skill in skills) if s]
        if not items:
            return
        self.section_header("Skills")
        h = BODY_SIZE * LINE_HEIGHT
        radius, gap = 1.5, 5
        right_edge = self.page_width - MARGIN
        x = float(MARGIN)
        self.ensure_space(h)

        for index, text in enumerate(items):
            width = self._width(text, "normal", BODY_SIZE)
            if x > MARGIN and x + width > right_edge:
                x = MARGIN
                self.y += h
                self.ensure_space(h)

            if width > self.content_width:
                wrapped = self._split(text, "normal", BODY_SIZE, self.content_width)
                for line_index, line in enumerate(wrapped):
                    self.ensure_space(h)
                    self._draw(line, MARGIN, "normal", BODY_SIZE)
                    if line_index < len(wrapped) - 1:
                        self.y += h
                    else:
                        x = MARGIN + self._width(line, "normal", BODY_SIZE)
            else:
                self._draw(text, x, "normal", BODY_SIZE)
                x += width

            if index < len(items) - 1:
                if x + gap * 2 + radius * 2 > right_edge:
                    x = MARGIN
                    self.y += h
                    self.ensure_space(h)
                x += gap
                self._dot(x + radius, radius, BODY_SIZE)
                x += radius * 2 + gap

        self.y += h + 10

    def _experience(self, document: ResumeDocument) -> None:
        if not document.experience:
            return
        self.section_header("Experience")
        for entry in document.experience:
            self.ensure_space(50)
            self._row(clean_value(entry.title).upper(), clean_value(entry.period), "bold")
            self._row(clean_value(entry.company), clean_value(entry.location), "italic")
            self.y += 4
            for point in entry.points:
                self.bullet(point)
            self.y += 6

    def _projects(self, document: ResumeDocument) -> None:
        if not document.projects:
            return
        self.section_header("Projects")
        for project in document.projects:
            self.ensure_space(30)
            name = sanitize(clean_value(project.name))
            if name:
                self._draw(name, MARGIN, "bold", BODY_SIZE)
                self.y += 14
            self.text_block(clean_value(project.description), bottom_spacing=4)
            link = clean_value(project.link)
            if link:
                self.text_block(link, size=9, style="italic")
            self.y += 6

    def _education(self, document: ResumeDocument) -> None:
        if not document.education:
            return
        self.section_header("Education")
        for entry in document.education:
            self.ensure_space(40)
            self._row(clean_value(entry.school), clean_value(entry.year), "bold")
            degree = ", ".join(
                part for part in (clean_value(entry.degree), clean_value(entry.location)) if part
            )
            self.text_block(degree)
            self.y += 10

    def _certifications(self, document: ResumeDocument) -> None:
        if not document.certifications:
            return
        self.section_header("Certifications")
        for cert in document.certifications:
            self.ensure_space(20)
            text = clean_value(cert.name)
            issuer = clean_value(cert.issuer)
            year = clean_value(cert.year)
            if issuer:
                text += f" - {issuer}"
            if year:
                text += f" ({year})"
            self.bullet(text)
        self.y += 6

    def render(self, document: ResumeDocument) -> bytes:
        self.text_block(clean_value(document.name) or "Candidate", 14, "bold", "center", 5)
        self.text_block(clean_value(document.contact), BODY_SIZE, "normal", "center", 15)

        summary = clean_value(document.summary)
        if summary:
            self.section_header("Professional Summary")
            self.text_block(summary, bottom_spacing=10)

        self._skills(document.skills)
        self._experience(document)
        self._projects(document)
        self._education(document)
        self._certifications(document)

        self._canvas.save()
        return self._buffer.getvalue()


def render_resume_pdf(document: ResumeDocument) -> bytes:
    """Render *document* to PDF bytes."""
    return ResumePdfRenderer().render(document)
