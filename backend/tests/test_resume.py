"""Tests for resume tailoring, PDF rendering and artifact storage."""

from __future__ import annotations

from typing import Any, Optional, Sequence

import pytest

from job_ingest.config import AppConfig
from job_ingest.extraction.candidates import OpportunityCandidate
from job_ingest.extraction.llm import GenerationError, GenerationResult
from job_ingest.repository import DEFAULT_PROFILE
from job_ingest.resume.generator import (
    CertificationEntry,
    ExperienceEntry,
    ProjectEntry,
    ResumeDocument,
    resume_from_profile,
    tailor_resume,
)
from job_ingest.resume.renderer import MARGIN, ResumePdfRenderer, clean_value, render_resume_pdf
from job_ingest.resume.storage import LocalArtifactStore

PROFILE: dict[str, Any] = {
    "personal_info": {
        "name": "Dana Reyes",
        "email": "dana@example.com",
        "phone": "555-0100",
        "location": "Austin, TX",
    },
    "summary": "Backend engineer with eight years of API work.",
    "skills": ["Python", "PostgreSQL", None, ""],
    "experience": [
        {
            "title": "Senior Engineer",
            "company": "Initech",
            "start_date": "2020",
            "end_date": "2024",
            "highlights": ["Cut p99 latency by 40%"],
        }
    ],
    "education": [{"degree": "BSc Computer Science", "institution": "UT Austin", "year": 2015}],
    "certifications": [{"name": "AWS SA", "issuer": "Amazon"}],
}

OPPORTUNITY = OpportunityCandidate(
    job_title="Platform Engineer",
    company="Acme",
    location="Remote",
    description="Own our Python services.",
    required_skills=("python", "kubernetes"),
)


class _StubProvider:
    name = "stub"
    model = "stub-model"

    def __init__(self, response: Any) -> None:
        self._response = response

    def generate(
        self, prompt: str, schema: dict[str, Any], tools: Optional[Sequence[str]] = None
    ) -> GenerationResult:
        if isinstance(self._response, Exception):
            raise self._response
        return GenerationResult(parsed=self._response, text="")


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(llm_timeout_sec=5)


class _BaselineRecorder(ResumePdfRenderer):
    """Remembers the baseline of every string drawn."""

    def __init__(self) -> None:
        super().__init__()
        self.baselines: list[float] = []

    def _draw(self, text, x, style, size, align="left"):
        self.baselines.append(self.page_height - self.y)
        super()._draw(text, x, style, size, align)


class TestResumeFromProfile:
    def test_maps_profile_fields(self):
        document = resume_from_profile(PROFILE)

        assert document.name == "Dana Reyes"
        assert document.contact == "555-0100 | dana@example.com | Austin, TX"
        assert document.skills == ["Python", "PostgreSQL"]
        assert document.experience[0].period == "2020 - 2024"
        assert document.experience[0].points == ["Cut p99 latency by 40%"]
        assert document.education[0].school == "UT Austin"
        assert document.education[0].year == "2015"

    def test_default_profile(self):
        document = resume_from_profile(DEFAULT_PROFILE)
        assert document.name == "Candidate"
        assert document.contact == "candidate@example.com"
        assert document.experience == []


class TestTailorResume:
    def test_disabled_provider_degrades_to_profile(self, config):
        outcome = tailor_resume(PROFILE, OPPORTUNITY, None, config)
        assert outcome.is_degraded
        assert outcome.value.name == "Dana Reyes"

    def test_generation_error_degrades_to_profile(self, config):
        outcome = tailor_resume(PROFILE, OPPORTUNITY, _StubProvider(GenerationError("quota")), config)
        assert outcome.is_degraded
        assert "quota" in outcome.degraded_reason
        assert outcome.value.summary == PROFILE["summary"]

    def test_model_output_is_validated_leniently(self, config):
        provider = _StubProvider(
            {
                "name": "Dana Reyes",
                "contact": "dana@example.com",
                "summary": None,
                "experience": [{"title": "Engineer", "company": "Initech", "points": ["a", None]}],
                "education": [{"school": "UT", "year": 2015}],
                "skills": ["python", 3],
            }
        )
        outcome = tailor_resume(PROFILE, OPPORTUNITY, provider, config)

        assert not outcome.is_degraded
        document = outcome.value
        assert document.summary == ""
        assert document.experience[0].points == ["a"]
        assert document.education[0].year == "2015"
        assert document.skills == ["python", "3"]


class TestRenderer:
    def test_renders_pdf_bytes(self):
        pdf = render_resume_pdf(resume_from_profile(PROFILE))
        assert pdf.startswith(b"%PDF")

    def test_long_resume_spans_pages(self):
        document = ResumeDocument(
            name="Dana Reyes",
            contact="dana@example.com",
            experience=[
                ExperienceEntry(
                    title=f"Engineer {i}",
                    company="Initech",
                    period="2020 - 2024",
                    points=["Shipped a meaningful improvement to a production system"] * 4,
                )
                for i in range(20)
            ],
        )
        renderer = ResumePdfRenderer()
        pdf = renderer.render(document)

        assert renderer.page_count > 1
        assert pdf.startswith(b"%PDF")

    def test_short_resume_fits_one_page(self):
        renderer = ResumePdfRenderer()
        renderer.render(ResumeDocument(name="Dana", contact="dana@example.com"))
        assert renderer.page_count == 1

    def test_text_taller_than_a_page_stays_inside_margins(self):
        long_text = " ".join(["throughput"] * 1500)
        document = ResumeDocument(
            name="Dana Reyes",
            contact="dana@example.com",
            summary=long_text,
            experience=[ExperienceEntry(title="Engineer", company="Initech", points=[long_text])],
            projects=[ProjectEntry(name="Pipeline", description=long_text)],
        )
        renderer = _BaselineRecorder()
        renderer.render(document)

        assert renderer.page_count > 3
        assert min(renderer.baselines) >= MARGIN

    def test_placeholders_are_dropped(self):
        assert clean_value("N/A") == ""
        assert clean_value(" unknown ") == ""
        assert clean_value("Present") == ""
        assert clean_value("2020 - Present") == "2020 - Present"

    def test_non_latin_text_does_not_break_rendering(self):
        document = ResumeDocument(
            name="Zoë 李",
            contact="✉ zoe@example.com",
            certifications=[CertificationEntry(name="CKA", issuer="N/A", year="Ongoing")],
        )
        assert render_resume_pdf(document).startswith(b"%PDF")


class TestLocalArtifactStore:
    def test_writes_file_and_returns_public_url(self, tmp_path):
        store = LocalArtifactStore(tmp_path, "http://localhost:54350/")
        url = store.upload("1/2/resume-10.pdf", b"%PDF-1.4", "application/pdf")

        assert url == "http://localhost:54350/artifacts/1/2/resume-10.pdf"
        assert (tmp_path / "1" / "2" / "resume-10.pdf").read_bytes() == b"%PDF-1.4"

    def test_rejects_path_traversal(self, tmp_path):
        store = LocalArtifactStore(tmp_path, "http://localhost")
        with pytest.raises(ValueError):
            store.upload("../escape.pdf", b"x", "application/pdf")
