import asyncio
import threading
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from atscan.models.schemas import Category, CategorySet, ScanOptions, ValidationRecord
from atscan.models.settings import ScanSettings, ValidationSettings
from atscan.services.esco_client import ESCOClient
from atscan.services.extractor import KeywordExtractor, industry_diversity, merge_validation
from atscan.services.pipeline import ScanPipeline
from atscan.utils.exceptions import InputError, ProcessingError

JOB_DESCRIPTION = "Senior Python developer with AWS, Docker and SQL experience. Leadership required."
RESUME = "Python developer. Worked with AWS and SQL. Strong leadership."
PYTHON_SKILL = {"title": "Python", "alternativeLabels": ["python programming"], "skillType": "knowledge"}


class RecordingHandler:
    """ESCO endpoint that knows a fixed set of skills (only 'python' by default); optionally unreachable"""

    def __init__(self, reachable: bool = True, skills: dict = None):
        self.reachable = reachable
        self.skills = {"python": PYTHON_SKILL} if skills is None else skills
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.params["text"])
        if not self.reachable:
            raise httpx.ConnectError("connection refused", request=request)
        results = []
        text = request.url.params["text"]
        if text in self.skills and request.url.params["type"] == "skill":
            results = [self.skills[text]]
        return httpx.Response(200, json={"_embedded": {"results": results}})


def make_pipeline(handler, settings: ScanSettings = None) -> ScanPipeline:
    settings = settings or ScanSettings()
    client = ESCOClient(
        settings.validation,
        settings.cache,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return ScanPipeline(settings, client)


class TestScanPipeline:
    """End-to-end scans"""

    @pytest.mark.asyncio
    async def test_scan_without_reference(self):
        """An unreachable reference degrades to basic categorization"""
        pipeline = make_pipeline(RecordingHandler(reachable=False))
        result = await pipeline.scan(JOB_DESCRIPTION, RESUME)

        assert 0 <= result.score.total_score <= 100
        assert result.score.quality_metrics.esco_validation_rate == 0.0
        assert result.job_description.stats.fallback_reason == "service_unavailable"

        matched = set(result.matching.matching_by_category[Category.HARD_SKILLS])
        assert {"python", "AWS", "SQL"} <= matched
        assert "docker" in result.matching.missing_by_category[Category.HARD_SKILLS]

    @pytest.mark.asyncio
    async def test_validation_enriches_terms(self):
        handler = RecordingHandler()
        result = await make_pipeline(handler).scan(JOB_DESCRIPTION, RESUME)

        assert result.job_description.stats.validated_count == 1
        assert result.job_description.stats.fallback_reason is None
        assert "python programming" in result.job_description.terms.get(Category.HARD_SKILLS)
        assert result.score.quality_metrics.esco_validation_rate > 0
        assert handler.requests

    @pytest.mark.asyncio
    async def test_validation_disabled_per_request(self):
        handler = RecordingHandler()
        result = await make_pipeline(handler).scan(
            JOB_DESCRIPTION, RESUME, ScanOptions(enable_validation=False),
        )

        assert handler.requests == []
        assert result.resume.stats.fallback_reason == "disabled"
        assert result.score.quality_metrics.esco_validation_rate == 0.0

    @pytest.mark.asyncio
    async def test_matching_summary(self):
        result = await make_pipeline(RecordingHandler()).scan(JOB_DESCRIPTION, RESUME)
        matching = result.matching

        assert matching.total_jd_terms == result.job_description.total_terms
        assert matching.total_matching_terms + matching.total_missing_terms == matching.total_jd_terms
        assert 0 <= matching.matching_rate <= 100
        assert result.job_description.word_count == len(JOB_DESCRIPTION.split())

    @pytest.mark.asyncio
    async def test_terms_outside_the_vocabulary_are_validated(self):
        """A term no built-in dictionary knows still reaches the reference and is scored"""
        phlebotomy = {"title": "phlebotomy", "skillType": "knowledge"}
        handler = RecordingHandler(skills={"phlebotomy": phlebotomy})
        result = await make_pipeline(handler).scan(
            "Registered nurse skilled in phlebotomy and triage", "Nurse with phlebotomy",
        )

        assert "phlebotomy" in handler.requests
        assert "phlebotomy" in result.job_description.terms.get(Category.HARD_SKILLS)
        assert "phlebotomy" in result.matching.matching_by_category[Category.HARD_SKILLS]
        assert result.score.total_score > 0

    @pytest.mark.asyncio
    async def test_importance_weights_computed_off_the_event_loop(self):
        loop_thread = threading.get_ident()
        weighting_threads = []

        def fake_weights(documents, terms):
            weighting_threads.append(threading.get_ident())
            return {}

        with patch("atscan.services.pipeline.compute_importance_weights", side_effect=fake_weights):
            result = await make_pipeline(RecordingHandler()).scan(JOB_DESCRIPTION, RESUME)

        assert len(weighting_threads) == 1
        assert weighting_threads[0] != loop_thread
        assert 0 <= result.score.total_score <= 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize("jd,resume", [("", RESUME), (JOB_DESCRIPTION, "   "), (None, RESUME)])
    async def test_empty_documents_are_rejected(self, jd, resume):
        with pytest.raises(InputError):
            await make_pipeline(RecordingHandler()).scan(jd, resume)


class TestKeywordExtractor:
    """Per-document extraction and its fallbacks"""

    @pytest.mark.asyncio
    async def test_without_client(self):
        result = await KeywordExtractor().extract_and_validate("Python developer", "resume", 20)
        assert result.stats.fallback_reason == "disabled"
        assert result.basic_terms.get(Category.HARD_SKILLS) == ["python"]
        assert result.basic_terms.get(Category.JOB_TITLES) == ["developer"]

    @pytest.mark.asyncio
    async def test_validation_stage_timeout(self):
        class SlowClient:
            async def validate_terms(self, terms, threshold=None):
                await asyncio.sleep(1)

        settings = ScanSettings(validation=ValidationSettings(stage_timeout=0.05))
        result = await KeywordExtractor(settings, SlowClient()).extract_and_validate("Python developer", "resume", 20)

        assert result.stats.fallback_reason == "timeout"
        assert result.validated_terms == result.basic_terms

    @pytest.mark.asyncio
    async def test_extraction_timeout_yields_no_terms(self):
        extractor = KeywordExtractor(ScanSettings(extraction_timeout=0.05))

        def slow_extract(text):
            time.sleep(0.3)
            return ["python"], {}

        with patch.object(extractor, "_extract_basic", side_effect=slow_extract):
            result = await extractor.extract_and_validate("Python developer", "resume", 20)

        assert result.raw_terms == []
        assert result.basic_terms.total() == 0

    @pytest.mark.asyncio
    async def test_categorization_failure_raises(self):
        matcher = MagicMock()
        matcher.categorize.side_effect = RuntimeError("dictionary corrupted")
        extractor = KeywordExtractor(matcher=matcher)

        with pytest.raises(ProcessingError) as exc_info:
            await extractor.extract_and_validate("Python developer", "resume", 20)
        assert exc_info.value.details["stage"] == "categorization"
        assert exc_info.value.details["document_type"] == "resume"

    def test_merge_validation(self):
        basic = CategorySet({Category.HARD_SKILLS: ["kubernetes", "go"]})
        records = [
            ValidationRecord(
                term="kubernetes", is_validated=True, confidence=0.95, matched_category=Category.HARD_SKILLS,
                canonical_title="Kubernetes orchestration", suggestions=("k8s", "container orchestration", "helm"),
            ),
            ValidationRecord(term="go", is_validated=False, confidence=0.5),
            ValidationRecord(
                term="team lead", is_validated=True, confidence=0.85, matched_category=Category.JOB_TITLES,
                canonical_title="team leader", suggestions=("supervisor",),
            ),
        ]
        enriched, confirmed = merge_validation(basic, records, 0.7)

        assert enriched.get(Category.HARD_SKILLS) == [
            "container orchestration", "go", "k8s", "kubernetes", "Kubernetes orchestration",
        ]
        assert enriched.get(Category.JOB_TITLES) == ["team lead", "team leader"]
        assert "go" not in confirmed
        assert "supervisor" not in confirmed
        assert "kubernetes orchestration" in confirmed

    def test_industry_diversity(self):
        records = [
            ValidationRecord(term="a", is_validated=True, confidence=1.0, canonical_title="software developer"),
            ValidationRecord(term="b", is_validated=True, confidence=1.0, canonical_title="marketing manager"),
            ValidationRecord(term="c", is_validated=False, canonical_title="nurse"),
        ]
        assert industry_diversity(records) == ["Information Technology", "Marketing & Sales"]
