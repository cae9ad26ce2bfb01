"""
End-to-end scan of a job description against a resume
"""
import asyncio
import logging
import time
from typing import Dict, List

from atscan.models.schemas import (
    Category, CategorySet, DocumentAnalysis, ExtractionResult, MatchingSummary, ScanOptions, ScanResult,
    ScoreResult,
)
from atscan.models.settings import ScanSettings
from atscan.services.esco_client import ESCOClient
from atscan.services.extractor import KeywordExtractor
from atscan.services.scorer import ATSScorer
from atscan.services.weighting import compute_importance_weights
from atscan.utils.exceptions import InputError
from atscan.utils.logging_config import get_logger

JOB_DESCRIPTION = "job_description"
RESUME = "resume"


def _require_text(text: str, document_type: str) -> None:
    if not isinstance(text, str) or not text.strip():
        raise InputError(f"{document_type.replace('_', ' ').capitalize()} text is empty", document_type=document_type)


def analyze_document(text: str, extraction: ExtractionResult) -> DocumentAnalysis:
    terms = extraction.validated_terms
    return DocumentAnalysis(
        word_count=len(text.split()),
        terms=terms,
        basic_terms=extraction.basic_terms,
        uncategorized=extraction.uncategorized,
        total_terms=terms.total(),
        category_distribution=terms.counts(),
        stats=extraction.stats,
        performance=extraction.performance,
    )


def summarize_matching(jd_terms: CategorySet, resume_terms: CategorySet, score: ScoreResult) -> MatchingSummary:
    matching: Dict[Category, List[str]] = {}
    missing: Dict[Category, List[str]] = {}
    rates: Dict[Category, float] = {}
    for category in Category:
        dimension = score.per_category[category]
        matching[category] = dimension.matched_terms
        missing[category] = dimension.missing_terms
        rates[category] = (
            round(dimension.matched_count / dimension.total_count * 100, 2) if dimension.total_count else 0.0
        )

    total_jd = jd_terms.total()
    total_matching = sum(len(v) for v in matching.values())
    return MatchingSummary(
        total_jd_terms=total_jd,
        total_resume_terms=resume_terms.total(),
        total_matching_terms=total_matching,
        total_missing_terms=sum(len(v) for v in missing.values()),
        matching_rate=round(total_matching / total_jd * 100, 2) if total_jd else 0.0,
        matching_by_category=matching,
        missing_by_category=missing,
        category_match_rates=rates,
    )


class ScanPipeline:
    """
    Scores a resume against a job description.

    One instance serves the whole process; it holds no per-scan state apart
    from the validation client's caches.
    """

    def __init__(self, settings: ScanSettings = None, esco_client: ESCOClient = None, logger: logging.Logger = None):
        self.settings = settings or ScanSettings()
        self.logger = logger or get_logger(__name__)
        self.esco = esco_client
        self.extractor = KeywordExtractor(self.settings, esco_client, logger=self.logger)
        self.scorer = ATSScorer(self.settings.weights, logger=self.logger)

    async def scan(self, job_description: str, resume_text: str, options: ScanOptions = None) -> ScanResult:
        _require_text(job_description, JOB_DESCRIPTION)
        _require_text(resume_text, RESUME)
        options = options or ScanOptions()
        validation = self.settings.validation

        enabled = validation.enabled if options.enable_validation is None else options.enable_validation
        threshold = (
            validation.confidence_threshold if options.confidence_threshold is None else options.confidence_threshold
        )
        jd_max = (
            validation.max_terms_job_description
            if options.max_terms_job_description is None else options.max_terms_job_description
        )
        resume_max = validation.max_terms_resume if options.max_terms_resume is None else options.max_terms_resume

        started = time.perf_counter()
        self.logger.info(
            f"Starting scan: job description {len(job_description)} chars, resume {len(resume_text)} chars, "
            f"validation {'on' if enabled else 'off'}"
        )

        jd, resume = await asyncio.gather(
            self.extractor.extract_and_validate(job_description, JOB_DESCRIPTION, jd_max, enabled, threshold),
            self.extractor.extract_and_validate(resume_text, RESUME, resume_max, enabled, threshold),
        )

        universe = jd.validated_terms.all_terms() + resume.validated_terms.all_terms()
        loop = asyncio.get_running_loop()
        importance = await loop.run_in_executor(
            None, compute_importance_weights, [job_description, resume_text], universe,
        )
        validated = set(jd.validated_set) | set(resume.validated_set)

        score = self.scorer.calculate_score(jd.validated_terms, resume.validated_terms, importance, validated)
        result = ScanResult(
            score=score,
            job_description=analyze_document(job_description, jd),
            resume=analyze_document(resume_text, resume),
            matching=summarize_matching(jd.validated_terms, resume.validated_terms, score),
            processing_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        self.logger.info(f"Scan completed in {result.processing_ms}ms: {score.total_score}/100 ({score.level.value})")
        return result
