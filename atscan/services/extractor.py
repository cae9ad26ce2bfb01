import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from atscan.helpers.vocabulary import INDUSTRY_KEYWORDS
from atscan.models.schemas import (
    CategorySet, ExtractionPerformance, ExtractionResult, ExtractionStats, ValidationRecord, term_key,
)
from atscan.models.settings import ScanSettings
from atscan.services.categorizer import CategoryMatcher
from atscan.services.esco_client import ESCOClient
from atscan.services.prioritizer import rank_terms
from atscan.services.tokenizer import extract_raw_terms, term_frequencies, tokenize
from atscan.utils.exceptions import ExceptionContext, ValidationServiceError
from atscan.utils.logging_config import PerformanceMonitor, get_logger

MAX_SUGGESTED_TERMS = 10

FALLBACK_DISABLED = "disabled"
FALLBACK_TIMEOUT = "timeout"
FALLBACK_UNAVAILABLE = "service_unavailable"


def merge_validation(basic: CategorySet, records: List[ValidationRecord], threshold: float) -> Tuple[CategorySet, List[str]]:
    """
    Enrich basic categories with what the reference confirmed.

    Validated terms join their matched category; above 0.8 confidence the
    canonical title joins too, above 0.9 the first two suggestions as well.

    Returns:
        (enriched sorted CategorySet, case-folded terms confirmed by the reference)
    """
    enriched = basic.clone()
    confirmed = []
    for record in records:
        if not (record.is_validated and record.confidence >= threshold):
            continue
        category = record.matched_category
        additions = [record.term]
        if record.canonical_title and record.confidence > 0.8:
            additions.append(record.canonical_title)
        if record.confidence > 0.9:
            additions.extend(record.suggestions[:2])
        for term in additions:
            enriched.add(category, term)
            confirmed.append(term_key(term))
    return enriched.sorted(), list(dict.fromkeys(confirmed))


def industry_diversity(records: List[ValidationRecord]) -> List[str]:
    industries = set()
    for record in records:
        if not (record.is_validated and record.canonical_title):
            continue
        title = record.canonical_title.lower()
        for label, fragments in INDUSTRY_KEYWORDS:
            if any(f in title for f in fragments):
                industries.add(label)
                break
    return sorted(industries)


def build_stats(basic: CategorySet, records: List[ValidationRecord], fallback_reason: Optional[str]) -> ExtractionStats:
    total = basic.total()
    validated = sum(1 for r in records if r.is_validated)
    suggestions = list(dict.fromkeys(s for r in records for s in r.suggestions))
    return ExtractionStats(
        total_terms=total,
        validated_count=validated,
        validation_rate=round(validated / total * 100, 1) if total else 0.0,
        industry_diversity=industry_diversity(records),
        suggested_terms=suggestions[:MAX_SUGGESTED_TERMS],
        fallback_reason=fallback_reason,
    )


class KeywordExtractor:
    """Extracts, categorizes and (optionally) validates the terms of one document."""

    def __init__(
        self,
        settings: ScanSettings = None,
        esco_client: ESCOClient = None,
        matcher: CategoryMatcher = None,
        logger: logging.Logger = None,
    ):
        self.settings = settings or ScanSettings()
        self.esco = esco_client
        self.logger = logger or get_logger(__name__)
        self.matcher = matcher or CategoryMatcher(logger=self.logger)

    def _extract_basic(self, text: str) -> Tuple[List[str], Dict[str, int]]:
        options = self.settings.tokenizer
        raw_terms = extract_raw_terms(text, options, self.logger)
        frequencies = term_frequencies(tokenize(text, options, self.logger))
        return raw_terms, frequencies

    async def _basic_terms(self, text: str, document_type: str) -> Tuple[List[str], Dict[str, int]]:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._extract_basic, text),
                timeout=self.settings.extraction_timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Term extraction for {document_type} exceeded {self.settings.extraction_timeout}s, "
                f"continuing without terms"
            )
            return [], {}

    async def _validate(self, terms: List[str], threshold: float, document_type: str
                        ) -> Tuple[List[ValidationRecord], Optional[str]]:
        try:
            records = await asyncio.wait_for(
                self.esco.validate_terms(terms, threshold),
                timeout=self.settings.validation.stage_timeout,
            )
            return records, None
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Validation of {document_type} timed out after {self.settings.validation.stage_timeout}s, "
                f"using basic categorization"
            )
            return [], FALLBACK_TIMEOUT
        except ValidationServiceError as e:
            self.logger.warning(f"Validation of {document_type} unavailable ({e.message}), using basic categorization")
            return [], FALLBACK_UNAVAILABLE

    async def extract_and_validate(
        self,
        text: str,
        document_type: str,
        max_terms: int,
        enable_validation: bool = True,
        threshold: float = None,
    ) -> ExtractionResult:
        """
        Full per-document pipeline: tokenize, categorize, rank, validate, merge.

        Validation trouble only degrades the result (see ``stats.fallback_reason``);
        a failure to tokenize or categorize raises ProcessingError.
        """
        threshold = self.settings.validation.confidence_threshold if threshold is None else threshold
        started = time.perf_counter()

        with PerformanceMonitor(f"basic extraction ({document_type})", self.logger) as basic_timer:
            with ExceptionContext("basic_extraction", self.logger, document_type=document_type):
                raw_terms, frequencies = await self._basic_terms(text, document_type)
            with ExceptionContext("categorization", self.logger, document_type=document_type):
                categorization = self.matcher.categorize(raw_terms)
        basic = categorization.categorized

        records: List[ValidationRecord] = []
        fallback_reason = None
        validation_ms = 0.0
        if not enable_validation or self.esco is None or max_terms <= 0:
            fallback_reason = FALLBACK_DISABLED
        else:
            candidates = rank_terms(raw_terms, max_terms, frequencies)
            self.logger.debug(f"Submitting {len(candidates)} {document_type} terms for validation: {candidates[:5]}")
            if candidates:
                with PerformanceMonitor(f"validation ({document_type})", self.logger) as validation_timer:
                    records, fallback_reason = await self._validate(candidates, threshold, document_type)
                validation_ms = validation_timer.elapsed_ms

        enriched, confirmed = merge_validation(basic, records, threshold)
        result = ExtractionResult(
            raw_terms=raw_terms,
            basic_terms=basic,
            validated_terms=enriched,
            uncategorized=categorization.uncategorized,
            validation_records=records,
            validated_set=confirmed,
            stats=build_stats(basic, records, fallback_reason),
            performance=ExtractionPerformance(
                basic_extraction_ms=round(basic_timer.elapsed_ms, 2),
                validation_ms=round(validation_ms, 2),
                total_ms=round((time.perf_counter() - started) * 1000, 2),
            ),
        )
        self.logger.info(
            f"{document_type}: {len(raw_terms)} raw, {basic.total()} categorized, "
            f"{result.stats.validated_count} validated"
        )
        return result
