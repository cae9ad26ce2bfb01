import logging
import math
from typing import Dict, Iterable, List, Mapping, Set

from atscan.models.schemas import (
    Category, CategorySet, DimensionScore, QualityMetrics, ScoreLevel, ScoreResult, sort_terms, term_key,
)
from atscan.models.settings import ScoringWeights
from atscan.services.weighting import weight_key
from atscan.utils.logging_config import get_logger

# Inclusive ranges covering 0..100 without gaps
SCORE_LEVELS = [
    (ScoreLevel.EXCELLENT, 85, 100),
    (ScoreLevel.GOOD, 70, 84),
    (ScoreLevel.FAIR, 55, 69),
    (ScoreLevel.POOR, 40, 54),
    (ScoreLevel.VERY_POOR, 0, 39),
]

IDEAL_TERM_LENGTH = 8


def score_level(score: int) -> ScoreLevel:
    for level, low, high in SCORE_LEVELS:
        if low <= score <= high:
            return level
    return ScoreLevel.VERY_POOR


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(value: float) -> float:
    return round(value * 100, 1)


class ATSScorer:
    """Cross-references the two documents' term sets into a 0-100 compatibility score."""

    def __init__(self, weights: ScoringWeights = None, logger: logging.Logger = None):
        self.weights = weights or ScoringWeights()
        self.logger = logger or get_logger(__name__)

    @staticmethod
    def dimension_score(
        jd_terms: List[str],
        resume_terms: Iterable[str],
        importance: Mapping[str, float],
        validated: Set[str],
    ) -> DimensionScore:
        resume_keys = {term_key(t) for t in resume_terms}
        matched = [t for t in jd_terms if term_key(t) in resume_keys]
        missing = [t for t in jd_terms if term_key(t) not in resume_keys]
        total = len(jd_terms)

        match_rate = len(matched) / total if total else 0.0

        total_weight = sum(importance.get(weight_key(t), 0.0) for t in jd_terms)
        matched_weight = sum(importance.get(weight_key(t), 0.0) for t in matched)
        importance_score = matched_weight / total_weight if total_weight > 0 else 0.0

        if matched:
            validated_rate = sum(1 for t in matched if term_key(t) in validated) / len(matched)
            avg_length = sum(len(t) for t in matched) / len(matched)
            quality = 0.7 * validated_rate + 0.3 * min(avg_length / IDEAL_TERM_LENGTH, 1.0)
        else:
            quality = 0.0

        score = 0.6 * match_rate + 0.3 * importance_score + 0.1 * quality
        return DimensionScore(
            score=max(0.0, min(score, 1.0)),
            matched_count=len(matched),
            total_count=total,
            matched_terms=matched,
            missing_terms=missing,
            quality_score=min(quality, 1.0),
            importance_score=min(importance_score, 1.0),
        )

    def aggregate(self, per_category: Dict[Category, DimensionScore]) -> int:
        """Weighted mean over categories the job description actually has terms in."""
        weighted = 0.0
        weight_sum = 0.0
        for category, dimension in per_category.items():
            if dimension.total_count > 0:
                weight = self.weights.weight(category)
                weighted += dimension.score * weight
                weight_sum += weight
        if weight_sum <= 0:
            return 0
        return max(0, min(100, _round_half_up(100 * weighted / weight_sum)))

    @staticmethod
    def quality_metrics(per_category: Dict[Category, DimensionScore], validated: Set[str]) -> QualityMetrics:
        matched_terms = [t for d in per_category.values() for t in d.matched_terms]
        matched_count = sum(d.matched_count for d in per_category.values())
        total_count = sum(d.total_count for d in per_category.values())

        validation_rate = (
            sum(1 for t in matched_terms if term_key(t) in validated) / len(matched_terms)
            if matched_terms else 0.0
        )
        density = matched_count / total_count if total_count else 0.0
        relevance = sum(d.quality_score for d in per_category.values()) / len(per_category)
        return QualityMetrics(
            esco_validation_rate=_percent(validation_rate),
            keyword_density=_percent(density),
            contextual_relevance=_percent(relevance),
        )

    def calculate_score(
        self,
        jd_terms: CategorySet,
        resume_terms: CategorySet,
        importance: Mapping[str, float] = None,
        validated: Iterable[str] = (),
    ) -> ScoreResult:
        importance = importance or {}
        validated_keys = {term_key(t) for t in validated}

        per_category = {
            category: self.dimension_score(
                sort_terms(jd_terms.get(category)),
                resume_terms.get(category),
                importance,
                validated_keys,
            )
            for category in Category
        }
        total = self.aggregate(per_category)
        level = score_level(total)
        metrics = self.quality_metrics(per_category, validated_keys)
        self.logger.info(f"ATS score {total}/100 ({level.value})")
        return ScoreResult(per_category=per_category, total_score=total, level=level, quality_metrics=metrics)
