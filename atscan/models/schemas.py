from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator


class Category(str, Enum):
    """Fixed keyword taxonomy"""
    HARD_SKILLS = "hardSkills"
    SOFT_SKILLS = "softSkills"
    JOB_TITLES = "jobTitles"
    CERTIFICATIONS = "certifications"
    TOOLS = "tools"


class ScoreLevel(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    VERY_POOR = "Very Poor"


def term_key(term: str) -> str:
    """Identity of a term for matching: trimmed and case-folded."""
    return term.strip().lower()


def sort_terms(terms: Iterable[str]) -> List[str]:
    return sorted(terms, key=lambda t: (t.lower(), t))


class CategorySet(RootModel[Dict[Category, List[str]]]):
    """Category -> unique terms. Every category is always present."""
    root: Dict[Category, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_and_dedupe(self):
        filled = {}
        for category in Category:
            seen = set()
            unique = []
            for term in self.root.get(category, []):
                key = term_key(term)
                if key and key not in seen:
                    seen.add(key)
                    unique.append(term.strip())
            filled[category] = unique
        self.root = filled
        return self

    def get(self, category: Category) -> List[str]:
        return self.root[category]

    def add(self, category: Category, term: str) -> bool:
        """Append a term unless the category already holds it (case-insensitive)."""
        key = term_key(term)
        if not key or key in {term_key(t) for t in self.root[category]}:
            return False
        self.root[category].append(term.strip())
        return True

    def sorted(self) -> "CategorySet":
        return CategorySet({category: sort_terms(terms) for category, terms in self.root.items()})

    def clone(self) -> "CategorySet":
        return CategorySet({category: list(terms) for category, terms in self.root.items()})

    def all_terms(self) -> List[str]:
        return [term for category in Category for term in self.root[category]]

    def counts(self) -> Dict[Category, int]:
        return {category: len(self.root[category]) for category in Category}

    def total(self) -> int:
        return sum(self.counts().values())


class CategorizationResult(BaseModel):
    categorized: CategorySet = Field(default_factory=CategorySet)
    uncategorized: List[str] = Field(default_factory=list)


class ValidationRecord(BaseModel):
    """Outcome of checking one term against the skills/occupations reference"""
    model_config = ConfigDict(frozen=True)

    term: str
    is_validated: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_category: Category = Category.HARD_SKILLS
    canonical_title: Optional[str] = None
    suggestions: Tuple[str, ...] = Field(default=(), max_length=3)


class ESCOEntry(BaseModel):
    """One search hit from the reference, skill or occupation"""
    uri: Optional[str] = None
    title: str
    entry_type: str = "skill"  # skill | occupation
    alternative_labels: List[str] = Field(default_factory=list)
    skill_type: Optional[str] = None  # knowledge | skill/competence | attitude
    reuse_level: Optional[str] = None  # sector-specific | cross-sector | transversal


# -------- Scoring --------
class DimensionScore(BaseModel):
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_count: int = 0
    total_count: int = 0
    matched_terms: List[str] = Field(default_factory=list)
    missing_terms: List[str] = Field(default_factory=list)
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    importance_score: float = Field(default=0.0, ge=0.0, le=1.0)


class QualityMetrics(BaseModel):
    esco_validation_rate: float = 0.0
    keyword_density: float = 0.0
    contextual_relevance: float = 0.0


class ScoreResult(BaseModel):
    per_category: Dict[Category, DimensionScore]
    total_score: int = Field(ge=0, le=100)
    level: ScoreLevel
    quality_metrics: QualityMetrics


# -------- Extraction --------
class ExtractionStats(BaseModel):
    total_terms: int = 0
    validated_count: int = 0
    validation_rate: float = 0.0
    industry_diversity: List[str] = Field(default_factory=list)
    suggested_terms: List[str] = Field(default_factory=list)
    fallback_reason: Optional[str] = None  # disabled | timeout | service_unavailable


class ExtractionPerformance(BaseModel):
    basic_extraction_ms: float = 0.0
    validation_ms: float = 0.0
    total_ms: float = 0.0


class ExtractionResult(BaseModel):
    raw_terms: List[str] = Field(default_factory=list)
    basic_terms: CategorySet = Field(default_factory=CategorySet)
    validated_terms: CategorySet = Field(default_factory=CategorySet)
    uncategorized: List[str] = Field(default_factory=list)
    validation_records: List[ValidationRecord] = Field(default_factory=list)
    validated_set: List[str] = Field(default_factory=list)
    stats: ExtractionStats = Field(default_factory=ExtractionStats)
    performance: ExtractionPerformance = Field(default_factory=ExtractionPerformance)


# -------- Scan --------
class DocumentAnalysis(BaseModel):
    word_count: int
    terms: CategorySet
    basic_terms: CategorySet
    uncategorized: List[str] = Field(default_factory=list)
    total_terms: int
    category_distribution: Dict[Category, int]
    stats: ExtractionStats
    performance: ExtractionPerformance


class MatchingSummary(BaseModel):
    total_jd_terms: int
    total_resume_terms: int
    total_matching_terms: int
    total_missing_terms: int
    matching_rate: float
    matching_by_category: Dict[Category, List[str]]
    missing_by_category: Dict[Category, List[str]]
    category_match_rates: Dict[Category, float]


class ScanResult(BaseModel):
    score: ScoreResult
    job_description: DocumentAnalysis
    resume: DocumentAnalysis
    matching: MatchingSummary
    processing_ms: float


class ScanOptions(BaseModel):
    """Per-request overrides of the validation settings"""
    enable_validation: Optional[bool] = None
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_terms_job_description: Optional[int] = Field(default=None, ge=0, le=200)
    max_terms_resume: Optional[int] = Field(default=None, ge=0, le=200)


class ScanRequest(BaseModel):
    job_description: str
    resume_text: str
    options: ScanOptions = Field(default_factory=ScanOptions)


class ScanResponse(BaseModel):
    success: bool = True
    data: ScanResult
