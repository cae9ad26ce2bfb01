"""
Scan Settings Models for Configuration Management
"""
import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from atscan.models.schemas import Category
from atscan.utils.exceptions import ConfigurationError

ESCO_API_BASE = "https://ec.europa.eu/esco/api"


class ValidationSettings(BaseModel):
    """External skills/occupations reference configuration"""
    enabled: bool = Field(default=True, description="Validate terms against the reference")
    base_url: str = Field(default=ESCO_API_BASE, description="Reference API base URL")
    language: str = Field(default="en", min_length=2, max_length=5, description="Reference language code")
    user_agent: str = Field(default="ATS-Keyword-Scorer/1.0", description="User-Agent sent to the reference")
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum confidence to mark a term validated")
    max_terms_job_description: int = Field(default=20, ge=0, le=200, description="Terms submitted for validation per job description")
    max_terms_resume: int = Field(default=25, ge=0, le=200, description="Terms submitted for validation per resume")
    search_limit: int = Field(default=3, ge=1, le=50, description="Results requested per search")
    batch_size: int = Field(default=20, ge=1, le=200, description="Terms per validation batch")
    max_concurrent_batches: int = Field(default=10, ge=1, le=50, description="Batches validated concurrently")
    batch_group_delay: float = Field(default=0.05, ge=0.0, le=10.0, description="Pause between concurrent batch groups in seconds")
    request_timeout: float = Field(default=10.0, gt=0.0, le=120.0, description="HTTP timeout per search in seconds")
    term_timeout: float = Field(default=15.0, gt=0.0, le=300.0, description="Maximum duration of one term validation in seconds")
    stage_timeout: float = Field(default=60.0, gt=0.0, le=600.0, description="Maximum duration of a document's validation stage in seconds")

    @field_validator("base_url")
    def validate_base_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v.rstrip("/")


class CacheSettings(BaseModel):
    """Time-to-live and size bound of the two reference caches"""
    search_ttl: float = Field(default=24 * 60 * 60, gt=0, description="Search result TTL in seconds")
    validation_ttl: float = Field(default=60 * 60, gt=0, description="Validation record TTL in seconds")
    max_entries: int = Field(default=10000, gt=0, description="Entries kept per cache before the least recently used is dropped")


class TokenizerOptions(BaseModel):
    """Noise filter configuration"""
    language: str = Field(default="english", description="Stop-word language")
    min_length: int = Field(default=3, ge=1, le=50, description="Shortest term kept")
    max_length: int = Field(default=20, ge=1, le=100, description="Longest term kept")
    remove_digits: bool = Field(default=True, description="Drop purely numeric tokens")

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.min_length > self.max_length:
            raise ValueError("min_length must not exceed max_length")
        return self


class ScoringWeights(BaseModel):
    """Relative importance of each category; normalized over participating categories"""
    hard_skills: float = Field(default=0.5, ge=0.0, le=1.0)
    job_titles: float = Field(default=0.25, ge=0.0, le=1.0)
    soft_skills: float = Field(default=0.15, ge=0.0, le=1.0)
    certifications: float = Field(default=0.05, ge=0.0, le=1.0)
    tools: float = Field(default=0.05, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_total_weight(self):
        if sum(self.as_mapping().values()) <= 0:
            raise ValueError("At least one category weight must be positive")
        return self

    def as_mapping(self) -> Dict[Category, float]:
        return {
            Category.HARD_SKILLS: self.hard_skills,
            Category.JOB_TITLES: self.job_titles,
            Category.SOFT_SKILLS: self.soft_skills,
            Category.CERTIFICATIONS: self.certifications,
            Category.TOOLS: self.tools,
        }

    def weight(self, category: Category) -> float:
        return self.as_mapping()[category]


class ScanSettings(BaseModel):
    """Complete scanner configuration"""
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    tokenizer: TokenizerOptions = Field(default_factory=TokenizerOptions)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    extraction_timeout: float = Field(default=10.0, gt=0.0, le=120.0, description="Maximum duration of term extraction per document in seconds")


# Environment variable -> (section, field)
_ENV_FIELDS = {
    "ATS_ESCO_ENABLED": ("validation", "enabled"),
    "ATS_ESCO_BASE_URL": ("validation", "base_url"),
    "ATS_ESCO_LANGUAGE": ("validation", "language"),
    "ATS_CONFIDENCE_THRESHOLD": ("validation", "confidence_threshold"),
    "ATS_MAX_TERMS_JD": ("validation", "max_terms_job_description"),
    "ATS_MAX_TERMS_RESUME": ("validation", "max_terms_resume"),
    "ATS_SEARCH_LIMIT": ("validation", "search_limit"),
    "ATS_BATCH_SIZE": ("validation", "batch_size"),
    "ATS_MAX_CONCURRENT_BATCHES": ("validation", "max_concurrent_batches"),
    "ATS_BATCH_GROUP_DELAY": ("validation", "batch_group_delay"),
    "ATS_REQUEST_TIMEOUT": ("validation", "request_timeout"),
    "ATS_TERM_TIMEOUT": ("validation", "term_timeout"),
    "ATS_STAGE_TIMEOUT": ("validation", "stage_timeout"),
    "ATS_SEARCH_CACHE_TTL": ("cache", "search_ttl"),
    "ATS_VALIDATION_CACHE_TTL": ("cache", "validation_ttl"),
    "ATS_CACHE_MAX_ENTRIES": ("cache", "max_entries"),
    "ATS_TOKENIZER_LANGUAGE": ("tokenizer", "language"),
    "ATS_MIN_TERM_LENGTH": ("tokenizer", "min_length"),
    "ATS_MAX_TERM_LENGTH": ("tokenizer", "max_length"),
    "ATS_WEIGHT_HARD_SKILLS": ("weights", "hard_skills"),
    "ATS_WEIGHT_JOB_TITLES": ("weights", "job_titles"),
    "ATS_WEIGHT_SOFT_SKILLS": ("weights", "soft_skills"),
    "ATS_WEIGHT_CERTIFICATIONS": ("weights", "certifications"),
    "ATS_WEIGHT_TOOLS": ("weights", "tools"),
    "ATS_EXTRACTION_TIMEOUT": (None, "extraction_timeout"),
}


def build_settings(data: Dict) -> ScanSettings:
    """Validate a settings mapping, raising ConfigurationError on any bad value"""
    try:
        return ScanSettings(**data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid scanner configuration: {first.get('msg')}",
            config_key=key or None,
            config_value=first.get("input"),
            details={"errors": [err.get("msg") for err in e.errors()]},
            cause=e,
        ) from e


def load_settings(env: Optional[Dict[str, str]] = None) -> ScanSettings:
    """Build ScanSettings from ATS_* environment variables"""
    if env is None:
        load_dotenv()
        env = os.environ

    data: Dict = {}
    for var, (section, field) in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        if section is None:
            data[field] = raw
        else:
            data.setdefault(section, {})[field] = raw
    return build_settings(data)
