"""
Client for the ESCO skills/occupations search API

Each term is looked up as a skill and as an occupation in parallel, the best
candidate is scored against the term, and the resulting ValidationRecord is
cached. Batch validation bounds concurrency and paces groups of batches so the
public endpoint is never flooded.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from atscan.helpers.vocabulary import TOOL_SKILL_PATTERN
from atscan.models.schemas import Category, ESCOEntry, ValidationRecord
from atscan.models.settings import CacheSettings, ValidationSettings
from atscan.services.cache import QueryType, TTLCache, normalize_query
from atscan.services.categorizer import similarity
from atscan.utils.exceptions import ValidationServiceError
from atscan.utils.logging_config import get_logger

MAX_SUGGESTIONS = 3


def _last_segment(value: Any) -> Optional[str]:
    """'http://data.europa.eu/esco/skill-type/knowledge' -> 'knowledge'"""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("uri") or value.get("href")
    if not isinstance(value, str) or not value:
        return None
    return value.rstrip("/").rsplit("/", 1)[-1].lower()


def _labels(raw: Any, language: str) -> List[str]:
    if isinstance(raw, dict):
        raw = raw.get(language) or raw.get("en") or []
    if not isinstance(raw, list):
        return []
    return [label for label in raw if isinstance(label, str) and label.strip()]


def parse_entry(item: Any, entry_type: str, language: str) -> Optional[ESCOEntry]:
    """Build an ESCOEntry from one search hit; None when the hit has no usable title."""
    if not isinstance(item, dict):
        return None
    title = item.get("title") or item.get("preferredLabel")
    if isinstance(title, dict):
        title = title.get(language) or title.get("en")
    if not isinstance(title, str) or not title.strip():
        return None

    labels = _labels(item.get("alternativeLabels"), language) or _labels(item.get("alternativeLabel"), language)
    links = item.get("_links") if isinstance(item.get("_links"), dict) else {}
    return ESCOEntry(
        uri=item.get("uri") if isinstance(item.get("uri"), str) else None,
        title=title.strip(),
        entry_type=entry_type,
        alternative_labels=labels,
        skill_type=_last_segment(item.get("skillType") or item.get("hasSkillType") or links.get("hasSkillType")),
        reuse_level=_last_segment(item.get("reuseLevel") or item.get("hasReuseLevel") or links.get("hasReuseLevel")),
    )


def match_confidence(term: str, entry: ESCOEntry) -> float:
    """
    How strongly a reference entry confirms a term.

    1.0 exact title, 0.95 exact alternate label, 0.8/0.75 title containment
    (entry contains term / term contains entry), 0.7/0.65 the same against
    alternate labels, otherwise 0.6 x similarity when similarity exceeds 0.8.
    """
    key = term.strip().lower()
    title = entry.title.lower()
    labels = [label.lower() for label in entry.alternative_labels]
    if not key:
        return 0.0

    if key == title:
        return 1.0
    if key in labels:
        return 0.95
    if key in title:
        return 0.8
    if title in key:
        return 0.75
    for label in labels:
        if key in label:
            return 0.7
        if label in key:
            return 0.65

    sim = similarity(key, title)
    return sim * 0.6 if sim > 0.8 else 0.0


def skill_category(entry: ESCOEntry) -> Category:
    if entry.entry_type == "occupation":
        return Category.JOB_TITLES
    if entry.skill_type == "attitude" or entry.reuse_level == "transversal":
        return Category.SOFT_SKILLS
    if entry.skill_type != "knowledge" and TOOL_SKILL_PATTERN.search(entry.title.lower()):
        return Category.TOOLS
    return Category.HARD_SKILLS


def build_suggestions(term: str, skills: List[ESCOEntry], occupations: List[ESCOEntry]) -> Tuple[str, ...]:
    """Sibling titles and labels of the candidates, excluding the term itself."""
    excluded = {term.strip().lower()}
    suggestions = []

    def offer(label: str):
        key = label.strip().lower()
        if key and key not in excluded:
            excluded.add(key)
            suggestions.append(label.strip())

    for skill in skills:
        offer(skill.title)
        for label in skill.alternative_labels:
            offer(label)
    for occupation in occupations:
        offer(occupation.title)
    return tuple(suggestions[:MAX_SUGGESTIONS])


def score_candidates(term: str, threshold: float,
                     skills: List[ESCOEntry], occupations: List[ESCOEntry]) -> ValidationRecord:
    best: Optional[ESCOEntry] = None
    confidence = 0.0
    category = Category.HARD_SKILLS

    # skills first; an occupation must score strictly higher to win
    for entry in list(skills) + list(occupations):
        c = match_confidence(term, entry)
        if c > confidence:
            best, confidence = entry, c
            category = skill_category(entry)

    return ValidationRecord(
        term=term,
        is_validated=confidence > threshold,
        confidence=round(min(confidence, 1.0), 4),
        matched_category=category,
        canonical_title=best.title if best else None,
        suggestions=build_suggestions(term, skills, occupations),
    )


class ESCOClient:
    """
    Validates terms against the ESCO reference.

    Owns its HTTP client unless one is injected, and two caches: raw search
    results (long TTL) and finished validation records (short TTL).
    """

    def __init__(
        self,
        settings: ValidationSettings = None,
        cache_settings: CacheSettings = None,
        http_client: httpx.AsyncClient = None,
        search_cache: TTLCache = None,
        validation_cache: TTLCache = None,
        logger: logging.Logger = None,
    ):
        self.settings = settings or ValidationSettings()
        cache_settings = cache_settings or CacheSettings()
        self.logger = logger or get_logger(__name__)
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            headers={"Accept": "application/json", "User-Agent": self.settings.user_agent},
            follow_redirects=True,
        )
        if search_cache is None:
            search_cache = TTLCache(
                "search", cache_settings.search_ttl, maxsize=cache_settings.max_entries, logger=self.logger
            )
        if validation_cache is None:
            validation_cache = TTLCache(
                "validation", cache_settings.validation_ttl, maxsize=cache_settings.max_entries, logger=self.logger
            )
        self.search_cache = search_cache
        self.validation_cache = validation_cache

    async def aclose(self):
        if self._owns_client:
            await self.http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            "search": self.search_cache.get_stats(),
            "validation": self.validation_cache.get_stats(),
        }

    async def _search(self, query: str, entry_type: str) -> Optional[List[ESCOEntry]]:
        """Search results for one type, or None when the call failed."""
        query_type = QueryType.SKILL_SEARCH if entry_type == "skill" else QueryType.OCCUPATION_SEARCH
        limit = self.settings.search_limit
        language = self.settings.language
        key = TTLCache.make_key(query_type, query, limit, language)
        cached = self.search_cache.get(key)
        if cached is not None:
            return cached

        params = {"text": query, "language": language, "type": entry_type, "limit": limit, "full": "true"}
        try:
            response = await self.http.get(f"{self.settings.base_url}/search", params=params)
        except httpx.HTTPError as e:
            self.logger.warning(f"ESCO {entry_type} search for '{query}' failed: {e}")
            return None

        if response.status_code != 200:
            self.logger.warning(f"ESCO {entry_type} search for '{query}' returned {response.status_code}")
            return None

        try:
            payload = response.json()
            results = payload["_embedded"]["results"]
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Malformed ESCO {entry_type} payload for '{query}': {e}")
            return None
        if not isinstance(results, list):
            self.logger.warning(f"Malformed ESCO {entry_type} payload for '{query}': results is not a list")
            return None

        entries = [e for e in (parse_entry(item, entry_type, language) for item in results) if e is not None]
        self.search_cache.set(key, entries)
        self.logger.debug(f"ESCO {entry_type} search for '{query}': {len(entries)} results")
        return entries

    async def _lookup(self, term: str, threshold: float) -> Tuple[ValidationRecord, bool]:
        """Record for a term plus whether the reference could actually be consulted."""
        query = normalize_query(term)
        key = TTLCache.make_key(QueryType.VALIDATION, query, threshold, self.settings.language)
        cached = self.validation_cache.get(key)
        if cached is not None:
            return cached, True

        skills, occupations = await asyncio.gather(
            self._search(query, "skill"),
            self._search(query, "occupation"),
        )
        record = score_candidates(term, threshold, skills or [], occupations or [])
        reachable = skills is not None or occupations is not None
        # only fully answered lookups are cached
        if skills is not None and occupations is not None:
            self.validation_cache.set(key, record)
        return record, reachable

    async def _lookup_bounded(self, term: str, threshold: float) -> Tuple[ValidationRecord, bool]:
        try:
            return await asyncio.wait_for(self._lookup(term, threshold), timeout=self.settings.term_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"ESCO validation of '{term}' timed out after {self.settings.term_timeout}s")
            return ValidationRecord(term=term), False

    async def validate_term(self, term: str, threshold: float = None) -> ValidationRecord:
        threshold = self.settings.confidence_threshold if threshold is None else threshold
        record, _ = await self._lookup_bounded(term, threshold)
        return record

    async def validate_terms(self, terms: List[str], threshold: float = None) -> List[ValidationRecord]:
        """
        Validate many terms, preserving input order.

        Terms are split into batches of ``batch_size``; up to
        ``max_concurrent_batches`` batches run together, with a short pause
        between groups. A term whose searches fail is returned unvalidated.

        Raises:
            ValidationServiceError: not a single term could reach the reference
        """
        if not terms:
            return []
        threshold = self.settings.confidence_threshold if threshold is None else threshold
        size = self.settings.batch_size
        group_size = self.settings.max_concurrent_batches
        batches = [terms[i:i + size] for i in range(0, len(terms), size)]
        self.logger.info(f"Validating {len(terms)} terms in {len(batches)} batches")

        async def run_batch(batch: List[str]):
            return await asyncio.gather(*(self._lookup_bounded(term, threshold) for term in batch))

        outcomes: List[Tuple[ValidationRecord, bool]] = []
        for start in range(0, len(batches), group_size):
            group = batches[start:start + group_size]
            for batch_result in await asyncio.gather(*(run_batch(batch) for batch in group)):
                outcomes.extend(batch_result)
            if start + group_size < len(batches) and self.settings.batch_group_delay > 0:
                await asyncio.sleep(self.settings.batch_group_delay)

        if not any(reachable for _, reachable in outcomes):
            raise ValidationServiceError(
                f"ESCO reference unavailable: all {len(terms)} lookups failed",
                details={"terms": len(terms)},
            )

        records = [record for record, _ in outcomes]
        validated = sum(1 for r in records if r.is_validated)
        self.logger.info(f"Validated {validated}/{len(records)} terms against ESCO")
        return records
