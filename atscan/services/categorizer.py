import logging
import re
from typing import Dict, List, Optional

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from atscan.helpers.vocabulary import FUZZY_THRESHOLD, KEYWORD_CATEGORIES, PATTERN_RULES
from atscan.models.schemas import CategorizationResult, Category, CategorySet, sort_terms
from atscan.utils.logging_config import get_logger

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def match_form(term: str) -> str:
    """Lowercase with every run of non-alphanumerics collapsed to '-'."""
    return _NON_ALNUM.sub("-", term.strip().lower()).strip("-")


def _contains(haystack: str, needle: str) -> bool:
    # containment on whole '-' segments, so "r" never matches inside "rapid"
    return needle == haystack or f"-{needle}-" in f"-{haystack}-"


def similarity(a: str, b: str) -> float:
    return Levenshtein.normalized_similarity(a, b)


class CategoryMatcher:
    """Maps candidate terms onto the fixed category taxonomy."""

    def __init__(self, dictionary: Dict[Category, List[str]] = None, logger: logging.Logger = None):
        self.logger = logger or get_logger(__name__)
        source = dictionary or KEYWORD_CATEGORIES
        self.dictionary = {
            category: [f for f in (match_form(e) for e in source.get(category, [])) if f]
            for category in Category
        }

    def _exact(self, key: str) -> Optional[Category]:
        for category, entries in self.dictionary.items():
            if key in entries:
                return category
        return None

    def _substring(self, key: str) -> Optional[Category]:
        for category, entries in self.dictionary.items():
            if any(_contains(key, e) or _contains(e, key) for e in entries):
                return category
        return None

    def _fuzzy(self, key: str) -> Optional[Category]:
        for category, entries in self.dictionary.items():
            best = process.extractOne(
                key, entries, scorer=Levenshtein.normalized_similarity, score_cutoff=FUZZY_THRESHOLD
            )
            if best and best[1] > FUZZY_THRESHOLD:
                return category
        return None

    @staticmethod
    def infer(term: str) -> Optional[Category]:
        """Pattern-based fallback for terms absent from the dictionary."""
        lower = term.strip().lower()
        for category, patterns in PATTERN_RULES:
            if any(p.search(lower) for p in patterns):
                return category
        return None

    def match(self, term: str) -> Optional[Category]:
        key = match_form(term)
        if not key:
            return None
        for tier in (self._exact, self._substring, self._fuzzy):
            category = tier(key)
            if category is not None:
                return category
        return self.infer(term)

    def categorize(self, terms: List[str]) -> CategorizationResult:
        categorized = CategorySet()
        uncategorized = []
        for term in terms:
            category = self.match(term)
            if category is None:
                uncategorized.append(term)
            else:
                categorized.add(category, term)

        result = CategorizationResult(
            categorized=categorized.sorted(),
            uncategorized=sort_terms(dict.fromkeys(uncategorized)),
        )
        self.logger.debug(
            f"Categorized {result.categorized.total()} of {len(terms)} terms, "
            f"{len(result.uncategorized)} uncategorized"
        )
        return result
