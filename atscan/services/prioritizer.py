import re
from typing import Dict, List, Optional

from atscan.helpers.vocabulary import (
    KNOWN_TECH_PATTERNS, PROFESSIONAL_SUFFIX, PROFICIENCY_SUFFIX, RANKER_STOP_WORDS,
)
from atscan.models.schemas import term_key
from atscan.services.tokenizer import letter_ratio, matches_noise_pattern

_PROPER_CASE = re.compile(r"^[A-Z][a-z]+$")
_ACRONYM = re.compile(r"^[A-Z]{2,6}$")
_SPECIAL = re.compile(r"[^a-zA-Z0-9\-.\s]")
_LEADING_DIGIT = re.compile(r"^\d")
_VERSION_LIKE = re.compile(r"^\d+[a-z]")


def is_quality_term(term: str) -> bool:
    lower = term.strip().lower()
    if len(lower) < 2 or len(lower) > 25:
        return False
    if matches_noise_pattern(lower):
        return False
    if _LEADING_DIGIT.search(lower) and not _VERSION_LIKE.search(lower):
        return False
    return letter_ratio(lower) >= 0.5


def priority_score(term: str, frequency: int = 1) -> float:
    """Heuristic worth of sending a term to external validation."""
    score = 0.0
    lower = term.lower()
    length = len(term)

    if 3 <= length <= 15:
        score += min(length * 1.5, 15)
    elif 15 < length <= 20:
        score += 8

    if _PROPER_CASE.search(term):
        score += 8
    if _ACRONYM.search(term):
        score += 6
    if "-" in term:
        score += 5
    if "." in term:
        score += 4
    if lower.endswith("ing"):
        score += 3

    score += 10 * sum(1 for p in KNOWN_TECH_PATTERNS if p.search(lower))

    if PROFESSIONAL_SUFFIX.search(lower):
        score += 8
    if PROFICIENCY_SUFFIX.search(lower):
        score += 6

    if frequency > 1:
        score += min(frequency * 2, 8)

    score += letter_ratio(term) * 5

    # penalties
    if term.isdigit():
        score -= 50
    if length < 3:
        score -= 20
    if _SPECIAL.search(term):
        score -= 10
    if lower in RANKER_STOP_WORDS:
        score -= 30

    return max(score, 0.0)


def rank_terms(terms: List[str], max_count: int, frequencies: Optional[Dict[str, int]] = None) -> List[str]:
    """
    Top ``max_count`` quality terms by descending priority.
    Ties keep input order, so the output is fully determined by the input.
    """
    if max_count <= 0:
        return []
    frequencies = frequencies or {}
    scored = [
        (priority_score(term, frequencies.get(term_key(term), 1)), index, term)
        for index, term in enumerate(terms)
        if is_quality_term(term)
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [term for _, _, term in scored[:max_count]]
