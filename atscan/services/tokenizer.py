import logging
import re
from collections import Counter
from typing import List, Optional

from atscan.helpers.vocabulary import (
    ALIASES, COMPOUND_TERMS, MIN_LETTER_RATIO, NOISE_EXCEPTIONS, NOISE_PATTERNS, STOP_WORDS,
)
from atscan.models.schemas import sort_terms, term_key
from atscan.models.settings import TokenizerOptions
from atscan.utils.logging_config import get_logger

logger = get_logger(__name__)

_SPLIT = re.compile(r"[\s,;|•·]+")
_LEADING = "([{<\"'`*"
_TRAILING = ".,;:!?)]}>\"'`*"
_LETTER = re.compile(r"[a-z]")


def _stop_words(language: str, log: logging.Logger):
    words = STOP_WORDS.get(language.lower())
    if words is None:
        log.warning(f"No stop-word list for language '{language}', using english")
        words = STOP_WORDS["english"]
    return words


def letter_ratio(term: str) -> float:
    if not term:
        return 0.0
    return len(_LETTER.findall(term.lower())) / len(term)


def matches_noise_pattern(token: str) -> bool:
    if token in NOISE_EXCEPTIONS:
        return False
    return any(p.search(token) for p in NOISE_PATTERNS)


def is_noise(token: str, options: TokenizerOptions) -> bool:
    """True when a lowercase token should never become a candidate term."""
    if len(token) < options.min_length or len(token) > options.max_length:
        return True
    if options.remove_digits and token.isdigit():
        return True
    if matches_noise_pattern(token):
        return True
    return letter_ratio(token) < MIN_LETTER_RATIO


def tokenize(text: str, options: Optional[TokenizerOptions] = None, log: logging.Logger = None) -> List[str]:
    """
    Split text into filtered tokens in document order, duplicates kept.
    Known aliases come back in their canonical spelling, everything else lowercase.
    """
    options = options or TokenizerOptions()
    log = log or logger
    stop_words = _stop_words(options.language, log)

    tokens = []
    for chunk in _SPLIT.split(text):
        token = chunk.lstrip(_LEADING).rstrip(_TRAILING).lower()
        if not token or token in stop_words:
            continue
        canonical = ALIASES.get(token)
        if canonical:
            tokens.append(canonical)
        elif not is_noise(token, options):
            tokens.append(token)
    return tokens


def merge_compounds(terms: List[str]) -> List[str]:
    """Replace the separate parts of known compounds with the compound itself."""
    result = list(terms)
    for compound, parts in COMPOUND_TERMS.items():
        present = {term_key(t) for t in result}
        if all(part in present for part in parts):
            result = [t for t in result if term_key(t) not in parts]
            result.append(compound)
    return result


def dedupe(terms: List[str]) -> List[str]:
    seen = set()
    out = []
    for t in terms:
        k = term_key(t)
        if k not in seen:
            seen.add(k)
            out.append(t)
    return out


def term_frequencies(tokens: List[str]) -> Counter:
    return Counter(term_key(t) for t in tokens)


def extract_raw_terms(text: str, options: Optional[TokenizerOptions] = None, log: logging.Logger = None) -> List[str]:
    """
    Candidate terms of a document: noise-filtered, alias-standardized,
    compounds merged, deduplicated and sorted.

    Never raises; unusable input yields an empty list.
    """
    log = log or logger
    try:
        tokens = tokenize(text, options, log)
        terms = merge_compounds(dedupe(tokens))
        result = sort_terms(dedupe(terms))
        log.debug(f"Extracted {len(result)} candidate terms from {len(tokens)} tokens")
        return result
    except Exception as e:
        log.error(f"Term extraction failed: {e}")
        return []
