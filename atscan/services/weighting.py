import re
from typing import Dict, Iterable, List

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer

from atscan.helpers.vocabulary import ALIASES
from atscan.utils.logging_config import log_function_call

_WORD = re.compile(r"[a-z0-9+#.]+")
_SEPARATORS = re.compile(r"[\s\-_/]+")
MAX_NGRAM = 4


def weight_key(term: str) -> str:
    """'Full-Stack' -> 'full stack'; the form both terms and document n-grams are compared in."""
    return " ".join(_words(term))


def _words(text: str) -> List[str]:
    return [w.strip(".") for w in _WORD.findall(_SEPARATORS.sub(" ", text.lower())) if w.strip(".")]


def _make_analyzer(max_n: int):
    canonical = {alias: weight_key(name) for alias, name in ALIASES.items()}

    def analyze(doc: str) -> List[str]:
        words = _words(doc)
        features = []
        for n in range(1, max_n + 1):
            features.extend(" ".join(words[i:i + n]) for i in range(len(words) - n + 1))
        # "js" in a document also counts towards "javascript"
        features.extend(canonical[w] for w in words if w in canonical and canonical[w] != w)
        return features

    return analyze


@log_function_call
def compute_importance_weights(documents: List[str], terms: Iterable[str]) -> Dict[str, float]:
    """
    TF-IDF weight of every term over the given documents (the job description
    and the resume), keeping for each term the maximum over the documents.

    Returns:
        weight_key(term) -> weight >= 0
    """
    vocabulary = sorted({k for k in (weight_key(t) for t in terms) if k})
    if not vocabulary or not documents:
        return {}

    max_n = min(MAX_NGRAM, max(len(k.split()) for k in vocabulary))
    vectorizer = TfidfVectorizer(
        analyzer=_make_analyzer(max_n),
        token_pattern=None,
        vocabulary=vocabulary,
        norm=None,
        smooth_idf=True,
    )
    matrix = vectorizer.fit_transform(documents)
    best = np.asarray(matrix.max(axis=0).toarray()).ravel()
    return {key: float(best[index]) for key, index in vectorizer.vocabulary_.items()}
