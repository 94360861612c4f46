"""
Fuzzy matcher for Taskline (Tier 2).

Finds the cached entry whose key is most similar to a normalised input
that missed the exact cache.  Similarity is the Jaro-Winkler normalised
similarity, a symmetric, transposition-aware measure in ``[0, 1]`` with
``similarity(x, x) == 1``.  The matcher only reads cache entries; it
never stores or evicts.
"""

import logging
from typing import List, Optional

import numpy as np
from pydantic import BaseModel
from rapidfuzz import process
from rapidfuzz.distance import JaroWinkler

from taskline.cache.exact import ExactCache
from taskline.config import get_settings
from taskline.models import ParsedResult

logger = logging.getLogger(__name__)


def similarity(a: str, b: str) -> float:
    """Normalised Jaro-Winkler similarity between two keys."""
    return float(JaroWinkler.normalized_similarity(a, b))


def batch_similarity(query: str, candidates: List[str]) -> np.ndarray:
    """Score one key against many in a single vectorised call.

    Args:
        query: The key to match.
        candidates: Keys to score against.

    Returns:
        Array of scores in the same order as ``candidates``.
    """
    if not candidates:
        return np.zeros(0, dtype=np.float64)
    matrix = process.cdist(
        [query],
        candidates,
        scorer=JaroWinkler.normalized_similarity,
        dtype=np.float64,
    )
    return np.clip(matrix[0], 0.0, 1.0)


class FuzzyMatch(BaseModel):
    """A near-duplicate cache hit.

    Attributes:
        matched_key: The cached key that was matched.
        result: The cached result for ``matched_key``.
        score: Similarity between the query and ``matched_key``.
    """

    matched_key: str
    result: ParsedResult
    score: float


class FuzzyMatcher:
    """Similarity search over the exact cache's keys.

    Ties on the best score go to the most recently used entry: the
    candidate list is taken from the cache in MRU order and
    ``numpy.argmax`` returns the first maximum.

    Args:
        cache: The exact cache to read from.
        threshold: Minimum similarity for a hit, in ``(0, 1]``.
            Defaults to ``cache.fuzzy_threshold`` from settings.

    Raises:
        ValueError: If the threshold is outside ``(0, 1]``.
    """

    def __init__(self, cache: ExactCache, threshold: Optional[float] = None) -> None:
        self._cache = cache
        self._threshold = (
            threshold if threshold is not None else get_settings().cache.fuzzy_threshold
        )
        if not (0.0 < self._threshold <= 1.0):
            raise ValueError(
                f"Threshold must be in (0, 1], got {self._threshold}"
            )

    @property
    def threshold(self) -> float:
        return self._threshold

    def find(self, key: str) -> Optional[FuzzyMatch]:
        """Return the best cached match for ``key`` at or above threshold.

        Args:
            key: Normalised input text not present in the exact cache.

        Returns:
            The best FuzzyMatch, or ``None`` when nothing scores high enough.
        """
        entries = [e for e in self._cache.snapshot() if e.key != key]
        if not entries:
            return None

        scores = batch_similarity(key, [e.key for e in entries])
        best = int(np.argmax(scores))
        best_score = float(scores[best])

        if best_score < self._threshold:
            logger.debug(
                "Fuzzy miss",
                extra={"best_score": round(best_score, 4), "threshold": self._threshold},
            )
            return None

        entry = entries[best]
        logger.debug(
            "Fuzzy hit",
            extra={
                "score": round(best_score, 4),
                "matched_key": entry.key[:40],
            },
        )
        return FuzzyMatch(matched_key=entry.key, result=entry.result, score=best_score)
