"""Cache tiers: exact match and fuzzy near-duplicate lookup."""

from taskline.cache.exact import CacheEntry, CacheStats, ExactCache
from taskline.cache.fuzzy import FuzzyMatch, FuzzyMatcher, similarity

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ExactCache",
    "FuzzyMatch",
    "FuzzyMatcher",
    "similarity",
]
