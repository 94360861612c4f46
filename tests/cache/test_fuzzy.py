"""Tests for FuzzyMatcher (Tier 2)."""

import pytest

from taskline.cache.exact import ExactCache
from taskline.cache.fuzzy import FuzzyMatcher, batch_similarity, similarity
from taskline.models import ParsedResult, SourceTier

SCENARIO = "submit report tomorrow at 3pm #work !!"
TYPO = "submit reprot tomorrow at 3pm #work !!"


def _result(title: str) -> ParsedResult:
    return ParsedResult(title=title, source_tier=SourceTier.PATTERN)


@pytest.fixture
def cache() -> ExactCache:
    return ExactCache(capacity=10)


class TestSimilarity:
    def test_identity_is_one(self) -> None:
        assert similarity(SCENARIO, SCENARIO) == 1.0

    def test_symmetric(self) -> None:
        assert similarity(SCENARIO, TYPO) == pytest.approx(similarity(TYPO, SCENARIO))

    def test_range(self) -> None:
        assert 0.0 <= similarity("abc", "xyz") <= 1.0

    def test_single_typo_scores_high(self) -> None:
        assert similarity(SCENARIO, TYPO) >= 0.85

    def test_unrelated_scores_low(self) -> None:
        assert similarity(SCENARIO, "buy milk and eggs #groceries") < 0.85

    def test_batch_matches_pairwise(self) -> None:
        candidates = [SCENARIO, "buy milk", TYPO]
        scores = batch_similarity(TYPO, candidates)
        for candidate, score in zip(candidates, scores):
            assert score == pytest.approx(similarity(TYPO, candidate))

    def test_batch_empty(self) -> None:
        assert batch_similarity("x", []).shape == (0,)


class TestFuzzyMatcher:
    def test_empty_cache_misses(self, cache: ExactCache) -> None:
        assert FuzzyMatcher(cache, threshold=0.85).find(TYPO) is None

    def test_hit_at_or_above_threshold(self, cache: ExactCache) -> None:
        cache.put(SCENARIO, _result("Submit report"))
        match = FuzzyMatcher(cache, threshold=0.85).find(TYPO)
        assert match is not None
        assert match.matched_key == SCENARIO
        assert match.result.title == "Submit report"
        assert match.score >= 0.85

    def test_miss_below_threshold(self, cache: ExactCache) -> None:
        cache.put("buy milk and eggs #groceries", _result("Buy milk"))
        assert FuzzyMatcher(cache, threshold=0.85).find(TYPO) is None

    def test_threshold_monotonicity(self, cache: ExactCache) -> None:
        cache.put(SCENARIO, _result("Submit report"))
        score = similarity(SCENARIO, TYPO)
        assert FuzzyMatcher(cache, threshold=score - 1e-9).find(TYPO) is not None
        assert FuzzyMatcher(cache, threshold=min(1.0, score + 0.01)).find(TYPO) is None

    def test_threshold_one_requires_identity(self, cache: ExactCache) -> None:
        cache.put(SCENARIO, _result("Submit report"))
        assert FuzzyMatcher(cache, threshold=1.0).find(TYPO) is None

    def test_best_score_wins(self, cache: ExactCache) -> None:
        cache.put("submit report tomorrow", _result("far"))
        cache.put(SCENARIO, _result("near"))
        cache.get("submit report tomorrow")
        match = FuzzyMatcher(cache, threshold=0.5).find(TYPO)
        assert match.result.title == "near"

    def test_tie_goes_to_most_recently_used(self, cache: ExactCache) -> None:
        # Both candidates are one substitution away from the query.
        cache.put("call bob at noon x", _result("older"))
        cache.put("call bob at noon y", _result("newer"))
        matcher = FuzzyMatcher(cache, threshold=0.5)
        assert matcher.find("call bob at noon z").result.title == "newer"
        cache.get("call bob at noon x")
        assert matcher.find("call bob at noon z").result.title == "older"

    def test_ignores_identical_key(self, cache: ExactCache) -> None:
        cache.put(SCENARIO, _result("Submit report"))
        assert FuzzyMatcher(cache, threshold=0.5).find(SCENARIO) is None

    def test_does_not_mutate_cache(self, cache: ExactCache) -> None:
        cache.put(SCENARIO, _result("Submit report"))
        before = cache.stats()
        FuzzyMatcher(cache, threshold=0.5).find(TYPO)
        assert cache.stats() == before
        assert TYPO not in cache

    @pytest.mark.parametrize("threshold", [0.0, -0.1, 1.01])
    def test_invalid_threshold(self, cache: ExactCache, threshold: float) -> None:
        with pytest.raises(ValueError):
            FuzzyMatcher(cache, threshold=threshold)

    def test_threshold_defaults_to_settings(self, cache: ExactCache) -> None:
        assert FuzzyMatcher(cache).threshold == 0.85
