"""Tests for individual tiers and chain construction."""

import pytest

from taskline.cache.exact import ExactCache
from taskline.cache.fuzzy import FuzzyMatcher
from taskline.core.tiers import (
    ExactTier,
    FuzzyTier,
    ParseRequest,
    PatternTier,
    bare_result,
    build_tiers,
)
from taskline.exceptions import ConfigurationError
from taskline.models import ParsedResult, SourceTier
from taskline.patterns.engine import PatternEngine


@pytest.fixture
def cache() -> ExactCache:
    c = ExactCache(capacity=10)
    c.put("call bob at noon", ParsedResult(title="Call bob", source_tier=SourceTier.PATTERN))
    return c


class TestTiers:
    async def test_exact_tier_retags(self, cache: ExactCache) -> None:
        hit = await ExactTier(cache).attempt(ParseRequest("Call bob at noon", "call bob at noon"))
        assert hit.result.source_tier is SourceTier.EXACT
        assert cache.peek("call bob at noon").result.source_tier is SourceTier.PATTERN

    async def test_exact_tier_miss(self, cache: ExactCache) -> None:
        assert await ExactTier(cache).attempt(ParseRequest("x", "x")) is None

    async def test_fuzzy_tier_reports_matched_key(self, cache: ExactCache) -> None:
        tier = FuzzyTier(FuzzyMatcher(cache, threshold=0.85))
        hit = await tier.attempt(ParseRequest("Call bob at noom", "call bob at noom"))
        assert hit.matched_key == "call bob at noon"
        assert hit.result.source_tier is SourceTier.FUZZY

    async def test_pattern_tier_leaves_partial_when_insufficient(self, clock) -> None:
        request = ParseRequest("hmm", "hmm")
        assert await PatternTier(PatternEngine(clock=clock)).attempt(request) is None
        assert request.partial is not None
        assert request.partial.title == "hmm"

    def test_bare_result_collapses_whitespace(self) -> None:
        r = bare_result("  a   b ")
        assert r.title == "a b"
        assert r.source_tier is SourceTier.PATTERN


class TestBuildTiers:
    def test_order_follows_names(self, cache: ExactCache, clock) -> None:
        tiers = build_tiers(
            ["pattern", "exact"], cache, engine=PatternEngine(clock=clock)
        )
        assert [t.name for t in tiers] == ["pattern", "exact"]

    def test_missing_collaborators_are_skipped(self, cache: ExactCache) -> None:
        tiers = build_tiers(["exact", "fuzzy", "pattern", "fallback"], cache)
        assert [t.name for t in tiers] == ["exact"]

    def test_unknown_tier(self, cache: ExactCache) -> None:
        with pytest.raises(ConfigurationError):
            build_tiers(["exact", "oracle"], cache)

    def test_duplicate_tier(self, cache: ExactCache) -> None:
        with pytest.raises(ConfigurationError):
            build_tiers(["exact", "exact"], cache)
