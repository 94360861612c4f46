"""Tests for the Taskline data model."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from taskline.models import Confidence, ParsedResult, Priority, SourceTier


class TestPriority:
    def test_ordering_by_rank(self) -> None:
        assert Priority.LOW.rank < Priority.MEDIUM.rank < Priority.HIGH.rank < Priority.URGENT.rank

    @pytest.mark.parametrize(
        "count,expected",
        [(1, Priority.MEDIUM), (2, Priority.HIGH), (3, Priority.URGENT), (5, Priority.URGENT)],
    )
    def test_from_marker_count(self, count: int, expected: Priority) -> None:
        assert Priority.from_marker_count(count) is expected


class TestParsedResult:
    def test_defaults(self) -> None:
        r = ParsedResult(source_tier=SourceTier.PATTERN)
        assert r.title == ""
        assert r.due is None
        assert r.priority is Priority.MEDIUM
        assert r.tags == set()
        assert r.confidence is Confidence.FULL

    def test_source_tier_is_required(self) -> None:
        with pytest.raises(ValidationError):
            ParsedResult(title="x")

    def test_tags_are_normalised_and_unique(self) -> None:
        r = ParsedResult(source_tier="pattern", tags=["#Work", "work", "Home"])
        assert r.tags == {"work", "home"}

    def test_tags_serialise_as_sorted_list(self) -> None:
        r = ParsedResult(source_tier="pattern", tags={"b", "a"})
        assert r.model_dump(mode="json")["tags"] == ["a", "b"]

    def test_json_round_trip_keeps_fields(self) -> None:
        due = datetime(2026, 3, 12, 15, 0, tzinfo=timezone.utc)
        r = ParsedResult(
            title="Submit report", due=due, priority="high",
            tags={"work"}, source_tier="fallback",
        )
        back = ParsedResult.model_validate_json(r.model_dump_json())
        assert back == r

    def test_with_tier_copies(self) -> None:
        r = ParsedResult(title="a", source_tier="pattern", tags={"x"})
        exact = r.with_tier(SourceTier.EXACT)
        assert exact.source_tier is SourceTier.EXACT
        assert r.source_tier is SourceTier.PATTERN
        exact.tags.add("y")
        assert r.tags == {"x"}

    def test_degraded_marks_partial_and_keeps_tier(self) -> None:
        r = ParsedResult(title="a", source_tier="pattern")
        d = r.degraded()
        assert d.confidence is Confidence.PARTIAL
        assert d.source_tier is SourceTier.PATTERN

    def test_same_fields_ignores_tier_and_confidence(self) -> None:
        a = ParsedResult(title="a", source_tier="pattern", tags={"t"})
        assert a.same_fields(a.with_tier(SourceTier.EXACT).degraded())
        assert not a.same_fields(ParsedResult(title="b", source_tier="pattern", tags={"t"}))
