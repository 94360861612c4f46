"""
Core data model for Taskline.

A :class:`ParsedResult` is the structured task record every tier of the
interpretation pipeline produces.  It carries exactly one
:class:`SourceTier` and a :class:`Confidence` marker.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, Field, field_serializer, field_validator


class Priority(str, Enum):
    """Ordered task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Position in the low < medium < high < urgent ordering."""
        return _PRIORITY_ORDER.index(self)

    @classmethod
    def from_marker_count(cls, count: int) -> "Priority":
        """Map a run of ``!`` markers to a priority.

        One marker is medium, two are high, three or more are urgent.
        """
        if count >= 3:
            return cls.URGENT
        if count == 2:
            return cls.HIGH
        return cls.MEDIUM


_PRIORITY_ORDER: List[Priority] = [
    Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.URGENT,
]


class SourceTier(str, Enum):
    """The pipeline tier that produced a result."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    PATTERN = "pattern"
    FALLBACK = "fallback"


class Confidence(str, Enum):
    """Whether a result is complete or degraded."""

    FULL = "full"
    PARTIAL = "partial"


class ParsedResult(BaseModel):
    """A structured task record interpreted from free-form text.

    Attributes:
        title: Task title with all recognised syntax removed.
        due: Due/scheduled instant, if one was found.
        priority: Task priority (medium when no marker is present).
        tags: Unique tag names, lower-cased, without the ``#``.
        source_tier: Which pipeline tier produced this result.
        confidence: ``full`` or ``partial`` (degraded).
    """

    title: str = ""
    due: Optional[datetime] = None
    priority: Priority = Priority.MEDIUM
    tags: Set[str] = Field(default_factory=set)
    source_tier: SourceTier
    confidence: Confidence = Confidence.FULL

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tags(cls, value: object) -> object:
        if value is None:
            return set()
        if isinstance(value, (list, tuple, set, frozenset)):
            return {str(tag).lstrip("#").lower() for tag in value if str(tag).strip()}
        return value

    @field_serializer("tags")
    def _serialise_tags(self, tags: Set[str]) -> List[str]:
        return sorted(tags)

    def with_tier(self, tier: SourceTier) -> "ParsedResult":
        """Return a copy re-tagged with another source tier."""
        return self.model_copy(update={"source_tier": tier}, deep=True)

    def degraded(self) -> "ParsedResult":
        """Return a copy marked as a partial (degraded) result."""
        return self.model_copy(update={"confidence": Confidence.PARTIAL}, deep=True)

    def same_fields(self, other: "ParsedResult") -> bool:
        """Compare the task fields, ignoring tier and confidence."""
        return (
            self.title == other.title
            and self.due == other.due
            and self.priority == other.priority
            and self.tags == other.tags
        )
