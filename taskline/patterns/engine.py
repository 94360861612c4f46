"""
Deterministic pattern engine for Taskline (Tier 3).

Runs a fixed sequence of extractors over the raw input text:

1. time of day (12/24-hour, am/pm, noon/midnight)
2. date (today/tomorrow, weekdays, business deadlines, relative offsets,
   calendar dates)
3. ``#tags``
4. priority markers (``!``/``!!``/``!!!`` and ``priority: <level>``)
5. title cleanup

Each extractor only sees text no earlier extractor consumed, and the
title is whatever nobody consumed.  The order is part of the contract:
reordering changes results.
"""

import logging
import re
from datetime import datetime, time
from typing import Callable, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel

from taskline.config import get_settings
from taskline.models import Confidence, ParsedResult, Priority, SourceTier
from taskline.patterns.temporal import TIME_RECOGNISERS, DateHit, DateResolver, localize

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TAG_PATTERN = re.compile(r"(?<![\w#])#(\w[\w-]*)")
BANG_PATTERN = re.compile(r"!+")
NAMED_PRIORITY = re.compile(
    r"(?<![#\w])priority\s*:?\s*(low|medium|high|urgent)(?!\w)",
    re.IGNORECASE,
)
_TITLE_EDGE = " ,;:-"


def local_now() -> datetime:
    """Timezone-aware current local time."""
    return datetime.now().astimezone()


class Extraction(BaseModel):
    """Output of one pattern-engine run.

    Attributes:
        result: The extracted fields as a pattern-tier result.
        found_due: A time or date phrase was recognised.
        found_priority: At least one priority marker was present.
        sufficient: The result is good enough to skip the fallback tier.
    """

    result: ParsedResult
    found_due: bool = False
    found_priority: bool = False
    sufficient: bool = False


class _Scan:
    """Raw text plus the character spans extractors have consumed."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._spans: List[Tuple[int, int]] = []

    def _free(self, start: int, end: int) -> bool:
        return all(end <= s or start >= e for s, e in self._spans)

    def matches(self, pattern: re.Pattern) -> Iterator[re.Match]:
        for m in pattern.finditer(self.text):
            if self._free(m.start(), m.end()):
                yield m

    def consume(self, m: re.Match) -> None:
        self._spans.append((m.start(), m.end()))

    def residue(self) -> str:
        chars = list(self.text)
        for start, end in self._spans:
            for i in range(start, end):
                chars[i] = " "
        return " ".join("".join(chars).split()).strip(_TITLE_EDGE)


class PatternEngine:
    """Ordered deterministic extractor.

    All arguments default to the ``pattern`` section of settings.

    Args:
        min_title_length: A title at least this long makes a result
            sufficient on its own.
        default_due_hour: Hour applied to dates given without a time.
        business_end_hour: Hour for ``eod``/``cob``/``eow``/``eom``.
        quantize_minutes: Grid for ``in N minutes/hours/days``.
        clock: Returns the reference "now"; injectable for tests.
    """

    def __init__(
        self,
        min_title_length: Optional[int] = None,
        default_due_hour: Optional[int] = None,
        business_end_hour: Optional[int] = None,
        quantize_minutes: Optional[int] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        _s = get_settings().pattern
        self._min_title_length = (
            min_title_length if min_title_length is not None else _s.min_title_length
        )
        self._default_time = time(
            default_due_hour if default_due_hour is not None else _s.default_due_hour, 0
        )
        self._dates = DateResolver(
            business_end_hour=(
                business_end_hour if business_end_hour is not None else _s.business_end_hour
            ),
            quantize_minutes=(
                quantize_minutes if quantize_minutes is not None else _s.quantize_minutes
            ),
        )
        self._clock = clock or local_now

    def extract(self, raw_text: str) -> Extraction:
        """Run every extractor in order over ``raw_text``.

        Args:
            raw_text: The user's input, original casing preserved.

        Returns:
            Extraction with the pattern-tier result and sufficiency flag.
        """
        now = self._clock()
        scan = _Scan(raw_text)

        time_of_day = self._extract_time(scan)
        date_hit = self._extract_date(scan, now)
        tags = self._extract_tags(scan)
        priority, found_priority = self._extract_priority(scan)
        title = scan.residue()

        due = self._combine(now, date_hit, time_of_day)
        result = ParsedResult(
            title=title,
            due=due,
            priority=priority,
            tags=tags,
            source_tier=SourceTier.PATTERN,
            confidence=Confidence.FULL,
        )
        found_due = due is not None
        sufficient = (
            found_due
            or bool(tags)
            or found_priority
            or len(title) >= self._min_title_length
        )

        logger.debug(
            "Pattern extraction",
            extra={
                "found_due": found_due,
                "tag_count": len(tags),
                "found_priority": found_priority,
                "sufficient": sufficient,
            },
        )
        return Extraction(
            result=result,
            found_due=found_due,
            found_priority=found_priority,
            sufficient=sufficient,
        )

    # ------------------------------------------------------------------
    # Extractors
    # ------------------------------------------------------------------

    def _extract_time(self, scan: _Scan) -> Optional[time]:
        for pattern, resolve in TIME_RECOGNISERS:
            for m in scan.matches(pattern):
                value = resolve(m)
                if value is not None:
                    scan.consume(m)
                    return value
        return None

    def _extract_date(self, scan: _Scan, now: datetime) -> Optional[DateHit]:
        for pattern, resolve in self._dates.recognisers:
            for m in scan.matches(pattern):
                hit = resolve(m, now)
                if hit is not None:
                    scan.consume(m)
                    return hit
        return None

    def _extract_tags(self, scan: _Scan) -> Set[str]:
        tags: Set[str] = set()
        for m in scan.matches(TAG_PATTERN):
            tags.add(m.group(1).lower())
            scan.consume(m)
        return tags

    def _extract_priority(self, scan: _Scan) -> Tuple[Priority, bool]:
        found: List[Priority] = []
        for m in scan.matches(NAMED_PRIORITY):
            found.append(Priority(m.group(1).lower()))
            scan.consume(m)
        for m in scan.matches(BANG_PATTERN):
            found.append(Priority.from_marker_count(len(m.group(0))))
            scan.consume(m)
        if not found:
            return Priority.MEDIUM, False
        return max(found, key=lambda p: p.rank), True

    def _combine(
        self,
        now: datetime,
        date_hit: Optional[DateHit],
        time_of_day: Optional[time],
    ) -> Optional[datetime]:
        if date_hit is None and time_of_day is None:
            return None
        if date_hit is None:
            return localize(datetime.combine(now.date(), time_of_day), now)
        if time_of_day is None and date_hit.instant is not None:
            return date_hit.instant
        at = time_of_day or date_hit.default_time or self._default_time
        return localize(datetime.combine(date_hit.day, at), now)
