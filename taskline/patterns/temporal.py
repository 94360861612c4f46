"""
Time-of-day and date phrase recognition for the pattern engine.

Each recogniser is a compiled regex plus a resolver that turns a match
into a concrete value relative to a reference ``now``.  A resolver
returns ``None`` when the match is syntactically valid but names an
impossible value (``13pm``, ``feb 30``), in which case the text is left
for the title.

Every pattern refuses to start right after ``#`` or a word character,
so ``#tomorrow`` stays a tag and ``2pm`` inside ``12pm`` is not re-read.
"""

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

_LEAD = r"(?<![#\w])"
_DATE_PREFIX = r"(?:(?:on|by|due|before)\s+)?"
_TIME_PREFIX = r"(?:(?:at|by|before|due)\s+)?"

WEEKDAYS = [
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
]

MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7,
    "july": 7, "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12,
    "december": 12,
}


class DateHit(BaseModel):
    """A resolved date phrase.

    Attributes:
        day: The calendar date the phrase names.
        default_time: Time to use when no time-of-day was given.
        instant: A full instant, for phrases that name one directly
            (``in 2 hours``).  Takes precedence over ``default_time``.
    """

    day: date
    default_time: Optional[time] = None
    instant: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Time of day
# ---------------------------------------------------------------------------

TIME_12H = re.compile(
    _LEAD + _TIME_PREFIX + r"(\d{1,2})(?::([0-5]\d))?\s*([ap])\.?m\.?(?!\w)",
    re.IGNORECASE,
)
TIME_24H = re.compile(
    _LEAD + _TIME_PREFIX + r"([01]?\d|2[0-3]):([0-5]\d)(?![\w:])",
    re.IGNORECASE,
)
TIME_WORD = re.compile(_LEAD + _TIME_PREFIX + r"(noon|midnight)(?!\w)", re.IGNORECASE)


def resolve_12h(hour: int, minute: int, meridiem: str) -> Optional[time]:
    """Convert a 12-hour clock reading to a ``time``."""
    if not 1 <= hour <= 12:
        return None
    is_pm = meridiem.lower() == "p"
    if hour == 12:
        hour = 12 if is_pm else 0
    elif is_pm:
        hour += 12
    return time(hour, minute)


def _time_12h(m: re.Match) -> Optional[time]:
    return resolve_12h(int(m.group(1)), int(m.group(2) or 0), m.group(3))


def _time_24h(m: re.Match) -> Optional[time]:
    return time(int(m.group(1)), int(m.group(2)))


def _time_word(m: re.Match) -> Optional[time]:
    return time(12, 0) if m.group(1).lower() == "noon" else time(0, 0)


TIME_RECOGNISERS: List[Tuple[re.Pattern, Callable[[re.Match], Optional[time]]]] = [
    (TIME_12H, _time_12h),
    (TIME_24H, _time_24h),
    (TIME_WORD, _time_word),
]


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

DAY_AFTER_TOMORROW = re.compile(
    _LEAD + _DATE_PREFIX + r"(?:the\s+)?day\s+after\s+tomorrow(?!\w)",
    re.IGNORECASE,
)
RELATIVE_OFFSET = re.compile(
    _LEAD + r"in\s+(\d{1,4})\s*(minutes|mins|min|hours|hour|hrs|hr|days|day)(?!\w)",
    re.IGNORECASE,
)
DAY_WORD = re.compile(
    _LEAD + _DATE_PREFIX + r"(today|tonight|tomorrow|tmrw)(?!\w)",
    re.IGNORECASE,
)
BUSINESS = re.compile(_LEAD + r"(?:(?:by|at)\s+)?(eod|cob|eow|eom)(?!\w)", re.IGNORECASE)
WEEKDAY = re.compile(
    _LEAD + _DATE_PREFIX + r"(?:(next|this)\s+)?(" + "|".join(WEEKDAYS) + r")(?!\w)",
    re.IGNORECASE,
)
MONTH_DAY = re.compile(
    _LEAD + _DATE_PREFIX
    + r"(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\.?\s+"
    + r"(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}))?(?!\w)",
    re.IGNORECASE,
)
ISO_DATE = re.compile(
    _LEAD + _DATE_PREFIX + r"(\d{4})-(\d{2})-(\d{2})(?![\w-])",
    re.IGNORECASE,
)


def days_until_weekday(today: date, target: int, allow_today: bool = False) -> int:
    """Days from ``today`` to the next ``target`` weekday (Monday is 0).

    The same weekday resolves to a week ahead unless ``allow_today``.
    """
    days = (target - today.weekday()) % 7
    if days == 0 and not allow_today:
        return 7
    return days


def quantize_up(moment: datetime, minutes: int) -> datetime:
    """Round ``moment`` up to the next ``minutes`` boundary."""
    if minutes <= 0:
        return moment
    grid = timedelta(minutes=minutes)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    remainder = (moment - midnight) % grid
    if not remainder:
        return moment
    return moment + (grid - remainder)


def _follows_system_zone(reference: datetime) -> bool:
    # datetime.now().astimezone() yields a fixed offset; read it as the
    # system zone when it matches the system's offset at that instant.
    return (
        isinstance(reference.tzinfo, timezone)
        and reference.utcoffset() == reference.astimezone().utcoffset()
    )


def localize(naive: datetime, reference: datetime) -> datetime:
    """Attach the zone of ``reference`` to a naive local wall time.

    The offset is the one in force on the wall time's own date, so a due
    date past a DST change keeps the requested clock time.
    """
    if _follows_system_zone(reference):
        return naive.astimezone()
    return naive.replace(tzinfo=reference.tzinfo)


def shift(reference: datetime, delta: timedelta) -> datetime:
    """Move ``reference`` by an elapsed ``delta``, re-resolving its offset."""
    if reference.tzinfo is None:
        return reference + delta
    moved = reference.astimezone(timezone.utc) + delta
    if _follows_system_zone(reference):
        return moved.astimezone()
    return moved.astimezone(reference.tzinfo)


class DateResolver:
    """Resolve date phrases relative to a reference instant.

    Args:
        business_end_hour: Hour used by ``eod``/``cob``/``eow``/``eom``.
        quantize_minutes: Grid that ``in N ...`` offsets are rounded up to.
    """

    def __init__(self, business_end_hour: int = 17, quantize_minutes: int = 15) -> None:
        self._business_end = time(business_end_hour, 0)
        self._quantize = quantize_minutes
        self.recognisers: List[
            Tuple[re.Pattern, Callable[[re.Match, datetime], Optional[DateHit]]]
        ] = [
            (DAY_AFTER_TOMORROW, self._day_after_tomorrow),
            (RELATIVE_OFFSET, self._relative_offset),
            (DAY_WORD, self._day_word),
            (BUSINESS, self._business),
            (WEEKDAY, self._weekday),
            (MONTH_DAY, self._month_day),
            (ISO_DATE, self._iso_date),
        ]

    def _day_after_tomorrow(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        return DateHit(day=now.date() + timedelta(days=2))

    def _relative_offset(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        amount = int(m.group(1))
        unit = m.group(2).lower()
        if unit.startswith("min"):
            delta = timedelta(minutes=amount)
        elif unit.startswith("h"):
            delta = timedelta(hours=amount)
        else:
            delta = timedelta(days=amount)
        target = quantize_up(shift(now, delta), self._quantize)
        return DateHit(day=target.date(), instant=target)

    def _day_word(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        word = m.group(1).lower()
        if word in ("tomorrow", "tmrw"):
            return DateHit(day=now.date() + timedelta(days=1))
        if word == "tonight":
            return DateHit(day=now.date(), default_time=time(20, 0))
        return DateHit(day=now.date())

    def _business(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        token = m.group(1).lower()
        today = now.date()
        if token == "eow":
            day = today + timedelta(days=days_until_weekday(today, 4, allow_today=True))
        elif token == "eom":
            last = calendar.monthrange(today.year, today.month)[1]
            day = today.replace(day=last)
        else:
            day = today
        return DateHit(day=day, default_time=self._business_end)

    def _weekday(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        qualifier = (m.group(1) or "").lower()
        target = WEEKDAYS.index(m.group(2).lower())
        days = days_until_weekday(now.date(), target, allow_today=qualifier == "this")
        return DateHit(day=now.date() + timedelta(days=days))

    def _month_day(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        month = MONTHS[m.group(1).lower()]
        day_num = int(m.group(2))
        explicit_year = m.group(3)
        year = int(explicit_year) if explicit_year else now.year
        try:
            day = date(year, month, day_num)
        except ValueError:
            return None
        if not explicit_year and day < now.date():
            try:
                day = date(year + 1, month, day_num)
            except ValueError:
                return None
        return DateHit(day=day)

    def _iso_date(self, m: re.Match, now: datetime) -> Optional[DateHit]:
        try:
            day = date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None
        return DateHit(day=day)
