"""Tests for the date and time helpers behind the pattern engine."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from taskline.patterns.temporal import (
    DateResolver,
    MONTH_DAY,
    TIME_12H,
    TIME_WORD,
    days_until_weekday,
    localize,
    quantize_up,
    resolve_12h,
    shift,
)


class TestResolve12h:
    @pytest.mark.parametrize(
        "hour,minute,meridiem,expected",
        [
            (3, 0, "p", time(15, 0)),
            (3, 0, "a", time(3, 0)),
            (12, 0, "p", time(12, 0)),
            (12, 0, "a", time(0, 0)),
            (4, 12, "P", time(16, 12)),
        ],
    )
    def test_valid(self, hour: int, minute: int, meridiem: str, expected: time) -> None:
        assert resolve_12h(hour, minute, meridiem) == expected

    @pytest.mark.parametrize("hour", [0, 13, 99])
    def test_out_of_range(self, hour: int) -> None:
        assert resolve_12h(hour, 0, "p") is None


class TestDaysUntilWeekday:
    def test_later_this_week(self) -> None:
        # 2026-03-11 is a Wednesday
        assert days_until_weekday(date(2026, 3, 11), 4) == 2

    def test_wraps_to_next_week(self) -> None:
        assert days_until_weekday(date(2026, 3, 11), 0) == 5

    def test_same_day_is_a_week_ahead(self) -> None:
        assert days_until_weekday(date(2026, 3, 11), 2) == 7

    def test_same_day_allowed(self) -> None:
        assert days_until_weekday(date(2026, 3, 11), 2, allow_today=True) == 0


class TestQuantizeUp:
    def test_rounds_up(self) -> None:
        moment = datetime(2026, 3, 11, 10, 1, 30)
        assert quantize_up(moment, 15) == datetime(2026, 3, 11, 10, 15)

    def test_on_boundary_unchanged(self) -> None:
        moment = datetime(2026, 3, 11, 10, 45)
        assert quantize_up(moment, 15) == moment

    def test_crosses_midnight(self) -> None:
        moment = datetime(2026, 3, 11, 23, 50)
        assert quantize_up(moment, 15) == datetime(2026, 3, 12, 0, 0)

    def test_keeps_tzinfo(self) -> None:
        tz = timezone(timedelta(hours=-5))
        moment = datetime(2026, 3, 11, 10, 7, tzinfo=tz)
        assert quantize_up(moment, 15).tzinfo is tz

    def test_zero_grid_is_identity(self) -> None:
        moment = datetime(2026, 3, 11, 10, 7)
        assert quantize_up(moment, 0) == moment


class TestDateResolver:
    NOW = datetime(2026, 12, 30, 9, 0, tzinfo=timezone.utc)

    def _month_day(self, text: str):
        resolver = DateResolver()
        m = MONTH_DAY.search(text)
        assert m is not None
        return resolver._month_day(m, self.NOW)

    def test_past_month_day_rolls_to_next_year(self) -> None:
        assert self._month_day("jan 2").day == date(2027, 1, 2)

    def test_explicit_year_is_kept(self) -> None:
        assert self._month_day("jan 2, 2026").day == date(2026, 1, 2)

    def test_impossible_day_is_none(self) -> None:
        assert self._month_day("feb 29") is None

    def test_business_hour_configurable(self) -> None:
        resolver = DateResolver(business_end_hour=18)
        pattern, resolve = resolver.recognisers[3]
        hit = resolve(pattern.search("eod"), self.NOW)
        assert hit.default_time == time(18, 0)

    def test_recogniser_order(self) -> None:
        names = [resolve.__name__ for _, resolve in DateResolver().recognisers]
        assert names == [
            "_day_after_tomorrow", "_relative_offset", "_day_word",
            "_business", "_weekday", "_month_day", "_iso_date",
        ]


class TestTimePrefix:
    @pytest.mark.parametrize("text", ["at 5pm", "by 5pm", "before 5pm", "due 5pm"])
    def test_lead_word_is_part_of_match(self, text: str) -> None:
        assert TIME_12H.search(text).group(0) == text

    def test_before_noon(self) -> None:
        assert TIME_WORD.search("call before noon").group(0) == "before noon"


class TestLocalize:
    ZONE = ZoneInfo("Europe/Berlin")

    def test_zone_offset_follows_wall_date(self) -> None:
        # Europe moves to summer time on 2026-03-29
        reference = datetime(2026, 3, 27, 10, tzinfo=self.ZONE)
        due = localize(datetime(2026, 3, 30, 9), reference)
        assert due.utcoffset() == timedelta(hours=2)
        assert due.hour == 9

    def test_fixed_offset_is_kept(self) -> None:
        tz = timezone(timedelta(hours=5, minutes=45))
        due = localize(datetime(2026, 7, 1, 9), datetime(2026, 1, 1, tzinfo=tz))
        assert due == datetime(2026, 7, 1, 9, tzinfo=tz)

    def test_shift_is_elapsed_time(self) -> None:
        reference = datetime(2026, 3, 28, 22, tzinfo=self.ZONE)
        moved = shift(reference, timedelta(hours=4))
        # 22:00 CET plus four hours lands at 03:00 CEST
        assert moved.hour == 3
        assert moved.utcoffset() == timedelta(hours=2)
