from datetime import date, datetime, time, timedelta, timezone

import pytest

from peertutor.core.enums import DayOfWeek
from peertutor.core.exceptions import ValidationException
from peertutor.services.time_windows import (
    TimeWindow,
    add_months,
    date_to_utc_midnight,
    day_of_week,
    ensure_future,
    ensure_utc,
    hours_until,
    minutes_until,
    parse_day_of_week,
    parse_hhmm,
    slot_end_minutes,
)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestTimeWindow:
    def test_rejects_empty_and_inverted_windows(self):
        with pytest.raises(ValidationException) as exc:
            TimeWindow(_utc(2025, 1, 6, 10), _utc(2025, 1, 6, 10))
        assert exc.value.code == "INVALID_WINDOW"

        with pytest.raises(ValidationException):
            TimeWindow(_utc(2025, 1, 6, 11), _utc(2025, 1, 6, 10))

    def test_naive_values_are_taken_as_utc(self):
        window = TimeWindow(datetime(2025, 1, 6, 10), datetime(2025, 1, 6, 11))
        assert window.start == _utc(2025, 1, 6, 10)
        assert window.start.tzinfo is not None

    def test_offsets_are_normalized(self):
        plus_two = timezone(timedelta(hours=2))
        window = TimeWindow(
            datetime(2025, 1, 6, 12, tzinfo=plus_two), datetime(2025, 1, 6, 13, tzinfo=plus_two)
        )
        assert window.start == _utc(2025, 1, 6, 10)
        assert window.start.utcoffset() == timedelta(0)

    def test_back_to_back_windows_do_not_overlap(self):
        first = TimeWindow(_utc(2025, 1, 6, 10), _utc(2025, 1, 6, 11))
        second = TimeWindow(_utc(2025, 1, 6, 11), _utc(2025, 1, 6, 12))
        assert not first.overlaps(second)
        assert not second.overlaps(first)

    def test_overlap_is_symmetric(self):
        first = TimeWindow(_utc(2025, 1, 6, 10), _utc(2025, 1, 6, 11))
        inner = TimeWindow(_utc(2025, 1, 6, 10, 15), _utc(2025, 1, 6, 10, 45))
        late = TimeWindow(_utc(2025, 1, 6, 10, 30), _utc(2025, 1, 6, 12))
        for other in (inner, late):
            assert first.overlaps(other)
            assert other.overlaps(first)

    def test_duration_and_restart(self):
        window = TimeWindow(_utc(2025, 1, 6, 10), _utc(2025, 1, 6, 11, 30))
        assert window.duration == timedelta(minutes=90)

        moved = window.starting_at(_utc(2025, 1, 13, 10))
        assert moved.end == _utc(2025, 1, 13, 11, 30)


def test_ensure_future_requires_strictly_later_start():
    now = _utc(2025, 1, 1, 12)
    ensure_future(TimeWindow(now + timedelta(seconds=1), now + timedelta(hours=1)), now)
    with pytest.raises(ValidationException) as exc:
        ensure_future(TimeWindow(now, now + timedelta(hours=1)), now)
    assert exc.value.code == "WINDOW_IN_PAST"


def test_ensure_utc_keeps_instant():
    eastern = timezone(timedelta(hours=-5))
    value = datetime(2025, 1, 6, 5, tzinfo=eastern)
    assert ensure_utc(value) == _utc(2025, 1, 6, 10)


def test_date_to_utc_midnight():
    assert date_to_utc_midnight(date(2025, 1, 27)) == _utc(2025, 1, 27)


class TestDayAndTimeParsing:
    def test_day_of_week(self):
        assert day_of_week(_utc(2025, 1, 6, 10)) == DayOfWeek.MONDAY
        assert day_of_week(_utc(2025, 1, 5, 10)) == DayOfWeek.SUNDAY

    @pytest.mark.parametrize("raw", ["Monday", "monday", "MON", " mon "])
    def test_parse_day_names(self, raw):
        assert parse_day_of_week(raw) == DayOfWeek.MONDAY

    def test_parse_day_rejects_unknown(self):
        with pytest.raises(ValidationException):
            parse_day_of_week("someday")

    def test_parse_hhmm(self):
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("24:00") == 1440
        assert parse_hhmm(time(17, 15)) == 17 * 60 + 15

    @pytest.mark.parametrize("raw", ["25:00", "10:60", "24:30", "noon", ""])
    def test_parse_hhmm_rejects_garbage(self, raw):
        with pytest.raises(ValidationException):
            parse_hhmm(raw)

    def test_slot_end_midnight_means_end_of_day(self):
        assert slot_end_minutes("00:00") == 1440
        assert slot_end_minutes(time(0, 0)) == 1440
        assert slot_end_minutes("17:00") == 1020


class TestCalendarArithmetic:
    def test_add_months_clamps_to_month_length(self):
        assert add_months(_utc(2025, 1, 31, 10), 1) == _utc(2025, 2, 28, 10)
        assert add_months(_utc(2024, 1, 31, 10), 1) == _utc(2024, 2, 29, 10)
        assert add_months(_utc(2025, 11, 15, 10), 3) == _utc(2026, 2, 15, 10)

    def test_hours_and_minutes_until(self):
        now = _utc(2025, 1, 1, 12)
        assert hours_until(_utc(2025, 1, 2, 0), now) == pytest.approx(12.0)
        assert minutes_until(now - timedelta(minutes=5), now) == pytest.approx(-5.0)
