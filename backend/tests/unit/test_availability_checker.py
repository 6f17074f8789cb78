from datetime import datetime, time, timezone
from types import SimpleNamespace

import pytest

from peertutor.core.enums import DayOfWeek
from peertutor.core.exceptions import ValidationException
from peertutor.services.availability_checker import AvailabilityChecker, AvailabilitySlot
from peertutor.services.time_windows import TimeWindow


def _window(day: int, start: tuple, end: tuple, end_day: int = None) -> TimeWindow:
    return TimeWindow(
        datetime(2025, 1, day, *start, tzinfo=timezone.utc),
        datetime(2025, 1, end_day or day, *end, tzinfo=timezone.utc),
    )


@pytest.fixture
def checker() -> AvailabilityChecker:
    return AvailabilityChecker()


@pytest.fixture
def monday_slots():
    return [
        AvailabilitySlot.from_values("monday", "09:00", "12:00"),
        AvailabilitySlot.from_values("Monday", "14:00", "17:00"),
    ]


def test_window_inside_slot_is_available(checker, monday_slots):
    # 2025-01-06 is a Monday
    assert checker.is_available(monday_slots, _window(6, (10, 0), (11, 0)))
    assert checker.is_available(monday_slots, _window(6, (9, 0), (12, 0)))


def test_window_must_fit_one_slot(checker, monday_slots):
    assert not checker.is_available(monday_slots, _window(6, (11, 30), (14, 30)))
    assert not checker.is_available(monday_slots, _window(6, (8, 30), (9, 30)))


def test_wrong_weekday_is_unavailable(checker, monday_slots):
    assert not checker.is_available(monday_slots, _window(7, (10, 0), (11, 0)))


def test_empty_template_is_never_available(checker):
    assert not checker.is_available([], _window(6, (10, 0), (11, 0)))


def test_slot_ending_at_midnight_covers_late_sessions(checker):
    slots = [AvailabilitySlot.from_values(DayOfWeek.MONDAY, "20:00", "00:00")]
    assert checker.is_available(slots, _window(6, (23, 0), (0, 0), end_day=7))
    assert checker.is_available(slots, _window(6, (22, 0), (23, 30)))


def test_window_crossing_midnight_is_unavailable(checker):
    slots = [
        AvailabilitySlot.from_values("monday", "00:00", "00:00"),
        AvailabilitySlot.from_values("tuesday", "00:00", "00:00"),
    ]
    assert not checker.is_available(slots, _window(6, (23, 0), (1, 0), end_day=7))


def test_partial_minutes_round_up(checker):
    slots = [AvailabilitySlot.from_values("monday", "09:00", "10:00")]
    window = TimeWindow(
        datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc),
        datetime(2025, 1, 6, 10, 0, 30, tzinfo=timezone.utc),
    )
    assert not checker.is_available(slots, window)


def test_unavailable_windows_returns_uncovered_subset(checker, monday_slots):
    ok = _window(6, (10, 0), (11, 0))
    bad = _window(13, (18, 0), (19, 0))
    assert checker.unavailable_windows(monday_slots, [ok, bad]) == [bad]


def test_slot_from_model_row():
    row = SimpleNamespace(day_of_week="friday", start_time=time(8, 0), end_time=time(0, 0))
    slot = AvailabilitySlot.from_model(row)
    assert slot.day == DayOfWeek.FRIDAY
    assert (slot.start_minutes, slot.end_minutes) == (480, 1440)


def test_slot_rejects_unknown_day():
    with pytest.raises(ValidationException):
        AvailabilitySlot.from_values("funday", "09:00", "10:00")
