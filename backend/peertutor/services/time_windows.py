# backend/peertutor/services/time_windows.py
"""
Time-window utilities for session scheduling.

Pure functions and a small value type; no database access. Windows are
half-open ``[start, end)`` so a session ending at 11:00 and another
starting at 11:00 do not overlap.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
import re
from typing import Union

from ..core.enums import DayOfWeek
from ..core.exceptions import ValidationException

MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def ensure_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def date_to_utc_midnight(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start >= self.end:
            raise ValidationException(
                "Session start must be before its end",
                code="INVALID_WINDOW",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeWindow") -> bool:
        """Symmetric overlap test; touching endpoints do not overlap."""
        return self.start < other.end and other.start < self.end

    def starting_at(self, start: datetime) -> "TimeWindow":
        """Same duration, new start."""
        return TimeWindow(start, start + self.duration)


def ensure_future(window: TimeWindow, now: datetime) -> None:
    """Reject windows that do not start strictly after ``now``."""
    if window.start <= ensure_utc(now):
        raise ValidationException(
            "Session must be scheduled in the future",
            code="WINDOW_IN_PAST",
            details={"start": window.start.isoformat()},
        )


def day_of_week(value: datetime) -> DayOfWeek:
    return DayOfWeek.from_weekday(value.weekday())


def parse_day_of_week(value: str) -> DayOfWeek:
    """Parse 'Monday', 'monday' or 'MON' style names."""
    normalized = (value or "").strip().lower()
    for day in DayOfWeek:
        if day.value == normalized or day.value[:3] == normalized:
            return day
    raise ValidationException(f"Unknown day of week: {value!r}", code="INVALID_DAY")


def parse_hhmm(value: Union[str, time]) -> int:
    """
    Minutes since midnight for an 'HH:MM' string or ``time``.

    '24:00' is accepted as end of day (1440).
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    match = _HHMM_RE.match((value or "").strip())
    if not match:
        raise ValidationException(f"Invalid time of day: {value!r}", code="INVALID_TIME")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValidationException(f"Invalid time of day: {value!r}", code="INVALID_TIME")
    return hours * 60 + minutes


def slot_end_minutes(value: Union[str, time]) -> int:
    """Like parse_hhmm but an end of 00:00 means midnight at the end of the day."""
    minutes = parse_hhmm(value)
    return MINUTES_PER_DAY if minutes == 0 else minutes


def minutes_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month step; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def hours_until(target: datetime, now: datetime) -> float:
    return (ensure_utc(target) - ensure_utc(now)).total_seconds() / 3600.0


def minutes_until(target: datetime, now: datetime) -> float:
    return (ensure_utc(target) - ensure_utc(now)).total_seconds() / 60.0
