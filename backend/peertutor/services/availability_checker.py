# backend/peertutor/services/availability_checker.py
"""
Availability Checker for PeerTutor

Decides whether a candidate window fits inside a tutor's weekly
availability template. The template is a list of (day, start, end) slots in
wall-clock minutes; a window fits when one slot on the window's weekday
covers it entirely. Windows crossing midnight never fit a single slot.
"""

from dataclasses import dataclass
from datetime import time, timedelta
import logging
from typing import Any, Iterable, List, Optional, Sequence

from ..core.enums import DayOfWeek
from .time_windows import (
    MINUTES_PER_DAY,
    TimeWindow,
    day_of_week,
    minutes_of_day,
    parse_day_of_week,
    parse_hhmm,
    slot_end_minutes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilitySlot:
    """One weekly slot, minutes since midnight. ``end_minutes`` may be 1440."""

    day: DayOfWeek
    start_minutes: int
    end_minutes: int

    @classmethod
    def from_values(cls, day: Any, start: Any, end: Any) -> "AvailabilitySlot":
        parsed_day = day if isinstance(day, DayOfWeek) else parse_day_of_week(str(day))
        return cls(
            day=parsed_day,
            start_minutes=parse_hhmm(start),
            end_minutes=slot_end_minutes(end),
        )

    @classmethod
    def from_model(cls, row: Any) -> "AvailabilitySlot":
        """Build from a TutorAvailability row (Time columns)."""
        return cls.from_values(row.day_of_week, row.start_time, row.end_time)

    def covers(self, day: DayOfWeek, start_minutes: int, end_minutes: int) -> bool:
        return (
            self.day == day
            and self.start_minutes <= start_minutes
            and self.end_minutes >= end_minutes
        )


class AvailabilityChecker:
    """Stateless check of a window against a weekly template."""

    def window_minutes(self, window: TimeWindow) -> Optional[tuple]:
        """
        (weekday, start_minutes, end_minutes) for a window within one day.

        An end exactly at the following midnight counts as 1440. Returns None
        for windows spanning more than one day.
        """
        start_day = window.start.date()
        start_minutes = minutes_of_day(window.start)
        if window.end.date() == start_day:
            end_minutes = minutes_of_day(window.end)
            if window.end.second or window.end.microsecond:
                end_minutes += 1
        elif window.end.date() == start_day + timedelta(days=1) and window.end.time() == time(0, 0):
            end_minutes = MINUTES_PER_DAY
        else:
            return None
        return day_of_week(window.start), start_minutes, end_minutes

    def is_available(self, slots: Iterable[AvailabilitySlot], window: TimeWindow) -> bool:
        parts = self.window_minutes(window)
        if parts is None:
            logger.debug(f"Window {window.start.isoformat()} spans midnight; not available")
            return False
        day, start_minutes, end_minutes = parts
        return any(slot.covers(day, start_minutes, end_minutes) for slot in slots)

    def unavailable_windows(
        self, slots: Sequence[AvailabilitySlot], windows: Iterable[TimeWindow]
    ) -> List[TimeWindow]:
        """Subset of ``windows`` that no slot covers."""
        return [window for window in windows if not self.is_available(slots, window)]
