# backend/peertutor/services/recurrence.py
"""
Recurrence Expander for PeerTutor

Turns a base window and a recurrence rule into the deterministic list of
occurrence windows, then persists the series: the parent first, then each
child pointing back at it. Persistence happens inside the caller's
transaction so a failing child leaves nothing behind.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, Union

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..models.session import RecurrenceFrequency, TutoringSession
from ..repositories.session_repository import SessionRepository
from .time_windows import TimeWindow, add_months, date_to_utc_midnight, ensure_utc

logger = logging.getLogger(__name__)

_DAY_STEPS = {
    RecurrenceFrequency.WEEKLY: timedelta(days=7),
    RecurrenceFrequency.BIWEEKLY: timedelta(days=14),
}


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: RecurrenceFrequency
    end_date: datetime

    @classmethod
    def build(cls, frequency: Union[str, RecurrenceFrequency], end_date: Union[date, datetime]) -> "RecurrenceRule":
        try:
            parsed = RecurrenceFrequency(frequency)
        except ValueError:
            raise ValidationException(
                f"Unsupported recurrence frequency: {frequency}", code="INVALID_RECURRENCE"
            )
        if isinstance(end_date, datetime):
            boundary = ensure_utc(end_date)
        else:
            boundary = date_to_utc_midnight(end_date)
        return cls(frequency=parsed, end_date=boundary)


class RecurrenceExpander:
    """Expands and materializes recurring session series."""

    def __init__(self, max_occurrences: Optional[int] = None):
        self.max_occurrences = max_occurrences or settings.max_recurring_occurrences

    def occurrence_start(self, base: datetime, frequency: RecurrenceFrequency, index: int) -> datetime:
        """Start of occurrence ``index``, always computed from the base start."""
        if frequency == RecurrenceFrequency.MONTHLY:
            return add_months(base, index)
        return base + _DAY_STEPS[frequency] * index

    def expand(self, base_window: TimeWindow, rule: RecurrenceRule) -> List[TimeWindow]:
        """
        Base window followed by every step whose start is strictly before
        the rule's end date.

        Raises:
            ValidationException: When the series would exceed the occurrence cap
        """
        windows = [base_window]
        index = 1
        while True:
            start = self.occurrence_start(base_window.start, rule.frequency, index)
            if start >= rule.end_date:
                break
            if len(windows) >= self.max_occurrences:
                raise ValidationException(
                    f"Recurring series exceeds the maximum of {self.max_occurrences} sessions",
                    code="RECURRENCE_TOO_LONG",
                    details={"max_occurrences": self.max_occurrences},
                )
            windows.append(base_window.starting_at(start))
            index += 1
        return windows

    def materialize(
        self,
        repository: SessionRepository,
        windows: List[TimeWindow],
        rule: RecurrenceRule,
        fields: Dict[str, Any],
    ) -> List[TutoringSession]:
        """
        Persist the parent (first window) then the children.

        ``fields`` carries the shared attributes (participants, subject,
        delivery, price). Nothing is committed here.
        """
        if not windows:
            return []
        recurrence_fields = {
            "is_recurring": True,
            "recurrence_frequency": rule.frequency.value,
            "recurrence_end_date": rule.end_date.date(),
        }
        parent = repository.create(
            **fields,
            **recurrence_fields,
            scheduled_start=windows[0].start,
            scheduled_end=windows[0].end,
        )
        sessions = [parent]
        for window in windows[1:]:
            sessions.append(
                repository.create(
                    **fields,
                    **recurrence_fields,
                    parent_session_id=parent.id,
                    scheduled_start=window.start,
                    scheduled_end=window.end,
                )
            )
        logger.info(
            f"Created recurring series {parent.id} with {len(sessions)} session(s) "
            f"({rule.frequency.value} until {rule.end_date.date().isoformat()})"
        )
        return sessions
