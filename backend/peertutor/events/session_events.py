"""Session lifecycle domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional


def _serialize(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in payload.items()
    }


@dataclass
class SessionBooked:
    """Fired for every session created by a booking (each occurrence of a series)."""

    event_type: ClassVar[str] = "session.booked"

    session_id: str
    student_id: str
    tutor_id: str
    subject: str
    scheduled_start: datetime
    scheduled_end: datetime
    delivery_type: str
    meeting_link: Optional[str] = None
    parent_session_id: Optional[str] = None

    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.session_id}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class SessionRescheduled:
    """Fired after a session moves to a new window."""

    event_type: ClassVar[str] = "session.rescheduled"

    session_id: str
    student_id: str
    tutor_id: str
    rescheduled_by: str
    previous_start: datetime
    previous_end: datetime
    scheduled_start: datetime
    scheduled_end: datetime
    session_version: int
    reason: Optional[str] = None

    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.session_id}:v{self.session_version}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class SessionCancelled:
    """Fired after a session is cancelled."""

    event_type: ClassVar[str] = "session.cancelled"

    session_id: str
    student_id: str
    tutor_id: str
    cancelled_by: str
    cancelled_at: datetime
    reason: str
    scheduled_start: datetime
    late_cancellation: bool = False

    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.session_id}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class SessionConfirmed:
    """Fired when the tutor confirms a scheduled session."""

    event_type: ClassVar[str] = "session.confirmed"

    session_id: str
    student_id: str
    tutor_id: str
    scheduled_start: datetime
    session_version: int

    def idempotency_key(self) -> str:
        # A reschedule re-opens confirmation and bumps the row version
        return f"{self.event_type}:{self.session_id}:v{self.session_version}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class SessionReminder:
    """Fired once per scheduled window when the session enters the reminder window."""

    event_type: ClassVar[str] = "session.reminder"

    session_id: str
    student_id: str
    tutor_id: str
    subject: str
    scheduled_start: datetime
    scheduled_end: datetime
    session_version: int
    meeting_link: Optional[str] = None
    reminder_type: str = "24h"

    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.session_id}:v{self.session_version}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class SessionCompleted:
    """Fired after a session ends; carries the lesson duration."""

    event_type: ClassVar[str] = "session.completed"

    session_id: str
    student_id: str
    tutor_id: str
    ended_by: str
    actual_start: datetime
    actual_end: datetime
    duration_minutes: float

    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.session_id}"

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))
