"""Session domain events and their outbox publisher."""

from .publisher import EventPublisher
from .session_events import (
    SessionBooked,
    SessionCancelled,
    SessionCompleted,
    SessionConfirmed,
    SessionReminder,
    SessionRescheduled,
)

__all__ = [
    "EventPublisher",
    "SessionBooked",
    "SessionCancelled",
    "SessionCompleted",
    "SessionConfirmed",
    "SessionReminder",
    "SessionRescheduled",
]
